"""HTTP client for the external telemetry service.

Only the read endpoints the analytics engine consumes are wrapped. Every
failure (transport error, non-2xx status, undecodable body) surfaces as
:class:`UpstreamUnavailableError` so callers can isolate it per device.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

import requests

from src.analytics.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api/mqtt-data"


class TelemetryClient:
    """Thin wrapper over the telemetry REST API.

    Args:
        base_url: Scheme and host of the telemetry service.
        api_prefix: Path prefix of the telemetry endpoints.
        timeout: Per-request timeout in seconds.
        session: Optional preconfigured ``requests.Session``.
    """

    def __init__(
        self,
        base_url: str,
        api_prefix: str = DEFAULT_API_PREFIX,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Issue a GET request and decode the JSON body.

        Raises:
            UpstreamUnavailableError: On any transport, status or decode failure.
        """
        url = self._url(path)
        logger.debug("GET %s params=%s", url, params)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(f"Request to {url} failed: {exc}", url) from exc
        except ValueError as exc:
            raise UpstreamUnavailableError(f"Invalid JSON from {url}: {exc}", url) from exc

    def latest(self, device_id: str) -> Optional[dict[str, Any]]:
        """Fetch the latest reading of a device.

        Returns:
            The raw reading, or None when the service answers with a
            ``status``-tagged empty marker.
        """
        body = self._get(f"/device/{device_id}/latest")
        if not isinstance(body, dict) or "status" in body:
            return None
        return body

    def device_history(self, device_id: str) -> list[dict[str, Any]]:
        """Fetch every stored reading of a device.

        Raises:
            UpstreamUnavailableError: If the envelope is not a success.
        """
        body = self._get(f"/device/{device_id}")
        if not isinstance(body, dict) or body.get("status") != "success":
            raise UpstreamUnavailableError(
                f"Unsuccessful response for device {device_id}", self._url(f"/device/{device_id}")
            )
        data = body.get("data")
        return data if isinstance(data, list) else []

    def device_range(
        self, device_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Fetch the readings of a device between two instants."""
        body = self._get(
            f"/device/{device_id}/range",
            params={"startTime": start.isoformat(), "endTime": end.isoformat()},
        )
        return body if isinstance(body, list) else []

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        """Fetch the most recent readings across all devices."""
        body = self._get("/recent", params={"limit": limit})
        if not isinstance(body, dict):
            return []
        data = body.get("data")
        return data if isinstance(data, list) else []

    def hourly_aggregation(
        self,
        day: Optional[date] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Fetch pre-aggregated hourly records for a day or a time span.

        Args:
            day: Calendar day to fetch. Mutually exclusive with the span.
            start: Span start.
            end: Span end.

        Raises:
            ValueError: If neither a day nor a complete span is given.
        """
        if day is not None:
            params = {"date": day.isoformat()}
        elif start is not None and end is not None:
            params = {"from": start.isoformat(), "to": end.isoformat()}
        else:
            raise ValueError("Provide either day or both start and end")

        body = self._get("/aggregate/hourly", params=params)
        return body if isinstance(body, list) else []

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
