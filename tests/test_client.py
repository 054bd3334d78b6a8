"""Tests for the telemetry HTTP client."""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
import requests

from src.analytics.errors import UpstreamUnavailableError
from src.telemetry.client import TelemetryClient

BASE = "http://telemetry.local"


def _client(body=None) -> tuple[TelemetryClient, MagicMock]:
    session = MagicMock()
    response = MagicMock()
    response.json.return_value = body
    session.get.return_value = response
    return TelemetryClient(BASE + "/", session=session), session


class TestRequests:
    """Tests for URL building and error mapping."""

    def test_device_history_url(self) -> None:
        """Requests go to base URL + prefix + path with the timeout."""
        client, session = _client({"status": "success", "data": []})
        client.device_history("d1")
        session.get.assert_called_once_with(
            f"{BASE}/api/mqtt-data/device/d1", params=None, timeout=10.0
        )

    def test_custom_prefix(self) -> None:
        session = MagicMock()
        session.get.return_value.json.return_value = {"data": []}
        client = TelemetryClient(BASE, api_prefix="", timeout=2.0, session=session)
        client.recent()
        session.get.assert_called_once_with(f"{BASE}/recent", params={"limit": 10}, timeout=2.0)

    def test_connection_error(self) -> None:
        """Transport errors become UpstreamUnavailableError."""
        client, session = _client()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            client.device_history("d1")
        assert exc_info.value.url == f"{BASE}/api/mqtt-data/device/d1"

    def test_http_error(self) -> None:
        """Non-2xx statuses become UpstreamUnavailableError."""
        client, session = _client()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        with pytest.raises(UpstreamUnavailableError):
            client.recent()

    def test_invalid_json(self) -> None:
        """Undecodable bodies become UpstreamUnavailableError."""
        client, session = _client()
        session.get.return_value.json.side_effect = ValueError("no json")
        with pytest.raises(UpstreamUnavailableError, match="Invalid JSON"):
            client.latest("d1")

    def test_close(self) -> None:
        client, session = _client()
        client.close()
        session.close.assert_called_once()


class TestEndpoints:
    """Tests for response envelope handling."""

    def test_latest(self) -> None:
        client, _ = _client({"deviceId": "d1", "inCount": 4})
        assert client.latest("d1") == {"deviceId": "d1", "inCount": 4}

    def test_latest_empty_marker(self) -> None:
        """A status-tagged body means no reading yet."""
        client, _ = _client({"status": "no_data"})
        assert client.latest("d1") is None

    def test_device_history(self) -> None:
        client, _ = _client({"status": "success", "data": [{"inCount": 1}]})
        assert client.device_history("d1") == [{"inCount": 1}]

    def test_device_history_unsuccessful(self) -> None:
        client, _ = _client({"status": "error", "message": "unknown device"})
        with pytest.raises(UpstreamUnavailableError, match="Unsuccessful"):
            client.device_history("d1")

    def test_device_range(self) -> None:
        client, session = _client([{"inCount": 1}])
        start = datetime(2024, 1, 15, 8, 0)
        end = datetime(2024, 1, 15, 9, 0)
        assert client.device_range("d1", start, end) == [{"inCount": 1}]
        assert session.get.call_args.kwargs["params"] == {
            "startTime": "2024-01-15T08:00:00",
            "endTime": "2024-01-15T09:00:00",
        }

    def test_recent(self) -> None:
        client, session = _client({"data": [{"deviceId": "d1"}], "count": 1})
        assert client.recent(5) == [{"deviceId": "d1"}]
        assert session.get.call_args.kwargs["params"] == {"limit": 5}

    def test_hourly_aggregation_by_day(self) -> None:
        client, session = _client([{"counterName": "A"}])
        assert client.hourly_aggregation(day=date(2024, 1, 15)) == [{"counterName": "A"}]
        assert session.get.call_args.args[0].endswith("/aggregate/hourly")
        assert session.get.call_args.kwargs["params"] == {"date": "2024-01-15"}

    def test_hourly_aggregation_by_span(self) -> None:
        client, session = _client([])
        client.hourly_aggregation(start=datetime(2024, 1, 1), end=datetime(2024, 1, 31))
        assert session.get.call_args.kwargs["params"] == {
            "from": "2024-01-01T00:00:00",
            "to": "2024-01-31T00:00:00",
        }

    def test_hourly_aggregation_requires_arguments(self) -> None:
        client, _ = _client([])
        with pytest.raises(ValueError):
            client.hourly_aggregation(start=datetime(2024, 1, 1))
