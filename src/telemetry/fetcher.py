"""Parallel per-device fetch of telemetry readings.

Each device is fetched in its own task on a bounded thread pool. A device
whose fetch fails is recorded and left out; the remaining devices are
still aggregated. Results are merged in a fixed order so aggregation stays
deterministic regardless of completion order.
"""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.analytics.errors import UpstreamUnavailableError
from src.analytics.readings import Reading, decode_readings, filter_range
from src.telemetry.client import TelemetryClient
from src.utils.config import DeviceDefinition

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Readings collected for a set of devices.

    Attributes:
        readings: Decoded, range-filtered readings ordered by
            ``(timestamp, device_id)``.
        failed_devices: Devices whose fetch failed.
        readings_per_device: Number of readings kept per device.
    """

    readings: list[Reading] = field(default_factory=list)
    failed_devices: list[str] = field(default_factory=list)
    readings_per_device: dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.readings


def fetch_device_readings(
    client: TelemetryClient, device_id: str, start: datetime, end: datetime
) -> list[Reading]:
    """Fetch, decode and range-filter the readings of one device.

    Readings are tagged with ``device_id`` whatever the payload says.

    Raises:
        UpstreamUnavailableError: If the telemetry service call fails.
    """
    payloads = client.device_history(device_id)
    readings = filter_range(decode_readings(payloads, device_id=device_id), start, end)
    logger.debug(
        "Fetched %d readings for device %s (%d after time filter)",
        len(payloads),
        device_id,
        len(readings),
    )
    return readings


def fetch_counter_readings(
    client: TelemetryClient,
    devices: Sequence[DeviceDefinition],
    start: datetime,
    end: datetime,
    max_workers: int = 8,
) -> FetchResult:
    """Fetch readings for every device of a counter concurrently.

    Args:
        client: Telemetry client.
        devices: Devices to fetch.
        start: Range start, inclusive.
        end: Range end, inclusive.
        max_workers: Upper bound on concurrent requests.

    Returns:
        Merged readings plus the list of devices that failed.
    """
    result = FetchResult()
    if not devices:
        return result

    per_device: dict[str, list[Reading]] = {}
    workers = max(1, min(max_workers, len(devices)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(fetch_device_readings, client, d.device_id, start, end): d.device_id
            for d in devices
        }
        for fut in as_completed(futures):
            device_id = futures[fut]
            try:
                per_device[device_id] = fut.result()
            except UpstreamUnavailableError as exc:
                result.failed_devices.append(device_id)
                logger.error("Error fetching data for device %s: %s", device_id, exc)

    for device_id in sorted(per_device):
        result.readings.extend(per_device[device_id])
        result.readings_per_device[device_id] = len(per_device[device_id])
    result.readings.sort(key=lambda r: (r.timestamp, r.device_id))
    result.failed_devices.sort()

    logger.info(
        "Collected %d readings from %d/%d devices",
        len(result.readings),
        len(per_device),
        len(devices),
    )
    return result


def fetch_latest_readings(
    client: TelemetryClient,
    devices: Sequence[DeviceDefinition],
    max_workers: int = 8,
) -> dict[str, Optional[dict[str, Any]]]:
    """Fetch the latest raw reading of every device concurrently.

    A device whose request fails maps to None, the same as a device that
    has not reported yet.

    Returns:
        Latest payload per device id.
    """
    latest: dict[str, Optional[dict[str, Any]]] = {}
    if not devices:
        return latest

    workers = max(1, min(max_workers, len(devices)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(client.latest, d.device_id): d.device_id for d in devices}
        for fut in as_completed(futures):
            device_id = futures[fut]
            try:
                latest[device_id] = fut.result()
            except UpstreamUnavailableError as exc:
                latest[device_id] = None
                logger.error("Error fetching latest reading for device %s: %s", device_id, exc)

    logger.debug(
        "Latest readings: %d/%d devices reporting",
        sum(1 for payload in latest.values() if payload is not None),
        len(devices),
    )
    return latest
