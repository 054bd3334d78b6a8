"""Live status of counters from the latest reading of each device.

The latest payload of every device is folded into a counter-level snapshot:
current occupancy, queue length, wait times and how many devices are
reporting. A device without a latest payload is listed as inactive.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.analytics.errors import ReadingParseError
from src.analytics.policy import round_half_up
from src.analytics.readings import parse_timestamp, to_float
from src.utils.config import CounterDefinition, DeviceDefinition

logger = logging.getLogger(__name__)

ACTIVE = "active"
INACTIVE = "inactive"

# minutes of expected wait per person currently at the counter
MINUTES_PER_OCCUPANT = 2.5


@dataclass
class DeviceLiveStatus:
    """Latest figures reported by one device."""

    device_id: str
    device_name: str
    occupancy: float = 0.0
    queue_length: int = 0
    wait_time: float = 0.0
    status: str = INACTIVE
    last_updated: Optional[datetime] = None


@dataclass
class CounterLiveStatus:
    """Current snapshot of a counter across its devices.

    Attributes:
        occupancy: Sum of the devices' occupancy.
        queue_length: Sum of the devices' ``inCount``.
        wait_time: Average reported wait time, or the occupancy-based
            estimate when no device reports a positive wait time.
        estimated_wait_time: Occupancy times :data:`MINUTES_PER_OCCUPANT`.
        max_wait_time: Largest reported wait time.
        active_device_count: Devices reporting an occupancy value.
        status: ``active`` when at least one device reports occupancy.
        last_updated: Newest timestamp among the latest payloads.
    """

    counter_code: str
    counter_name: str
    counter_type: Optional[str]
    occupancy: float = 0.0
    queue_length: int = 0
    wait_time: float = 0.0
    estimated_wait_time: float = 0.0
    max_wait_time: float = 0.0
    device_count: int = 0
    active_device_count: int = 0
    status: str = INACTIVE
    last_updated: Optional[datetime] = None
    devices: list[DeviceLiveStatus] = field(default_factory=list)


@dataclass
class LiveStatusReport:
    """Live snapshots of several counters."""

    generated_at: datetime
    counters: list[CounterLiveStatus] = field(default_factory=list)
    skipped_codes: list[str] = field(default_factory=list)

    @property
    def counter_count(self) -> int:
        return len(self.counters)


def _latest_timestamp(payload: Mapping[str, Any]) -> Optional[datetime]:
    try:
        return parse_timestamp(payload.get("timestamp"))
    except ReadingParseError:
        return None


def device_live_status(
    device: DeviceDefinition, payload: Optional[Mapping[str, Any]]
) -> DeviceLiveStatus:
    """Build the live status of one device from its latest payload.

    Args:
        device: Device definition.
        payload: Latest raw reading, or None when the device has none or
            could not be reached.

    Returns:
        The device status; inactive with zeroed figures when ``payload``
        is None.
    """
    status = DeviceLiveStatus(device_id=device.device_id, device_name=device.display_name)
    if payload is None:
        return status

    occupancy = to_float(payload.get("occupancy"))
    in_count = to_float(payload.get("inCount"))
    wait_time = to_float(payload.get("waitTime"))

    status.occupancy = occupancy if occupancy is not None else 0.0
    status.queue_length = int(in_count) if in_count is not None else 0
    status.wait_time = wait_time if wait_time is not None else 0.0
    status.status = ACTIVE
    status.last_updated = _latest_timestamp(payload)
    return status


def counter_live_status(
    counter: CounterDefinition,
    latest: Mapping[str, Optional[Mapping[str, Any]]],
) -> CounterLiveStatus:
    """Fold the latest payload of every device into a counter snapshot.

    Args:
        counter: Counter whose devices are reported.
        latest: Latest payload per device id. Missing ids count as
            inactive devices.

    Returns:
        The counter snapshot, devices in registry order.
    """
    result = CounterLiveStatus(
        counter_code=counter.code,
        counter_name=counter.name,
        counter_type=counter.counter_type,
        device_count=len(counter.devices),
    )

    waits: list[float] = []
    for device in counter.devices:
        payload = latest.get(device.device_id)
        device_status = device_live_status(device, payload)
        result.devices.append(device_status)
        if payload is None:
            continue

        if to_float(payload.get("occupancy")) is not None:
            result.occupancy += device_status.occupancy
            result.active_device_count += 1
        result.queue_length += device_status.queue_length
        if device_status.wait_time > 0:
            waits.append(device_status.wait_time)

        updated = device_status.last_updated
        if updated is not None and (result.last_updated is None or updated > result.last_updated):
            result.last_updated = updated

    average_wait = round_half_up(sum(waits) / len(waits)) if waits else 0.0
    result.estimated_wait_time = round_half_up(result.occupancy * MINUTES_PER_OCCUPANT)
    result.wait_time = average_wait if average_wait > 0 else result.estimated_wait_time
    result.max_wait_time = max(waits, default=0.0)
    result.status = ACTIVE if result.active_device_count > 0 else INACTIVE
    return result


def live_report(
    counters: Sequence[CounterDefinition],
    latest: Mapping[str, Optional[Mapping[str, Any]]],
    now: datetime,
) -> LiveStatusReport:
    """Snapshot every counter that has devices."""
    report = LiveStatusReport(generated_at=now)
    for counter in counters:
        if not counter.devices:
            logger.debug("Counter %s has no devices, left out of live status", counter.code)
            continue
        report.counters.append(counter_live_status(counter, latest))
    return report
