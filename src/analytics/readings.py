"""Telemetry reading schema and the decode step at the ingestion boundary.

Raw payloads from the telemetry service are loosely typed dictionaries.
They are converted into immutable :class:`Reading` objects here, once, so
the aggregation code never has to inspect untyped fields itself.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.analytics.errors import ReadingParseError

logger = logging.getLogger(__name__)

DEVICE_ID_FIELD = "deviceId"
TIMESTAMP_FIELD = "timestamp"


@dataclass(frozen=True)
class Reading:
    """One timestamped telemetry sample for a device.

    Attributes:
        device_id: Identifier of the reporting device.
        timestamp: Local wall-clock time of the sample.
        raw_fields: The original payload fields, metric candidates included.
    """

    device_id: str
    timestamp: datetime
    raw_fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def counter_name(self) -> Optional[str]:
        value = self.raw_fields.get("counterName")
        return str(value) if value else None

    @property
    def wait_time(self) -> Optional[float]:
        return to_float(self.raw_fields.get("waitTime"))

    @property
    def in_count(self) -> Optional[float]:
        return to_float(self.raw_fields.get("inCount"))

    @property
    def status(self) -> Optional[str]:
        value = self.raw_fields.get("status")
        return str(value) if value is not None else None


def to_float(value: Any) -> Optional[float]:
    """Coerce a loosely typed payload value to a float.

    Booleans, ``None``, NaN, infinities and strings that do not parse are
    rejected.

    Args:
        value: Raw field value from a payload.

    Returns:
        The float value, or None when the value is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(result):
        return None
    return result


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into a naive local datetime.

    An explicit UTC offset (or a trailing ``Z``) is accepted and dropped,
    keeping the wall-clock fields as sent by the device.

    Args:
        value: A datetime or an ISO-8601 string.

    Returns:
        Naive datetime.

    Raises:
        ReadingParseError: If the value is missing or not ISO-8601.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        raise ReadingParseError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ReadingParseError(f"Invalid timestamp: {value!r}") from exc
    return parsed.replace(tzinfo=None)


def decode_reading(
    payload: Mapping[str, Any], device_id: Optional[str] = None
) -> Reading:
    """Decode one raw telemetry payload into a Reading.

    Args:
        payload: Raw reading as returned by the telemetry service.
        device_id: Device to attribute the reading to. Overrides the
            payload's own ``deviceId``, which is how readings fetched per
            device are tagged.

    Returns:
        Decoded Reading.

    Raises:
        ReadingParseError: If the payload is not a mapping, or the device id
            or timestamp is missing or malformed.
    """
    if not isinstance(payload, Mapping):
        raise ReadingParseError(f"Reading payload is not an object: {payload!r}")

    resolved_device = device_id or payload.get(DEVICE_ID_FIELD)
    if not resolved_device:
        raise ReadingParseError("Reading payload has no deviceId")
    if TIMESTAMP_FIELD not in payload:
        raise ReadingParseError("Reading payload has no timestamp")

    timestamp = parse_timestamp(payload[TIMESTAMP_FIELD])
    fields = dict(payload)
    fields[DEVICE_ID_FIELD] = str(resolved_device)
    return Reading(device_id=str(resolved_device), timestamp=timestamp, raw_fields=fields)


def decode_readings(
    payloads: Iterable[Any], device_id: Optional[str] = None
) -> list[Reading]:
    """Decode a batch of payloads, dropping the ones that do not parse."""
    readings = []
    skipped = 0
    for payload in payloads:
        try:
            readings.append(decode_reading(payload, device_id))
        except ReadingParseError as exc:
            skipped += 1
            logger.debug("Skipping reading: %s", exc)
    if skipped:
        logger.debug("Dropped %d undecodable readings", skipped)
    return readings


def filter_range(
    readings: Iterable[Reading], start: datetime, end: datetime
) -> list[Reading]:
    """Keep readings whose timestamp lies within ``[start, end]`` inclusive."""
    return [r for r in readings if start <= r.timestamp <= end]
