"""Grouping of readings into per-device time buckets.

Readings are grouped by ``(bucket, device)``. When a device reports more
than once inside the same bucket the :class:`BucketPolicy` decides whether
the last reading replaces the earlier ones or the values are added up.
"""

import logging
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TypeVar

from src.analytics.intervals import round_to_interval
from src.analytics.policy import DEFAULT_POLICY, MetricPolicy
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class BucketPolicy(str, Enum):
    """Merge strategy for several readings of one device in one bucket."""

    OVERWRITE = "overwrite"
    SUM = "sum"


@dataclass
class Bucket:
    """A fixed-width time window with one value per reporting device.

    Attributes:
        start: Start of the window.
        interval_minutes: Width of the window in minutes.
        per_device_values: Metric value per device id.
    """

    start: datetime
    interval_minutes: int
    per_device_values: dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> float:
        return sum(self.per_device_values.values())


def resolve_bucket_policy(name: str) -> BucketPolicy:
    """Map a configuration string to a BucketPolicy.

    Raises:
        ValueError: If the name is not ``overwrite`` or ``sum``.
    """
    try:
        return BucketPolicy(name.strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown bucket policy '{name}', expected 'overwrite' or 'sum'"
        ) from None


def group_by_device(
    readings: Iterable[Reading],
    key_fn: Callable[[datetime], K],
    policy: BucketPolicy = BucketPolicy.OVERWRITE,
    metric_policy: MetricPolicy = DEFAULT_POLICY,
) -> dict[K, dict[str, float]]:
    """Group metric values by bucket key, then by device.

    Readings are consumed in the given order, so under OVERWRITE the last
    reading of a device within a bucket wins. Readings without a metric
    value are skipped.

    Args:
        readings: Decoded readings.
        key_fn: Maps a reading timestamp to its bucket key.
        policy: Merge strategy for repeated device values.
        metric_policy: Policy used to extract the metric value.

    Returns:
        Mapping of bucket key to ``{device_id: value}``, ordered by key.
    """
    grouped: dict[K, dict[str, float]] = {}
    skipped = 0
    for reading in readings:
        value = metric_policy.extract(reading)
        if value is None:
            skipped += 1
            continue
        devices = grouped.setdefault(key_fn(reading.timestamp), {})
        if policy is BucketPolicy.SUM:
            devices[reading.device_id] = devices.get(reading.device_id, 0.0) + value
        else:
            devices[reading.device_id] = value

    if skipped:
        logger.debug("Skipped %d readings without a metric value", skipped)
    return {key: grouped[key] for key in sorted(grouped)}


def bucket_readings(
    readings: Iterable[Reading],
    interval_minutes: int,
    policy: BucketPolicy = BucketPolicy.OVERWRITE,
    metric_policy: MetricPolicy = DEFAULT_POLICY,
) -> list[Bucket]:
    """Group readings into interval buckets.

    Args:
        readings: Decoded readings, already filtered to the time range.
        interval_minutes: Bucket width in minutes.
        policy: Merge strategy for repeated device values.
        metric_policy: Policy used to extract the metric value.

    Returns:
        Buckets ordered by start time. Empty buckets are not produced.
    """
    grouped = group_by_device(
        readings,
        lambda ts: round_to_interval(ts, interval_minutes),
        policy=policy,
        metric_policy=metric_policy,
    )
    return [
        Bucket(start=start, interval_minutes=interval_minutes, per_device_values=values)
        for start, values in grouped.items()
    ]
