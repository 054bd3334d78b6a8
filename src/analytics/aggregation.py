"""Cross-device aggregation of bucketed readings.

Each bucket holds one value per reporting device. The counter-level point
for the bucket is the cumulative total across devices plus the per-device
average, peak and minimum.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from src.analytics.bucketing import Bucket, BucketPolicy, bucket_readings
from src.analytics.intervals import interval_to_minutes
from src.analytics.policy import DEFAULT_POLICY, MetricPolicy
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)


@dataclass
class CounterAggregatePoint:
    """Counter-level statistics for one time bucket.

    Attributes:
        timestamp: Bucket start.
        cumulative_total: Sum of the device values in the bucket.
        average_per_device: Mean device value.
        max_per_device: Highest device value.
        min_per_device: Lowest device value.
        active_device_count: Devices that reported a usable value.
        total_device_count: Devices configured for the counter. A value above
            ``active_device_count`` signals partial reporting.
    """

    timestamp: datetime
    cumulative_total: float
    average_per_device: float
    max_per_device: float
    min_per_device: float
    active_device_count: int
    total_device_count: int

    @property
    def is_partial(self) -> bool:
        return self.active_device_count < self.total_device_count


def device_value_stats(values: Sequence[float]) -> tuple[float, float, float]:
    """Return ``(average, max, min)`` of device values, zeros when empty."""
    if not values:
        return 0.0, 0.0, 0.0
    return float(np.mean(values)), float(max(values)), float(min(values))


def aggregate_bucket(bucket: Bucket, total_device_count: int) -> CounterAggregatePoint:
    """Collapse one bucket into a counter-level point."""
    values = list(bucket.per_device_values.values())
    average, maximum, minimum = device_value_stats(values)
    return CounterAggregatePoint(
        timestamp=bucket.start,
        cumulative_total=sum(values),
        average_per_device=average,
        max_per_device=maximum,
        min_per_device=minimum,
        active_device_count=len(values),
        total_device_count=total_device_count,
    )


def aggregate_buckets(
    buckets: Iterable[Bucket], total_device_count: int
) -> list[CounterAggregatePoint]:
    """Aggregate buckets into counter-level points ordered by time.

    Args:
        buckets: Buckets produced by the bucketer.
        total_device_count: Devices configured for the counter.

    Returns:
        One point per non-empty bucket, ascending by timestamp.
    """
    points = [
        aggregate_bucket(bucket, total_device_count)
        for bucket in buckets
        if bucket.per_device_values
    ]
    points.sort(key=lambda p: p.timestamp)
    return points


def calculate_cumulative_trends(
    readings: Iterable[Reading],
    interval: str,
    total_device_count: int,
    bucket_policy: BucketPolicy = BucketPolicy.OVERWRITE,
    metric_policy: MetricPolicy = DEFAULT_POLICY,
) -> list[CounterAggregatePoint]:
    """Bucket readings by interval and sum them across devices.

    Args:
        readings: Readings of every device of the counter.
        interval: Interval token such as ``15min`` or ``1hour``.
        total_device_count: Devices configured for the counter.
        bucket_policy: Merge strategy for repeated device values.
        metric_policy: Policy used to extract metric values.

    Returns:
        Cumulative trend points ordered by time.
    """
    minutes = interval_to_minutes(interval)
    buckets = bucket_readings(
        readings, minutes, policy=bucket_policy, metric_policy=metric_policy
    )
    points = aggregate_buckets(buckets, total_device_count)
    logger.debug(
        "Aggregated %d buckets at %d-minute interval", len(points), minutes
    )
    return points
