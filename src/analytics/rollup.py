"""Historical rollups at calendar granularities.

Raw readings are regrouped by calendar bucket key (hour, day, ISO week or
month) independently of interval bucketing. The upstream service also
publishes pre-aggregated hourly totals per counter; those are rolled up
into daily, weekly and monthly totals here as well.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from src.analytics.aggregation import device_value_stats
from src.analytics.bucketing import BucketPolicy, group_by_device
from src.analytics.errors import ReadingParseError
from src.analytics.intervals import Granularity, bucket_key
from src.analytics.policy import DEFAULT_POLICY, MetricPolicy, round_half_up
from src.analytics.readings import Reading, parse_timestamp, to_float

logger = logging.getLogger(__name__)

PERIOD_TYPES = ("daily", "weekly", "monthly")


@dataclass
class HistoricalRollupPoint:
    """Counter statistics for one calendar bucket.

    Attributes:
        bucket_key: Calendar key, formatted per granularity.
        average_queue_length: Mean device value in the bucket.
        total_queue_length: Sum of the device values in the bucket.
        peak_queue: Highest device value.
        min_queue: Lowest device value.
        active_device_count: Devices that reported in the bucket.
        total_device_count: Devices configured for the counter.
    """

    bucket_key: str
    average_queue_length: float
    total_queue_length: float
    peak_queue: float
    min_queue: float
    active_device_count: int
    total_device_count: int


@dataclass
class HourlyAggregate:
    """One pre-aggregated hourly record from the telemetry service."""

    counter_name: str
    period_start: datetime
    total_count: float
    peak_queue: Optional[float] = None
    peak_wait_time: Optional[float] = None
    congestion_index: Optional[float] = None


@dataclass
class PeriodTotal:
    """Total count of a counter over a day, week or month."""

    period_start: datetime
    total_count: float


def rollup(
    readings: Iterable[Reading],
    granularity: Granularity,
    total_device_count: int,
    bucket_policy: BucketPolicy = BucketPolicy.OVERWRITE,
    metric_policy: MetricPolicy = DEFAULT_POLICY,
) -> list[HistoricalRollupPoint]:
    """Regroup readings by calendar bucket and aggregate across devices.

    Args:
        readings: Readings of every device of the counter.
        granularity: Calendar unit to group by.
        total_device_count: Devices configured for the counter.
        bucket_policy: Merge strategy for repeated device values.
        metric_policy: Policy used to extract metric values.

    Returns:
        One point per calendar key present in the data, ordered by key.
        Keys without data are omitted.
    """
    grouped = group_by_device(
        readings,
        lambda ts: bucket_key(ts, granularity),
        policy=bucket_policy,
        metric_policy=metric_policy,
    )

    points = []
    for key, devices in grouped.items():
        values = list(devices.values())
        average, maximum, minimum = device_value_stats(values)
        points.append(
            HistoricalRollupPoint(
                bucket_key=key,
                average_queue_length=round_half_up(average),
                total_queue_length=round_half_up(sum(values)),
                peak_queue=round_half_up(maximum),
                min_queue=round_half_up(minimum),
                active_device_count=len(values),
                total_device_count=total_device_count,
            )
        )
    logger.debug("Rolled up %d %s buckets", len(points), granularity.value)
    return points


def decode_hourly_aggregate(payload: Mapping[str, Any]) -> HourlyAggregate:
    """Decode one record of the upstream hourly aggregation endpoint.

    Raises:
        ReadingParseError: If the counter name, period start or total count
            is missing or malformed.
    """
    if not isinstance(payload, Mapping):
        raise ReadingParseError(f"Aggregate payload is not an object: {payload!r}")
    counter_name = payload.get("counterName")
    if not counter_name:
        raise ReadingParseError("Aggregate payload has no counterName")
    total = to_float(payload.get("totalCount"))
    if total is None:
        raise ReadingParseError(f"Aggregate payload has no usable totalCount: {payload!r}")

    return HourlyAggregate(
        counter_name=str(counter_name),
        period_start=parse_timestamp(payload.get("periodStart")),
        total_count=total,
        peak_queue=to_float(payload.get("peakQueue")),
        peak_wait_time=to_float(payload.get("peakWaitTime")),
        congestion_index=to_float(payload.get("congestionIndex")),
    )


def decode_hourly_aggregates(payloads: Iterable[Any]) -> list[HourlyAggregate]:
    """Decode hourly aggregate records, dropping the malformed ones."""
    records = []
    for payload in payloads:
        try:
            records.append(decode_hourly_aggregate(payload))
        except ReadingParseError as exc:
            logger.debug("Skipping hourly aggregate: %s", exc)
    return records


def _period_start(day: date, period: str) -> date:
    if period == "daily":
        return day
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def rollup_period_totals(
    records: Iterable[HourlyAggregate],
    period: str,
    counter_name: Optional[str] = None,
) -> list[PeriodTotal]:
    """Sum hourly aggregate totals into daily, weekly or monthly totals.

    Weeks start on Monday; months on their first day.

    Args:
        records: Decoded hourly aggregates.
        period: ``daily``, ``weekly`` or ``monthly``. Case-insensitive.
        counter_name: Keep only records of this upstream counter name,
            compared case-insensitively. None keeps every record.

    Returns:
        Period totals ordered by period start.

    Raises:
        ValueError: If ``period`` is not a supported period type.
    """
    period = period.strip().lower()
    if period not in PERIOD_TYPES:
        raise ValueError("periodType must be daily / weekly / monthly")

    totals: dict[date, float] = defaultdict(float)
    for record in records:
        if counter_name and record.counter_name.lower() != counter_name.lower():
            continue
        totals[_period_start(record.period_start.date(), period)] += record.total_count

    return [
        PeriodTotal(period_start=datetime.combine(day, datetime.min.time()), total_count=total)
        for day, total in sorted(totals.items())
    ]
