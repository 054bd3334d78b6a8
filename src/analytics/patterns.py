"""Hour-of-day patterns and footfall versus wait time analysis.

Both analyses group readings by the hour of the day (0-23), regardless of
date, to show when a counter is busiest.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from src.analytics.aggregation import device_value_stats
from src.analytics.policy import DEFAULT_POLICY, MetricPolicy, round_half_up
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)

ACCEPTABLE_WAIT_MINUTES = 5.0


@dataclass
class HourlyPatternPoint:
    """Cumulative counter load for one hour of the day.

    Attributes:
        hour: Hour of the day, 0-23.
        average_total: Mean cumulative total across the hour's minutes.
        max_total: Highest cumulative total.
        min_total: Lowest cumulative total.
        data_point_count: Minutes with at least one reading.
    """

    hour: int
    average_total: float
    max_total: float
    min_total: float
    data_point_count: int


@dataclass
class HourlyFootfallWait:
    """Footfall and wait time figures for one hour of the day."""

    hour: int
    total_footfall: float = 0.0
    average_footfall: float = 0.0
    peak_footfall: float = 0.0
    min_footfall: float = 0.0
    average_wait_time: float = 0.0
    max_wait_time: float = 0.0
    min_wait_time: float = 0.0
    footfall_wait_ratio: float = 0.0
    data_point_count: int = 0
    active_devices: int = 0

    @property
    def hour_label(self) -> str:
        return f"{self.hour:02d}:00 - {self.hour + 1:02d}:00"


@dataclass
class FootfallWaitSummary:
    """Daily footfall and wait time summary.

    ``service_level`` is the share of wait time readings at or below
    :data:`ACCEPTABLE_WAIT_MINUTES`.
    """

    total_footfall: float = 0.0
    average_footfall: float = 0.0
    peak_footfall: float = 0.0
    footfall_readings: int = 0
    average_wait_time: float = 0.0
    max_wait_time: float = 0.0
    min_wait_time: float = 0.0
    wait_time_readings: int = 0
    service_level: Optional[float] = None
    overall_footfall_wait_ratio: Optional[float] = None


@dataclass
class FootfallWaitAnalysis:
    """Hourly breakdown, daily summary and notable hours for one day."""

    hourly: list[HourlyFootfallWait] = field(default_factory=list)
    summary: FootfallWaitSummary = field(default_factory=FootfallWaitSummary)
    peak_footfall_hour: Optional[HourlyFootfallWait] = None
    peak_wait_time_hour: Optional[HourlyFootfallWait] = None
    best_performing_hour: Optional[HourlyFootfallWait] = None
    worst_performing_hour: Optional[HourlyFootfallWait] = None


def hourly_pattern(
    readings: Iterable[Reading], policy: MetricPolicy = DEFAULT_POLICY
) -> list[HourlyPatternPoint]:
    """Compute the cumulative load per hour of the day.

    Within an hour, readings are merged per minute across devices (last
    reading of a device wins) and each minute's cumulative total becomes
    one sample of that hour.

    Args:
        readings: Readings of every device of the counter.
        policy: Metric policy used for extraction.

    Returns:
        Points for the hours that have data, ascending by hour.
    """
    minutes: dict[int, dict] = defaultdict(dict)
    for reading in readings:
        value = policy.extract(reading)
        if value is None:
            continue
        minute = reading.timestamp.replace(second=0, microsecond=0)
        minutes[reading.timestamp.hour].setdefault(minute, {})[reading.device_id] = value

    pattern = []
    for hour in sorted(minutes):
        totals = [sum(devices.values()) for devices in minutes[hour].values()]
        average, maximum, minimum = device_value_stats(totals)
        pattern.append(
            HourlyPatternPoint(
                hour=hour,
                average_total=average,
                max_total=maximum,
                min_total=minimum,
                data_point_count=len(totals),
            )
        )
    return pattern


def peak_hours(pattern: Sequence[HourlyPatternPoint], n: int = 3) -> list[int]:
    """Hours with the highest average load, busiest first."""
    ranked = sorted(pattern, key=lambda p: p.average_total, reverse=True)
    return [p.hour for p in ranked[:n]]


def low_hours(pattern: Sequence[HourlyPatternPoint], n: int = 3) -> list[int]:
    """Hours with the lowest average load, quietest first."""
    ranked = sorted(pattern, key=lambda p: p.average_total)
    return [p.hour for p in ranked[:n]]


def _hour_figures(hour: int, readings: list[Reading]) -> HourlyFootfallWait:
    footfall = [r.in_count for r in readings if r.in_count is not None]
    waits = [r.wait_time for r in readings if r.wait_time is not None]

    avg_footfall, peak_footfall, min_footfall = device_value_stats(footfall)
    avg_wait, max_wait, min_wait = device_value_stats(waits)
    ratio = avg_wait / avg_footfall if avg_footfall > 0 else 0.0

    return HourlyFootfallWait(
        hour=hour,
        total_footfall=round_half_up(sum(footfall)),
        average_footfall=round_half_up(avg_footfall),
        peak_footfall=round_half_up(peak_footfall),
        min_footfall=round_half_up(min_footfall),
        average_wait_time=round_half_up(avg_wait),
        max_wait_time=round_half_up(max_wait),
        min_wait_time=round_half_up(min_wait),
        footfall_wait_ratio=round_half_up(ratio),
        data_point_count=len(readings),
        active_devices=len({r.device_id for r in readings}),
    )


def _daily_summary(readings: Sequence[Reading]) -> FootfallWaitSummary:
    footfall = [r.in_count for r in readings if r.in_count is not None]
    waits = [r.wait_time for r in readings if r.wait_time is not None]
    summary = FootfallWaitSummary()

    if footfall:
        summary.total_footfall = round_half_up(sum(footfall))
        summary.average_footfall = round_half_up(float(np.mean(footfall)))
        summary.peak_footfall = round_half_up(max(footfall))
        summary.footfall_readings = len(footfall)

    if waits:
        summary.average_wait_time = round_half_up(float(np.mean(waits)))
        summary.max_wait_time = round_half_up(max(waits))
        summary.min_wait_time = round_half_up(min(waits))
        summary.wait_time_readings = len(waits)
        acceptable = sum(1 for w in waits if w <= ACCEPTABLE_WAIT_MINUTES)
        summary.service_level = round_half_up(acceptable * 100.0 / len(waits))

    if footfall and waits:
        avg_footfall = float(np.mean(footfall))
        summary.overall_footfall_wait_ratio = (
            round_half_up(float(np.mean(waits)) / avg_footfall) if avg_footfall > 0 else 0.0
        )
    return summary


def _service_ratio(hour: HourlyFootfallWait) -> float:
    if hour.total_footfall > 0:
        return hour.average_wait_time / hour.total_footfall
    return float("inf")


def footfall_vs_wait_time(readings: Sequence[Reading]) -> FootfallWaitAnalysis:
    """Relate foot traffic (``inCount``) to wait times hour by hour.

    Args:
        readings: Readings of every device of the counter for one day.

    Returns:
        Hourly breakdown, daily summary and the notable hours. Hours with
        neither footfall nor wait time values are omitted.
    """
    by_hour: dict[int, list[Reading]] = defaultdict(list)
    for reading in readings:
        by_hour[reading.timestamp.hour].append(reading)

    hourly = []
    for hour in sorted(by_hour):
        hour_readings = by_hour[hour]
        if any(r.in_count is not None or r.wait_time is not None for r in hour_readings):
            hourly.append(_hour_figures(hour, hour_readings))

    analysis = FootfallWaitAnalysis(hourly=hourly, summary=_daily_summary(readings))
    if hourly:
        analysis.peak_footfall_hour = max(hourly, key=lambda h: h.total_footfall)
        analysis.peak_wait_time_hour = max(hourly, key=lambda h: h.average_wait_time)
        analysis.best_performing_hour = min(hourly, key=_service_ratio)
        analysis.worst_performing_hour = max(hourly, key=lambda h: h.footfall_wait_ratio)
    return analysis
