"""Summary statistics and trend classification for counter series.

Two figures are reported side by side: statistics over the bucketed
cumulative series (one value per bucket) and the per-reading average over
every raw extracted value. The second is sparser-grained and is not
interchangeable with the first.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from src.analytics.aggregation import CounterAggregatePoint
from src.analytics.policy import DEFAULT_POLICY, MetricPolicy, extract_values
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)

DEFAULT_TREND_MIN_SAMPLES = 10
STABLE_CHANGE_PERCENT = 5.0


class TrendLabel(str, Enum):
    """Direction of a numeric series."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class SummaryStatistics:
    """Overall statistics of a counter over a time range.

    Attributes:
        average: Mean of the bucketed cumulative series.
        max: Peak of the bucketed cumulative series.
        min: Lowest bucket of the cumulative series.
        median: Median of the bucketed cumulative series.
        std_dev: Population standard deviation of the cumulative series.
        average_per_reading: Mean of every raw extracted reading value.
        efficiency: Percentage of headroom between average and peak.
        congestion_rate: Policy-defined congestion percentage.
        trend: Direction of the cumulative series.
        total_readings: Number of raw readings with a usable value.
    """

    average: float = 0.0
    max: float = 0.0
    min: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    average_per_reading: float = 0.0
    efficiency: float = 0.0
    congestion_rate: float = 0.0
    trend: TrendLabel = TrendLabel.INSUFFICIENT_DATA
    total_readings: int = 0

    @classmethod
    def empty(cls) -> "SummaryStatistics":
        """Statistics for a range with no usable readings."""
        return cls()


def median(values: Sequence[float]) -> float:
    """Median of the values; the mean of the two middle ones for even sizes."""
    if not values:
        return 0.0
    return float(np.median(values))


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation, 0 for an empty series."""
    if not values:
        return 0.0
    return float(np.std(values))


def efficiency(average: float, maximum: float) -> float:
    """Efficiency percentage ``max(0, (1 - average / maximum) * 100)``.

    A zero peak means the counter was never loaded and scores 100.
    """
    return DEFAULT_POLICY.efficiency(average, maximum)


def classify_trend(
    values: Sequence[float], min_samples: int = DEFAULT_TREND_MIN_SAMPLES
) -> TrendLabel:
    """Label a series by comparing the means of its two halves.

    Args:
        values: Ordered numeric series.
        min_samples: Shortest series that gets a direction.

    Returns:
        ``stable`` when the second-half mean moved less than 5% from the
        first-half mean, otherwise ``increasing`` or ``decreasing``.
        ``insufficient_data`` for series shorter than ``min_samples``.
    """
    if len(values) < max(min_samples, 2):
        return TrendLabel.INSUFFICIENT_DATA

    split = len(values) // 2
    first_mean = float(np.mean(values[:split]))
    second_mean = float(np.mean(values[split:]))
    change = (second_mean - first_mean) / first_mean * 100 if first_mean != 0 else 0.0

    if abs(change) < STABLE_CHANGE_PERCENT:
        return TrendLabel.STABLE
    if change > 0:
        return TrendLabel.INCREASING
    return TrendLabel.DECREASING


def summarize_series(
    series: Sequence[float],
    raw_values: Sequence[float],
    policy: MetricPolicy = DEFAULT_POLICY,
    min_trend_samples: int = DEFAULT_TREND_MIN_SAMPLES,
) -> SummaryStatistics:
    """Summarise an ordered series alongside the raw values behind it.

    Args:
        series: Ordered values, one per bucket.
        raw_values: Every raw extracted reading value.
        policy: Policy supplying the congestion and efficiency formulas.
        min_trend_samples: Shortest series that gets a trend direction.

    Returns:
        Summary statistics, or the empty summary when ``series`` is empty.
    """
    if not series:
        return SummaryStatistics.empty()

    average = float(np.mean(series))
    maximum = float(max(series))
    return SummaryStatistics(
        average=average,
        max=maximum,
        min=float(min(series)),
        median=median(series),
        std_dev=std_dev(series),
        average_per_reading=float(np.mean(raw_values)) if raw_values else 0.0,
        efficiency=policy.efficiency(average, maximum),
        congestion_rate=policy.congestion_rate(average, maximum, raw_values),
        trend=classify_trend(series, min_trend_samples),
        total_readings=len(raw_values),
    )


def summarize(
    points: Sequence[CounterAggregatePoint],
    readings: Iterable[Reading],
    policy: MetricPolicy = DEFAULT_POLICY,
    min_trend_samples: int = DEFAULT_TREND_MIN_SAMPLES,
) -> SummaryStatistics:
    """Summarise a counter's cumulative trend and the raw readings behind it.

    Args:
        points: Cumulative trend points ordered by time.
        readings: The readings the points were built from.
        policy: Metric policy used for extraction and formulas.
        min_trend_samples: Shortest series that gets a trend direction.

    Returns:
        Summary statistics for the range.
    """
    series = [p.cumulative_total for p in points]
    return summarize_series(
        series, extract_values(readings, policy), policy, min_trend_samples
    )


def summarize_values(
    values: Sequence[float],
    policy: MetricPolicy = DEFAULT_POLICY,
    min_trend_samples: int = DEFAULT_TREND_MIN_SAMPLES,
) -> SummaryStatistics:
    """Summarise a flat series where every value is its own sample."""
    return summarize_series(values, values, policy, min_trend_samples)
