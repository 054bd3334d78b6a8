"""Counter analytics orchestration.

:class:`CounterAnalyticsService` resolves counters through the registry,
fetches their devices' readings from the telemetry service and runs the
aggregation engine over them. Every call builds its results from scratch;
nothing is cached between calls.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional

from src.analytics.aggregation import CounterAggregatePoint, calculate_cumulative_trends
from src.analytics.bucketing import resolve_bucket_policy
from src.analytics.contribution import DeviceContribution, device_breakdown
from src.analytics.errors import UpstreamUnavailableError
from src.analytics.footfall import (
    FootfallSummary,
    combine_summaries,
    comparison_windows,
    footfall_summary,
)
from src.analytics.intervals import Granularity, resolve_granularity
from src.analytics.live import (
    DeviceLiveStatus,
    LiveStatusReport,
    device_live_status,
    live_report,
)
from src.analytics.patterns import (
    FootfallWaitAnalysis,
    HourlyPatternPoint,
    footfall_vs_wait_time,
    hourly_pattern,
    low_hours,
    peak_hours,
)
from src.analytics.policy import get_policy, round_half_up
from src.analytics.rollup import (
    HistoricalRollupPoint,
    PeriodTotal,
    decode_hourly_aggregates,
    rollup,
    rollup_period_totals,
)
from src.analytics.statistics import SummaryStatistics, summarize
from src.telemetry.client import TelemetryClient
from src.telemetry.fetcher import FetchResult, fetch_counter_readings, fetch_latest_readings
from src.utils.config import AnalyticsConfig, CounterDefinition, CounterRegistry, DeviceDefinition

logger = logging.getLogger(__name__)

FILTER_TYPES = ("average", "max", "min")


@dataclass
class QueueTrendsResult:
    """Interval trend of one counter over a time range."""

    counter_code: str
    counter_name: str
    interval: str
    start: datetime
    end: datetime
    device_count: int
    trends: list[CounterAggregatePoint] = field(default_factory=list)
    statistics: SummaryStatistics = field(default_factory=SummaryStatistics)
    device_breakdown: list[DeviceContribution] = field(default_factory=list)
    failed_devices: list[str] = field(default_factory=list)


@dataclass
class HistoricalTrendsResult:
    """Calendar rollup of one counter over a time range."""

    counter_code: str
    counter_name: str
    granularity: Granularity
    start: datetime
    end: datetime
    device_count: int
    points: list[HistoricalRollupPoint] = field(default_factory=list)
    statistics: SummaryStatistics = field(default_factory=SummaryStatistics)
    failed_devices: list[str] = field(default_factory=list)


@dataclass
class CounterSummary:
    """Range statistics of one counter, used by comparisons and summaries."""

    counter_code: str
    counter_name: str
    counter_type: Optional[str]
    device_count: int
    statistics: SummaryStatistics
    filter_value: float = 0.0


@dataclass
class ComparisonResult:
    """Several counters ranked by a chosen statistic, lowest first.

    ``best`` is the counter with the lowest filter value and ``worst`` the
    one with the highest.
    """

    counter_codes: list[str]
    filter_type: str
    start: datetime
    end: datetime
    comparisons: list[CounterSummary] = field(default_factory=list)
    skipped_codes: list[str] = field(default_factory=list)

    @property
    def best(self) -> Optional[CounterSummary]:
        return self.comparisons[0] if self.comparisons else None

    @property
    def worst(self) -> Optional[CounterSummary]:
        return self.comparisons[-1] if self.comparisons else None


@dataclass
class PerformanceAnalysis:
    """Hour-of-day pattern of the last day plus range statistics."""

    counter_code: str
    counter_name: str
    counter_type: Optional[str]
    device_count: int
    start: datetime
    end: datetime
    hourly_pattern: list[HourlyPatternPoint] = field(default_factory=list)
    statistics: SummaryStatistics = field(default_factory=SummaryStatistics)
    peak_hours: list[int] = field(default_factory=list)
    low_hours: list[int] = field(default_factory=list)


@dataclass
class CurrentDayKPIs:
    """Headline figures for a counter since midnight."""

    counter_code: str
    counter_name: str
    date: date
    average_queue_length: float = 0.0
    peak_queue: float = 0.0
    efficiency: float = 0.0
    total_readings: int = 0


@dataclass
class CounterFootfall:
    """Footfall comparison windows of one counter."""

    counter_code: str
    counter_name: str
    device_count: int
    summary: FootfallSummary
    failed_devices: list[str] = field(default_factory=list)


@dataclass
class MultiCounterFootfall:
    """Per-counter footfall plus the combined view across counters."""

    counter_codes: list[str]
    generated_at: datetime
    counters: list[CounterFootfall] = field(default_factory=list)
    combined: Optional[FootfallSummary] = None
    skipped_codes: list[str] = field(default_factory=list)


@dataclass
class FootfallWaitResult:
    """Footfall versus wait time of one counter for one day."""

    counter_code: str
    counter_name: str
    date: date
    device_count: int
    analysis: FootfallWaitAnalysis = field(default_factory=FootfallWaitAnalysis)


@dataclass
class PeriodTrendsResult:
    """Daily, weekly or monthly totals from the upstream hourly aggregates."""

    counter_code: str
    counter_name: str
    period: str
    start: datetime
    end: datetime
    totals: list[PeriodTotal] = field(default_factory=list)


@dataclass
class DeviceStatusResult:
    """Latest figures of one device and the counter it belongs to."""

    counter_code: str
    counter_name: str
    device: DeviceLiveStatus


class CounterAnalyticsService:
    """Entry point for every counter analytics operation.

    Args:
        client: Telemetry service client.
        registry: Counter and device definitions.
        config: Analytics defaults. Selects the metric policy, the bucket
            merge policy and the trend sample threshold.
        max_workers: Upper bound on concurrent device fetches.
    """

    def __init__(
        self,
        client: TelemetryClient,
        registry: CounterRegistry,
        config: Optional[AnalyticsConfig] = None,
        max_workers: int = 8,
    ) -> None:
        self.client = client
        self.registry = registry
        self.config = config or AnalyticsConfig()
        self.max_workers = max_workers

        policy = get_policy(self.config.metric_policy)
        if self.config.congestion_threshold is not None:
            policy = policy.with_threshold(self.config.congestion_threshold)
        self.metric_policy = policy
        self.bucket_policy = resolve_bucket_policy(self.config.bucket_policy)
        self.trend_min_samples = self.config.trend_min_samples

        logger.debug(
            "Analytics service using policy %s v%d, bucket policy %s",
            policy.name,
            policy.version,
            self.bucket_policy.value,
        )

    def _fetch(
        self, devices: Sequence[DeviceDefinition], start: datetime, end: datetime
    ) -> FetchResult:
        return fetch_counter_readings(
            self.client, devices, start, end, max_workers=self.max_workers
        )

    def _range_statistics(
        self, counter: CounterDefinition, readings: Sequence
    ) -> SummaryStatistics:
        points = calculate_cumulative_trends(
            readings,
            self.config.default_interval,
            len(counter.devices),
            bucket_policy=self.bucket_policy,
            metric_policy=self.metric_policy,
        )
        return summarize(points, readings, self.metric_policy, self.trend_min_samples)

    def queue_trends(
        self,
        counter_code: str,
        start: datetime,
        end: datetime,
        interval: Optional[str] = None,
    ) -> QueueTrendsResult:
        """Cumulative interval trend, statistics and device breakdown.

        Args:
            counter_code: Counter to analyse.
            start: Range start, inclusive.
            end: Range end, inclusive.
            interval: Interval token. Defaults to the configured interval.

        Raises:
            CounterNotFoundError: If the counter is not registered.
        """
        counter = self.registry.get(counter_code)
        interval = interval or self.config.default_interval
        logger.info(
            "Fetching queue trends for counter %s from %s to %s with interval %s",
            counter_code,
            start,
            end,
            interval,
        )
        result = QueueTrendsResult(
            counter_code=counter.code,
            counter_name=counter.name,
            interval=interval,
            start=start,
            end=end,
            device_count=len(counter.devices),
        )
        if not counter.devices:
            logger.warning("Counter %s has no devices", counter_code)
            return result

        fetched = self._fetch(counter.devices, start, end)
        result.failed_devices = fetched.failed_devices
        if fetched.is_empty:
            return result

        result.trends = calculate_cumulative_trends(
            fetched.readings,
            interval,
            len(counter.devices),
            bucket_policy=self.bucket_policy,
            metric_policy=self.metric_policy,
        )
        result.statistics = summarize(
            result.trends, fetched.readings, self.metric_policy, self.trend_min_samples
        )
        result.device_breakdown = device_breakdown(
            fetched.readings, counter.device_names, self.metric_policy
        )
        return result

    def historical_trends(
        self,
        counter_code: str,
        start: datetime,
        end: datetime,
        granularity: Optional[str] = None,
    ) -> HistoricalTrendsResult:
        """Calendar rollup of a counter.

        Raises:
            CounterNotFoundError: If the counter is not registered.
            ValueError: If the granularity is not hour, day, week or month.
        """
        counter = self.registry.get(counter_code)
        resolved = resolve_granularity(
            granularity or self.config.default_granularity, strict=True
        )
        logger.info(
            "Fetching historical trends for counter %s from %s to %s by %s",
            counter_code,
            start,
            end,
            resolved.value,
        )
        result = HistoricalTrendsResult(
            counter_code=counter.code,
            counter_name=counter.name,
            granularity=resolved,
            start=start,
            end=end,
            device_count=len(counter.devices),
        )
        if not counter.devices:
            return result

        fetched = self._fetch(counter.devices, start, end)
        result.failed_devices = fetched.failed_devices
        if fetched.is_empty:
            return result

        result.points = rollup(
            fetched.readings,
            resolved,
            len(counter.devices),
            bucket_policy=self.bucket_policy,
            metric_policy=self.metric_policy,
        )
        result.statistics = self._range_statistics(counter, fetched.readings)
        return result

    def _counter_summary(
        self, counter: CounterDefinition, start: datetime, end: datetime
    ) -> Optional[CounterSummary]:
        if not counter.devices:
            return None
        fetched = self._fetch(counter.devices, start, end)
        if fetched.is_empty:
            return None
        return CounterSummary(
            counter_code=counter.code,
            counter_name=counter.name,
            counter_type=counter.counter_type,
            device_count=len(counter.devices),
            statistics=self._range_statistics(counter, fetched.readings),
        )

    def compare_counters(
        self,
        counter_codes: Sequence[str],
        start: datetime,
        end: datetime,
        filter_type: str = "average",
    ) -> ComparisonResult:
        """Rank counters by their average, peak or minimum load.

        Unknown counter codes are skipped with a warning. Counters without
        devices or readings are left out.

        Args:
            counter_codes: Counters to compare.
            start: Range start, inclusive.
            end: Range end, inclusive.
            filter_type: ``average``, ``max`` or ``min``. Anything else
                ranks by average.
        """
        filter_type = (filter_type or "average").lower()
        if filter_type not in FILTER_TYPES:
            logger.warning("Unknown filter type %r, ranking by average", filter_type)
            filter_type = "average"
        logger.info("Comparing %d counters with filter: %s", len(counter_codes), filter_type)

        result = ComparisonResult(
            counter_codes=list(counter_codes), filter_type=filter_type, start=start, end=end
        )
        for code in counter_codes:
            if code not in self.registry:
                logger.warning("Counter not found: %s", code)
                result.skipped_codes.append(code)
                continue

            summary = self._counter_summary(self.registry.get(code), start, end)
            if summary is None:
                continue
            stats = summary.statistics
            summary.filter_value = {
                "max": stats.max,
                "min": stats.min,
            }.get(filter_type, stats.average)
            result.comparisons.append(summary)

        result.comparisons.sort(key=lambda c: (c.filter_value, c.counter_code))
        return result

    def counters_summary(self, start: datetime, end: datetime) -> list[CounterSummary]:
        """Statistics of every active counter, ordered by average load."""
        logger.info("Fetching summary for all counters")
        summaries = []
        for counter in self.registry.active():
            summary = self._counter_summary(counter, start, end)
            if summary is not None:
                summaries.append(summary)
        summaries.sort(key=lambda s: (s.statistics.average, s.counter_code))
        return summaries

    def performance_analysis(
        self, counter_code: str, start: datetime, end: datetime
    ) -> PerformanceAnalysis:
        """Hourly pattern of the range's last day with range statistics.

        The hourly pattern and the peak and low hours cover only the
        calendar day of ``end``; the statistics cover the whole range.

        Raises:
            CounterNotFoundError: If the counter is not registered.
        """
        counter = self.registry.get(counter_code)
        logger.info("Analyzing counter performance: %s", counter_code)
        result = PerformanceAnalysis(
            counter_code=counter.code,
            counter_name=counter.name,
            counter_type=counter.counter_type,
            device_count=len(counter.devices),
            start=start,
            end=end,
        )
        if not counter.devices:
            return result

        fetched = self._fetch(counter.devices, start, end)
        if fetched.is_empty:
            return result

        last_day = [r for r in fetched.readings if r.timestamp.date() == end.date()]
        result.hourly_pattern = hourly_pattern(last_day, self.metric_policy)
        result.statistics = self._range_statistics(counter, fetched.readings)
        result.peak_hours = peak_hours(result.hourly_pattern)
        result.low_hours = low_hours(result.hourly_pattern)
        return result

    def current_day_kpis(
        self, counter_code: str, now: Optional[datetime] = None
    ) -> CurrentDayKPIs:
        """Average load, peak and efficiency since midnight.

        Raises:
            CounterNotFoundError: If the counter is not registered.
        """
        counter = self.registry.get(counter_code)
        now = now or datetime.now()
        logger.info("Fetching current day KPIs for counter: %s", counter_code)
        kpis = CurrentDayKPIs(
            counter_code=counter.code, counter_name=counter.name, date=now.date()
        )
        if not counter.devices:
            return kpis

        fetched = self._fetch(counter.devices, datetime.combine(now.date(), time.min), now)
        if fetched.is_empty:
            return kpis

        stats = self._range_statistics(counter, fetched.readings)
        kpis.average_queue_length = round_half_up(stats.average)
        kpis.peak_queue = round_half_up(stats.max)
        kpis.efficiency = round_half_up(stats.efficiency)
        kpis.total_readings = stats.total_readings
        return kpis

    def _footfall_for_devices(
        self, devices: Sequence[DeviceDefinition], now: datetime
    ) -> tuple[FootfallSummary, list[str]]:
        windows = comparison_windows(now)
        start = min(w.start for w in windows)
        fetched = self._fetch(devices, start, now)
        summary = footfall_summary(fetched.readings, now, len(devices), self.metric_policy)
        return summary, fetched.failed_devices

    def footfall_summary(
        self, counter_code: str, now: Optional[datetime] = None
    ) -> CounterFootfall:
        """Footfall of a counter for today and the four comparison days.

        Raises:
            CounterNotFoundError: If the counter is not registered.
        """
        counter = self.registry.get(counter_code)
        now = now or datetime.now()
        logger.info("Fetching footfall summary for counter: %s", counter_code)
        summary, failed = self._footfall_for_devices(counter.devices, now)
        return CounterFootfall(
            counter_code=counter.code,
            counter_name=counter.name,
            device_count=len(counter.devices),
            summary=summary,
            failed_devices=failed,
        )

    def multi_counter_footfall(
        self, counter_codes: Sequence[str], now: Optional[datetime] = None
    ) -> MultiCounterFootfall:
        """Footfall of several counters and their combined view.

        Unknown counter codes are skipped and logged.
        """
        now = now or datetime.now()
        logger.info("Fetching footfall summary for %d counters", len(counter_codes))
        result = MultiCounterFootfall(counter_codes=list(counter_codes), generated_at=now)
        for code in counter_codes:
            code = code.strip()
            if code not in self.registry:
                logger.error("Error fetching footfall for counter %s: not found", code)
                result.skipped_codes.append(code)
                continue
            result.counters.append(self.footfall_summary(code, now))

        result.combined = combine_summaries([c.summary for c in result.counters])
        return result

    def all_counters_footfall(self, now: Optional[datetime] = None) -> Optional[FootfallSummary]:
        """Footfall across every device of every active counter.

        Returns:
            The summary, or None when no active counter has devices.
        """
        now = now or datetime.now()
        devices = [d for c in self.registry.active() for d in c.devices]
        logger.info("Fetching footfall summary for all counters (%d devices)", len(devices))
        if not devices:
            return None
        summary, _ = self._footfall_for_devices(devices, now)
        return summary

    def footfall_vs_wait_time(
        self, counter_code: str, day: Optional[date] = None
    ) -> FootfallWaitResult:
        """Hourly footfall against wait time for one day.

        Raises:
            CounterNotFoundError: If the counter is not registered.
        """
        counter = self.registry.get(counter_code)
        day = day or date.today()
        logger.info(
            "Fetching daily footfall vs wait time for counter: %s on %s", counter_code, day
        )
        result = FootfallWaitResult(
            counter_code=counter.code,
            counter_name=counter.name,
            date=day,
            device_count=len(counter.devices),
        )
        if not counter.devices:
            return result

        fetched = self._fetch(
            counter.devices, datetime.combine(day, time.min), datetime.combine(day, time(23, 59, 59))
        )
        result.analysis = footfall_vs_wait_time(fetched.readings)
        return result

    def period_trends(
        self, counter_code: str, period: str, start: datetime, end: datetime
    ) -> PeriodTrendsResult:
        """Daily, weekly or monthly totals from the upstream hourly aggregates.

        An unreachable aggregation endpoint yields an empty result.

        Raises:
            CounterNotFoundError: If the counter is not registered.
            ValueError: If ``period`` is not daily, weekly or monthly.
        """
        counter = self.registry.get(counter_code)
        result = PeriodTrendsResult(
            counter_code=counter.code,
            counter_name=counter.name,
            period=period.strip().lower(),
            start=start,
            end=end,
        )
        # validates the period before any request is made
        rollup_period_totals([], result.period)

        try:
            payloads = self.client.hourly_aggregation(start=start, end=end)
        except UpstreamUnavailableError as exc:
            logger.error("Error fetching hourly aggregates: %s", exc)
            return result

        records = decode_hourly_aggregates(payloads)
        result.totals = rollup_period_totals(records, result.period, counter.aggregate_name)
        return result

    def live_status(
        self, counter_codes: Optional[Sequence[str]] = None, now: Optional[datetime] = None
    ) -> LiveStatusReport:
        """Current occupancy, queue and wait time of counters.

        Args:
            counter_codes: Counters to report. Unknown codes are skipped.
                Defaults to every active counter.
            now: Report time, defaults to the current time.

        Returns:
            One snapshot per counter with devices. Unreachable devices are
            reported as inactive.
        """
        now = now or datetime.now()
        skipped: list[str] = []
        if counter_codes:
            counters = []
            for code in counter_codes:
                code = code.strip()
                if code not in self.registry:
                    logger.warning("Counter not found: %s", code)
                    skipped.append(code)
                    continue
                counters.append(self.registry.get(code))
        else:
            counters = self.registry.active()

        logger.info("Fetching live status for %d counters", len(counters))
        devices = [d for c in counters for d in c.devices]
        latest = fetch_latest_readings(self.client, devices, max_workers=self.max_workers)
        report = live_report(counters, latest, now)
        report.skipped_codes = skipped
        return report

    def device_status(self, device_id: str) -> DeviceStatusResult:
        """Latest figures of one device together with its counter.

        Raises:
            DeviceNotFoundError: If the device belongs to no registered counter.
        """
        counter = self.registry.counter_for_device(device_id)
        device = next(d for d in counter.devices if d.device_id == device_id)
        latest = fetch_latest_readings(self.client, [device], max_workers=1)
        return DeviceStatusResult(
            counter_code=counter.code,
            counter_name=counter.name,
            device=device_live_status(device, latest.get(device_id)),
        )
