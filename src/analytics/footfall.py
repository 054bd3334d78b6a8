"""Footfall totals for fixed comparison windows.

Devices report a running people counter, so a device's footfall for a
window is the peak value it reported inside the window, not the sum of its
samples. The counter's footfall is the sum of those per-device peaks.
Every window is compared against today's total.
"""

import calendar
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from src.analytics.policy import DEFAULT_POLICY, MetricPolicy
from src.analytics.readings import Reading

logger = logging.getLogger(__name__)

TODAY = "today"
YESTERDAY = "yesterday"
LAST_WEEK_SAME_DAY = "lastWeekSameDay"
LAST_MONTH_SAME_DAY = "lastMonthSameDay"
LAST_YEAR_SAME_DAY = "lastYearSameDay"

WINDOW_LABELS = (
    TODAY,
    YESTERDAY,
    LAST_WEEK_SAME_DAY,
    LAST_MONTH_SAME_DAY,
    LAST_YEAR_SAME_DAY,
)

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True)
class WindowSpec:
    """Boundaries of one comparison window, both ends inclusive."""

    label: str
    start: datetime
    end: datetime

    @property
    def day(self) -> date:
        return self.start.date()


@dataclass
class FootfallWindow:
    """Footfall of a counter (or group of counters) for one window.

    Attributes:
        label: Window label such as ``today`` or ``lastWeekSameDay``.
        date: Calendar day the window covers.
        start: Window start.
        end: Window end.
        total_footfall: Sum of per-device peaks inside the window.
        devices_with_data: Devices with a positive peak in the window.
        total_devices: Devices in scope.
        percentage_vs_today: Change of today's total relative to this
            window, None for the ``today`` window itself.
    """

    label: str
    date: date
    start: datetime
    end: datetime
    total_footfall: float = 0.0
    devices_with_data: int = 0
    total_devices: int = 0
    percentage_vs_today: Optional[float] = None


@dataclass
class FootfallSummary:
    """All comparison windows for one scope, keyed by label."""

    generated_at: datetime
    windows: dict[str, FootfallWindow] = field(default_factory=dict)

    @property
    def today(self) -> FootfallWindow:
        return self.windows[TODAY]


def shift_months(day: date, months: int) -> date:
    """Move a date by whole months, clamping to the last day of the month."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def _full_day(label: str, day: date) -> WindowSpec:
    return WindowSpec(
        label=label,
        start=datetime.combine(day, time.min),
        end=datetime.combine(day, END_OF_DAY),
    )


def comparison_windows(now: datetime) -> list[WindowSpec]:
    """Build the five comparison windows relative to ``now``.

    Today runs from midnight to ``now``; every other window covers a full
    day one day, one week, one month and one year earlier.
    """
    today = now.date()
    return [
        WindowSpec(label=TODAY, start=datetime.combine(today, time.min), end=now),
        _full_day(YESTERDAY, today - timedelta(days=1)),
        _full_day(LAST_WEEK_SAME_DAY, today - timedelta(weeks=1)),
        _full_day(LAST_MONTH_SAME_DAY, shift_months(today, -1)),
        _full_day(LAST_YEAR_SAME_DAY, shift_months(today, -12)),
    ]


def device_peaks(
    readings: Iterable[Reading],
    start: datetime,
    end: datetime,
    policy: MetricPolicy = DEFAULT_POLICY,
) -> dict[str, float]:
    """Peak metric value per device inside ``[start, end]``.

    Devices whose peak is not positive are left out.
    """
    peaks: dict[str, float] = {}
    for reading in readings:
        if not start <= reading.timestamp <= end:
            continue
        value = policy.extract(reading)
        if value is None:
            continue
        peaks[reading.device_id] = max(peaks.get(reading.device_id, 0.0), value)
    return {device: peak for device, peak in peaks.items() if peak > 0}


def percentage_change(window_total: float, today_total: float) -> float:
    """Change of today's total relative to a window's total, in percent.

    Returns 100 when the window is empty but today is not, and 0 when
    both are empty. Rounded to two decimals.
    """
    if window_total == 0:
        return 100.0 if today_total > 0 else 0.0
    return round((today_total - window_total) / window_total * 100, 2)


def window_footfall(
    readings: Sequence[Reading],
    window: WindowSpec,
    total_devices: int,
    policy: MetricPolicy = DEFAULT_POLICY,
) -> FootfallWindow:
    """Compute the footfall of one window."""
    peaks = device_peaks(readings, window.start, window.end, policy)
    return FootfallWindow(
        label=window.label,
        date=window.day,
        start=window.start,
        end=window.end,
        total_footfall=sum(peaks.values()),
        devices_with_data=len(peaks),
        total_devices=total_devices,
    )


def _apply_percentages(summary: FootfallSummary) -> FootfallSummary:
    today_total = summary.today.total_footfall
    for label, window in summary.windows.items():
        if label == TODAY:
            window.percentage_vs_today = None
        else:
            window.percentage_vs_today = percentage_change(
                window.total_footfall, today_total
            )
    return summary


def footfall_summary(
    readings: Sequence[Reading],
    now: datetime,
    total_devices: int,
    policy: MetricPolicy = DEFAULT_POLICY,
) -> FootfallSummary:
    """Compute every comparison window and its change against today.

    Args:
        readings: Readings of every device in scope, covering at least the
            span from the last-year window to ``now``.
        now: Reference time; today's window ends here.
        total_devices: Devices in scope.
        policy: Metric policy used for extraction.

    Returns:
        Summary with all five windows.
    """
    summary = FootfallSummary(generated_at=now)
    for window in comparison_windows(now):
        summary.windows[window.label] = window_footfall(
            readings, window, total_devices, policy
        )
    return _apply_percentages(summary)


def combine_summaries(summaries: Sequence[FootfallSummary]) -> Optional[FootfallSummary]:
    """Merge the summaries of several counters into one.

    Totals and device counts are summed per window and the percentages are
    recomputed against the combined today total.

    Returns:
        The combined summary, or None when ``summaries`` is empty.
    """
    if not summaries:
        return None

    combined = FootfallSummary(generated_at=summaries[0].generated_at)
    for summary in summaries:
        for label, window in summary.windows.items():
            merged = combined.windows.get(label)
            if merged is None:
                combined.windows[label] = FootfallWindow(
                    label=label,
                    date=window.date,
                    start=window.start,
                    end=window.end,
                    total_footfall=window.total_footfall,
                    devices_with_data=window.devices_with_data,
                    total_devices=window.total_devices,
                )
            else:
                merged.total_footfall += window.total_footfall
                merged.devices_with_data += window.devices_with_data
                merged.total_devices += window.total_devices
    return _apply_percentages(combined)
