"""Tests for hour-of-day patterns and footfall versus wait time."""

from datetime import datetime

import pytest

from src.analytics.patterns import (
    footfall_vs_wait_time,
    hourly_pattern,
    low_hours,
    peak_hours,
)
from src.analytics.readings import Reading


def _reading(device: str, hour: int, minute: int, second: int = 0, **fields) -> Reading:
    return Reading(
        device_id=device,
        timestamp=datetime(2024, 1, 15, hour, minute, second),
        raw_fields=fields,
    )


class TestHourlyPattern:
    """Tests for the hourly load pattern."""

    @pytest.fixture
    def readings(self) -> list[Reading]:
        return [
            _reading("A", 10, 0, 10, inCount=2),
            _reading("B", 10, 0, 30, inCount=3),
            _reading("A", 10, 0, 50, inCount=1),
            _reading("A", 10, 1, 0, inCount=6),
            _reading("B", 14, 30, 0, inCount=2),
            _reading("B", 16, 0, 0, waitTime=3),
        ]

    def test_minute_merge(self, readings: list[Reading]) -> None:
        """Devices merge per minute with the last value winning."""
        pattern = hourly_pattern(readings)
        assert [p.hour for p in pattern] == [10, 14]

        ten = pattern[0]
        assert ten.average_total == 5.0
        assert ten.max_total == 6.0
        assert ten.min_total == 4.0
        assert ten.data_point_count == 2

        assert pattern[1].average_total == 2.0
        assert pattern[1].data_point_count == 1

    def test_peak_and_low_hours(self, readings: list[Reading]) -> None:
        pattern = hourly_pattern(readings)
        assert peak_hours(pattern) == [10, 14]
        assert low_hours(pattern) == [14, 10]
        assert peak_hours(pattern, n=1) == [10]

    def test_empty(self) -> None:
        assert hourly_pattern([]) == []


class TestFootfallVsWaitTime:
    """Tests for the footfall versus wait time analysis."""

    @pytest.fixture
    def readings(self) -> list[Reading]:
        return [
            _reading("A", 9, 5, inCount=10, waitTime=2),
            _reading("B", 9, 10, inCount=20, waitTime=4),
            _reading("A", 10, 0, inCount=5, waitTime=8),
            _reading("A", 11, 0, waitTime=1),
            _reading("A", 12, 0, occupancy=3),
        ]

    def test_hourly_breakdown(self, readings: list[Reading]) -> None:
        analysis = footfall_vs_wait_time(readings)
        assert [h.hour for h in analysis.hourly] == [9, 10, 11]

        nine = analysis.hourly[0]
        assert nine.hour_label == "09:00 - 10:00"
        assert nine.total_footfall == 30.0
        assert nine.average_footfall == 15.0
        assert nine.peak_footfall == 20.0
        assert nine.min_footfall == 10.0
        assert nine.average_wait_time == 3.0
        assert nine.max_wait_time == 4.0
        assert nine.min_wait_time == 2.0
        assert nine.footfall_wait_ratio == 0.2
        assert nine.active_devices == 2
        assert nine.data_point_count == 2

        eleven = analysis.hourly[2]
        assert eleven.total_footfall == 0.0
        assert eleven.footfall_wait_ratio == 0.0

    def test_daily_summary(self, readings: list[Reading]) -> None:
        summary = footfall_vs_wait_time(readings).summary
        assert summary.total_footfall == 35.0
        assert summary.average_footfall == 11.7
        assert summary.peak_footfall == 20.0
        assert summary.footfall_readings == 3
        assert summary.average_wait_time == 3.8
        assert summary.max_wait_time == 8.0
        assert summary.min_wait_time == 1.0
        assert summary.wait_time_readings == 4
        assert summary.service_level == 75.0
        assert summary.overall_footfall_wait_ratio == 0.3

    def test_notable_hours(self, readings: list[Reading]) -> None:
        analysis = footfall_vs_wait_time(readings)
        assert analysis.peak_footfall_hour.hour == 9
        assert analysis.peak_wait_time_hour.hour == 10
        assert analysis.best_performing_hour.hour == 9
        assert analysis.worst_performing_hour.hour == 10

    def test_empty(self) -> None:
        analysis = footfall_vs_wait_time([])
        assert analysis.hourly == []
        assert analysis.summary.service_level is None
        assert analysis.peak_footfall_hour is None
