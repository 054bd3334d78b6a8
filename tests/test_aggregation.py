"""Tests for cross-device aggregation."""

from datetime import datetime

import pytest

from src.analytics.aggregation import (
    aggregate_bucket,
    aggregate_buckets,
    calculate_cumulative_trends,
    device_value_stats,
)
from src.analytics.bucketing import Bucket, BucketPolicy
from src.analytics.readings import Reading


def _reading(device: str, hour: int, minute: int, value: float) -> Reading:
    return Reading(
        device_id=device,
        timestamp=datetime(2024, 1, 15, hour, minute),
        raw_fields={"inCount": value},
    )


class TestAggregateBucket:
    """Tests for single bucket aggregation."""

    def test_point_fields(self) -> None:
        """Totals and per-device stats come from the bucket values."""
        bucket = Bucket(
            start=datetime(2024, 1, 15, 10, 0),
            interval_minutes=60,
            per_device_values={"A": 7.0, "B": 3.0},
        )
        point = aggregate_bucket(bucket, total_device_count=3)
        assert point.timestamp == bucket.start
        assert point.cumulative_total == 10.0
        assert point.average_per_device == 5.0
        assert point.max_per_device == 7.0
        assert point.min_per_device == 3.0
        assert point.active_device_count == 2
        assert point.total_device_count == 3
        assert point.is_partial

    def test_complete_reporting(self) -> None:
        """All devices reporting is not partial."""
        bucket = Bucket(datetime(2024, 1, 15), 60, {"A": 1.0})
        assert not aggregate_bucket(bucket, 1).is_partial

    def test_empty_buckets_dropped(self) -> None:
        """Buckets without values produce no points."""
        buckets = [Bucket(datetime(2024, 1, 15, 11), 60), Bucket(datetime(2024, 1, 15, 10), 60, {"A": 2.0})]
        points = aggregate_buckets(buckets, 1)
        assert [p.timestamp.hour for p in points] == [10]


class TestDeviceValueStats:
    """Tests for the (average, max, min) helper."""

    def test_values(self) -> None:
        assert device_value_stats([2.0, 4.0, 9.0]) == (pytest.approx(5.0), 9.0, 2.0)

    def test_empty(self) -> None:
        assert device_value_stats([]) == (0.0, 0.0, 0.0)


class TestCumulativeTrends:
    """End-to-end trend calculation from readings."""

    READINGS = [
        _reading("A", 10, 5, 5),
        _reading("A", 10, 40, 7),
        _reading("B", 10, 20, 3),
    ]

    def test_overwrite_scenario(self) -> None:
        """Last value per device per bucket: 7 + 3 = 10."""
        points = calculate_cumulative_trends(self.READINGS, "1hour", 2)
        assert len(points) == 1
        point = points[0]
        assert point.active_device_count == 2
        assert point.cumulative_total == 10.0
        assert point.max_per_device == 7.0
        assert point.min_per_device == 3.0

    def test_sum_scenario(self) -> None:
        """Summed values per device per bucket: 5 + 7 + 3 = 15."""
        points = calculate_cumulative_trends(
            self.READINGS, "1hour", 2, bucket_policy=BucketPolicy.SUM
        )
        assert points[0].cumulative_total == 15.0
        assert points[0].max_per_device == 12.0

    def test_cumulative_total_is_sum_of_devices(self) -> None:
        """Each point's total equals the sum of its device values."""
        readings = [
            _reading("A", 9, 0, 2),
            _reading("B", 9, 5, 4),
            _reading("A", 10, 0, 1),
            _reading("B", 11, 0, 6),
            _reading("C", 11, 10, 3),
        ]
        points = calculate_cumulative_trends(readings, "1hour", 3)
        assert [p.cumulative_total for p in points] == [6.0, 1.0, 9.0]
        assert [p.active_device_count for p in points] == [2, 1, 2]
        assert all(p.total_device_count == 3 for p in points)

    def test_four_hour_interval_is_hourly(self) -> None:
        """Wide intervals bucket per hour."""
        readings = [_reading("A", 9, 0, 2), _reading("A", 10, 0, 1)]
        points = calculate_cumulative_trends(readings, "4hour", 1)
        assert len(points) == 2

    def test_empty(self) -> None:
        """No readings, no points."""
        assert calculate_cumulative_trends([], "15min", 2) == []
