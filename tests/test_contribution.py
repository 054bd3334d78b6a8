"""Tests for the per-device contribution breakdown."""

from datetime import datetime

import pytest

from src.analytics.contribution import device_breakdown
from src.analytics.readings import Reading


def _reading(device: str, minute: int, value) -> Reading:
    return Reading(
        device_id=device,
        timestamp=datetime(2024, 1, 15, 10, minute),
        raw_fields={"inCount": value},
    )


class TestDeviceBreakdown:
    """Tests for device_breakdown."""

    def test_shares(self) -> None:
        """Each device's share is its total over the grand total."""
        readings = [
            _reading("A", 0, 2),
            _reading("A", 5, 4),
            _reading("B", 0, 6),
            _reading("C", 0, 0),
        ]
        breakdown = device_breakdown(readings, {"A": "Lane 1"})
        assert [c.device_id for c in breakdown] == ["A", "B", "C"]
        assert [c.contribution_percentage for c in breakdown] == [50.0, 50.0, 0.0]
        assert sum(c.contribution_percentage for c in breakdown) == pytest.approx(100.0)

        lane = breakdown[0]
        assert lane.device_name == "Lane 1"
        assert lane.average == 3.0
        assert lane.maximum == 4.0
        assert lane.minimum == 2.0
        assert lane.total_readings == 2
        assert lane.total == 6.0
        assert breakdown[1].device_name == "B"

    def test_sorted_descending(self) -> None:
        readings = [_reading("A", 0, 1), _reading("B", 0, 3)]
        breakdown = device_breakdown(readings)
        assert [c.device_id for c in breakdown] == ["B", "A"]
        assert breakdown[0].contribution_percentage == 75.0

    def test_zero_total(self) -> None:
        """Every share is 0 when nothing was counted."""
        readings = [_reading("A", 0, 0), _reading("B", 0, 0)]
        assert all(c.contribution_percentage == 0 for c in device_breakdown(readings))

    def test_readings_without_value_ignored(self) -> None:
        readings = [_reading("A", 0, 2), _reading("B", 0, "n/a")]
        breakdown = device_breakdown(readings)
        assert [c.device_id for c in breakdown] == ["A"]

    def test_empty(self) -> None:
        assert device_breakdown([]) == []
