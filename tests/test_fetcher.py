"""Tests for the parallel per-device fetch."""

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from src.analytics.errors import UpstreamUnavailableError
from src.telemetry.fetcher import (
    fetch_counter_readings,
    fetch_device_readings,
    fetch_latest_readings,
)
from src.utils.config import DeviceDefinition

START = datetime(2024, 1, 15, 0, 0)
END = datetime(2024, 1, 15, 23, 59, 59)

HISTORY = {
    "d1": [
        {"deviceId": "ignored", "timestamp": "2024-01-15T10:00:00", "inCount": 4},
        {"timestamp": "2024-01-14T10:00:00", "inCount": 99},
        {"timestamp": "2024-01-15T09:00:00", "inCount": 2},
        {"inCount": 5},
    ],
    "d3": [
        {"timestamp": "2024-01-15T10:00:00", "inCount": 1},
    ],
}


def _history(device_id: str) -> list[dict]:
    if device_id not in HISTORY:
        raise UpstreamUnavailableError(f"Unsuccessful response for device {device_id}")
    return HISTORY[device_id]


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.device_history.side_effect = _history
    return mock


class TestFetchDeviceReadings:
    """Tests for a single device fetch."""

    def test_decodes_tags_and_filters(self, client: MagicMock) -> None:
        """Readings are tagged with the device and limited to the range."""
        readings = fetch_device_readings(client, "d1", START, END)
        assert [r.timestamp.hour for r in readings] == [10, 9]
        assert all(r.device_id == "d1" for r in readings)

    def test_failure_propagates(self, client: MagicMock) -> None:
        with pytest.raises(UpstreamUnavailableError):
            fetch_device_readings(client, "d2", START, END)


class TestFetchCounterReadings:
    """Tests for the fan-out over a counter's devices."""

    def test_failed_device_isolated(self, client: MagicMock, caplog) -> None:
        """One failing device does not stop the others."""
        devices = [DeviceDefinition("d3"), DeviceDefinition("d2"), DeviceDefinition("d1")]
        with caplog.at_level(logging.ERROR):
            result = fetch_counter_readings(client, devices, START, END, max_workers=3)

        assert result.failed_devices == ["d2"]
        assert result.readings_per_device == {"d1": 2, "d3": 1}
        assert "Error fetching data for device d2" in caplog.text

    def test_deterministic_order(self, client: MagicMock) -> None:
        """Readings are ordered by timestamp, then device id."""
        devices = [DeviceDefinition("d3"), DeviceDefinition("d1")]
        result = fetch_counter_readings(client, devices, START, END)
        assert [(r.timestamp.hour, r.device_id) for r in result.readings] == [
            (9, "d1"),
            (10, "d1"),
            (10, "d3"),
        ]

    def test_single_worker(self, client: MagicMock) -> None:
        devices = [DeviceDefinition("d1"), DeviceDefinition("d3")]
        result = fetch_counter_readings(client, devices, START, END, max_workers=1)
        assert len(result.readings) == 3

    def test_no_devices(self, client: MagicMock) -> None:
        result = fetch_counter_readings(client, [], START, END)
        assert result.is_empty
        client.device_history.assert_not_called()

    def test_all_failed(self, client: MagicMock) -> None:
        result = fetch_counter_readings(client, [DeviceDefinition("x")], START, END)
        assert result.is_empty
        assert result.failed_devices == ["x"]


class TestFetchLatestReadings:
    """Tests for the concurrent latest-reading fetch."""

    def test_failed_device_maps_to_none(self, client: MagicMock, caplog) -> None:
        def latest(device_id: str):
            if device_id == "d2":
                raise UpstreamUnavailableError("timeout")
            return {"timestamp": "2024-01-15T10:00:00", "occupancy": 1}

        client.latest.side_effect = latest
        devices = [DeviceDefinition("d1"), DeviceDefinition("d2"), DeviceDefinition("d3")]
        with caplog.at_level(logging.ERROR):
            result = fetch_latest_readings(client, devices, max_workers=3)

        assert set(result) == {"d1", "d2", "d3"}
        assert result["d2"] is None
        assert result["d1"]["occupancy"] == 1
        assert "Error fetching latest reading for device d2" in caplog.text

    def test_no_devices(self, client: MagicMock) -> None:
        assert fetch_latest_readings(client, []) == {}
        client.latest.assert_not_called()
