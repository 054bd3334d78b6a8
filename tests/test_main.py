"""Tests for the poller service entry point."""

import logging
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import yaml
from click.testing import CliRunner

from src.main import build_poller, main, serve
from src.utils.config import AppConfig, PollingConfig


def _enabled_config() -> AppConfig:
    return AppConfig(polling=PollingConfig(enabled=True, interval_seconds=0.5, limit=3))


class TestBuildPoller:
    """Tests for building the poller from configuration."""

    def test_disabled(self) -> None:
        assert build_poller(AppConfig()) is None

    def test_enabled_logs_readings(self, caplog) -> None:
        client = MagicMock()
        client.recent.return_value = [
            {"deviceId": "d1", "counterName": "Checkout 1", "timestamp": "2024-01-15T10:00:00"},
        ]
        poller = build_poller(_enabled_config(), client=client)

        assert poller.interval_seconds == 0.5
        assert poller.limit == 3
        with caplog.at_level(logging.INFO):
            assert poller.poll_once() == 1
        assert "Reading from d1 (Checkout 1) at 2024-01-15T10:00:00" in caplog.text
        client.recent.assert_called_once_with(3)

    def test_client_from_config(self) -> None:
        config = _enabled_config()
        config.telemetry.base_url = "http://telemetry:9000"
        with patch("src.main.TelemetryClient") as client_cls:
            build_poller(config)
        client_cls.assert_called_once_with(
            "http://telemetry:9000",
            api_prefix=config.telemetry.api_prefix,
            timeout=config.telemetry.timeout_seconds,
        )


class TestServe:
    """Tests for the foreground service loop."""

    def test_stops_on_event(self) -> None:
        poller = MagicMock()
        poller.running = True
        stop = threading.Event()
        stop.set()

        serve(poller, stop)

        poller.start.assert_called_once()
        poller.stop.assert_called_once()

    def test_stops_when_poller_dies(self) -> None:
        poller = MagicMock()
        poller.running = False
        serve(poller, threading.Event())
        poller.stop.assert_called_once()


class TestMain:
    """Tests for the poller service command."""

    def test_disabled_exits(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"polling": {"enabled": False}}))
        result = CliRunner().invoke(main, ["--config", str(path)])
        assert result.exit_code == 1

    def test_enabled_serves(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"polling": {"enabled": True}}))
        with patch("src.main.serve") as serve_mock, patch("src.main.TelemetryClient"):
            result = CliRunner().invoke(main, ["--config", str(path)])
        assert result.exit_code == 0
        serve_mock.assert_called_once()
