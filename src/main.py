"""Main entry point for the counter analytics poller service.

Runs the recent-readings poller in the foreground when ``polling.enabled``
is set in the application configuration, logging every reading it
receives. Reports are served by the ``counter-analytics`` CLI.
"""

import logging
import threading
from typing import Optional

import click

from src.analytics.readings import Reading
from src.telemetry.client import TelemetryClient
from src.telemetry.poller import RecentReadingsPoller
from src.utils.config import AppConfig, load_config
from src.utils.logger import setup_logger

logger = logging.getLogger(__name__)


def log_reading(reading: Reading) -> None:
    """Log one polled reading."""
    logger.info(
        "Reading from %s (%s) at %s",
        reading.device_id,
        reading.counter_name or "unknown counter",
        reading.timestamp.isoformat(),
    )


def build_poller(
    config: AppConfig, client: Optional[TelemetryClient] = None
) -> Optional[RecentReadingsPoller]:
    """Create the poller described by the configuration.

    Args:
        config: Application configuration.
        client: Telemetry client, built from ``config.telemetry`` when None.

    Returns:
        A poller logging every reading, or None when polling is disabled.
    """
    if not config.polling.enabled:
        return None

    if client is None:
        telemetry = config.telemetry
        client = TelemetryClient(
            telemetry.base_url,
            api_prefix=telemetry.api_prefix,
            timeout=telemetry.timeout_seconds,
        )
    poller = RecentReadingsPoller(
        client,
        interval_seconds=config.polling.interval_seconds,
        limit=config.polling.limit,
    )
    poller.subscribe_all(log_reading)
    return poller


def serve(poller: RecentReadingsPoller, stop_event: Optional[threading.Event] = None) -> None:
    """Run the poller until ``stop_event`` is set or the process is interrupted."""
    stop_event = stop_event or threading.Event()
    poller.start()
    try:
        while not stop_event.wait(1.0):
            if not poller.running:
                break
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        poller.stop()
        logger.info("Poller service stopped")


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    help="Application configuration YAML",
)
def main(config_path: Optional[str]) -> None:
    """Counter Analytics poller service."""
    config = load_config(config_path) if config_path else AppConfig()
    setup_logger("src", log_file=config.logging.file, level=config.logging.level)
    logger.info("Starting Counter Analytics poller service")

    poller = build_poller(config)
    if poller is None:
        logger.warning("Polling is disabled, set polling.enabled in the configuration")
        raise SystemExit(1)

    serve(poller)


if __name__ == "__main__":
    main()
