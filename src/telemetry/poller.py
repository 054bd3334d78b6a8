"""Background poller that republishes recent readings to subscribers.

The poller periodically fetches the most recent readings and hands each
decoded reading to the callbacks registered for its device, its counter
and to the global subscribers. It shares nothing with the aggregation
engine beyond the Reading shape.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Optional

from src.analytics.errors import ReadingParseError, UpstreamUnavailableError
from src.analytics.readings import Reading, decode_reading
from src.telemetry.client import TelemetryClient

logger = logging.getLogger(__name__)

Subscriber = Callable[[Reading], None]


class RecentReadingsPoller:
    """Polls ``/recent`` on a fixed interval and fans readings out.

    Args:
        client: Telemetry client.
        interval_seconds: Delay between the end of one poll and the next.
        limit: Number of recent readings requested per poll.
    """

    def __init__(
        self,
        client: TelemetryClient,
        interval_seconds: float = 2.0,
        limit: int = 10,
    ) -> None:
        self.client = client
        self.interval_seconds = interval_seconds
        self.limit = limit
        self._device_subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._counter_subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._global_subscribers: list[Subscriber] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe_device(self, device_id: str, callback: Subscriber) -> None:
        """Receive readings of one device."""
        self._device_subscribers[device_id].append(callback)

    def subscribe_counter(self, counter_name: str, callback: Subscriber) -> None:
        """Receive readings tagged with one counter name."""
        self._counter_subscribers[counter_name].append(callback)

    def subscribe_all(self, callback: Subscriber) -> None:
        """Receive every reading."""
        self._global_subscribers.append(callback)

    def _publish(self, reading: Reading) -> None:
        targets = list(self._device_subscribers.get(reading.device_id, []))
        counter = (reading.counter_name or "").strip()
        if counter:
            targets.extend(self._counter_subscribers.get(counter, []))
        targets.extend(self._global_subscribers)

        # a callback subscribed by device and by counter still fires once
        unique: list[Subscriber] = []
        for callback in targets:
            if callback not in unique:
                unique.append(callback)
        for callback in unique:
            callback(reading)

    def poll_once(self) -> int:
        """Fetch recent readings once and publish them.

        Returns:
            Number of readings published. Upstream failures are logged and
            count as zero.
        """
        try:
            payloads = self.client.recent(self.limit)
        except UpstreamUnavailableError as exc:
            logger.error("Error polling recent readings: %s", exc)
            return 0

        published = 0
        for payload in payloads:
            try:
                self._publish(decode_reading(payload))
                published += 1
            except ReadingParseError as exc:
                logger.debug("Skipping recent item: %s", exc)
            except Exception as exc:
                logger.warning("Error publishing recent item: %s", exc)

        if published:
            logger.debug("Published %d recent readings", published)
        return published

    def _run(self) -> None:
        logger.info(
            "Polling recent readings every %.1fs (limit=%d)",
            self.interval_seconds,
            self.limit,
        )
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.interval_seconds)
        logger.info("Recent readings poller stopped")

    def start(self) -> None:
        """Start polling on a daemon thread. No-op when already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="recent-readings-poller", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the polling thread to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
