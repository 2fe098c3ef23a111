"""
Lease reaper for recovering expired processing leases.

The reaper runs periodically to find jobs whose worker stopped holding them
(crash, kill, lost connection) and returns them to the retry queue. It also
drops terminal jobs past their retention window and refreshes queue depth
gauges.
"""

import asyncio
import logging
import signal
from collections.abc import Callable
from datetime import datetime

from notifyq.config import get_settings
from notifyq.observability.logging import setup_logging
from notifyq.observability.metrics import NullMetrics, setup_metrics
from notifyq.store import NotificationQueue, close_redis, init_redis
from notifyq.store.errors import QueueStoreError
from notifyq.types.job import utcnow

logger = logging.getLogger(__name__)


class Reaper:
    """
    Lease reaper that recovers expired job leases.

    Runs periodically to:
    1. Find jobs in ``processing`` whose lease has expired
    2. Return them to ``retry`` for another attempt
    3. Purge terminal jobs past retention and record queue depth
    """

    def __init__(
        self,
        queue: NotificationQueue,
        interval_seconds: float | None = None,
        metrics: NullMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the reaper.

        Args:
            queue: The queue store to sweep.
            interval_seconds: Seconds between reaper runs.
            metrics: Metrics sink. Defaults to a no-op sink.
            clock: Source of the current time.
        """
        self.interval = interval_seconds or get_settings().reaper_interval_seconds
        self._queue = queue
        self._metrics = metrics or NullMetrics()
        self._clock = clock
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(f"Reaper starting with interval {self.interval}s")

        while not self._stop_event.is_set():
            try:
                recovered = await self.run_once()

                if recovered > 0:
                    logger.info(f"Recovered {recovered} expired leases")

            except QueueStoreError as e:
                logger.error(f"Queue store error in reaper loop: {e}")
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Reaper stopped")

    def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._stop_event.set()

    async def run_once(self) -> int:
        """
        Run one sweep (for testing or cron-style execution).

        Returns:
            Number of jobs recovered.
        """
        now = self._clock()

        recovered = await self._queue.recover_expired_leases(now=now)
        await self._queue.purge_expired(now=now)
        self._metrics.update_queue_depth(await self._queue.stats())

        return recovered


async def run_async() -> None:
    """Run the reaper asynchronously."""
    settings = get_settings()

    setup_logging()
    metrics = setup_metrics()
    redis = await init_redis()

    reaper = Reaper(NotificationQueue(redis, settings=settings, metrics=metrics), metrics=metrics)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, reaper.stop)

    try:
        await reaper.start()
    finally:
        await close_redis()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
