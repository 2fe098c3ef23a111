"""
Worker process for dispatching notifications.

The worker claims ready jobs from the queue, attempts delivery through the
SMS gateway, and resolves each outcome back into the queue's state machine.
"""

import asyncio
import logging
import os
import signal
import socket
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from prometheus_client import start_http_server

from notifyq.config import Settings, get_settings
from notifyq.constants import SPAN_DELIVER, DeliveryStatus
from notifyq.delivery.client import DeliveryClient, SMSGatewayClient
from notifyq.observability.logging import bind_context, clear_context, setup_logging
from notifyq.observability.metrics import NullMetrics, setup_metrics
from notifyq.observability.tracing import get_tracer, setup_tracing
from notifyq.store import NotificationQueue, close_redis, init_redis
from notifyq.store.errors import JobDecodeError, QueueStoreError
from notifyq.store.queue import UNREADABLE_RECORD_ERROR
from notifyq.types.job import DeliveryOutcome, NotificationJob, utcnow
from notifyq.worker.backoff import compute_backoff

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    """Hostname plus PID."""
    return f"{socket.gethostname()}-{os.getpid()}"


class DispatchWorker:
    """
    Notification worker that polls for and delivers jobs.

    Features:
    - Atomic claims, so any number of workers can share one queue
    - Cooperative stop, observed only between claim/deliver cycles
    - Quadratic retry backoff and terminal failure on exhausted attempts
    - Store operations retried with a fixed delay when the store is unavailable
    """

    def __init__(
        self,
        queue: NotificationQueue,
        client: DeliveryClient,
        settings: Settings | None = None,
        metrics: NullMetrics | None = None,
        worker_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the worker.

        Args:
            queue: The queue store to claim from and resolve into.
            client: Delivery client used for each attempt.
            settings: Application settings. Defaults to the cached settings.
            metrics: Metrics sink. Defaults to a no-op sink.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            clock: Source of the current time.
        """
        settings = settings or get_settings()

        self.worker_id = worker_id or settings.worker_id or default_worker_id()
        self.poll_interval = settings.worker_poll_interval_seconds
        self.store_error_delay = settings.worker_store_error_delay_seconds
        self.store_retry_attempts = max(1, settings.worker_store_retry_attempts)
        self.retry_base_delay = settings.sms_retry_base_delay_seconds
        self.retry_rejected = settings.sms_retry_rejected

        self._queue = queue
        self._client = client
        self._metrics = metrics or NullMetrics()
        self._clock = clock
        self._stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """Run the claim/deliver loop until ``stop`` is called."""
        logger.info("Worker starting", extra={"worker_id": self.worker_id})

        while not self._stop_event.is_set():
            try:
                processed = await self.run_once()
            except QueueStoreError as e:
                logger.error(
                    f"Queue store error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await self._wait(self.store_error_delay)
                continue
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await self._wait(self.poll_interval)
                continue

            if not processed:
                await self._wait(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stop_event.set()

    async def _wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, waking early if a stop is requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> bool:
        """
        Claim and process at most one job.

        Returns:
            True if a job was claimed, False if none was ready.
        """
        now = self._clock()

        try:
            job = await self._queue.claim_next(now=now, worker_id=self.worker_id)
        except JobDecodeError as e:
            logger.error(
                "Claimed job has an unreadable record",
                extra={"job_id": e.job_id, "error": e.reason},
            )
            await self._with_store_retries(
                "fail",
                e.job_id,
                lambda: self._queue.fail(e.job_id, f"{UNREADABLE_RECORD_ERROR}: {e.reason}", now=now),
            )
            return True

        if job is None:
            return False

        await self.process_job(job)
        return True

    async def process_job(self, job: NotificationJob) -> DeliveryOutcome | None:
        """
        Make one delivery attempt for a claimed job and resolve the outcome.

        The new attempt count is persisted before the client is called, so
        a worker that dies mid-send still leaves the attempt on record.

        Args:
            job: A job currently held in ``processing`` by this worker.

        Returns:
            The outcome of the attempt, or None if no send was made.
        """
        job_id = str(job.id)

        bind_context(job_id=job_id, worker_id=self.worker_id)
        try:
            if job.is_exhausted:
                # Recovered from a lease after its final send was started
                error = job.last_error or f"Delivery attempts exhausted ({job.attempts}/{job.max_attempts})"
                logger.warning(
                    "Recovered job has no attempts left, failing",
                    extra={"attempts": job.attempts, "max_attempts": job.max_attempts},
                )
                await self._with_store_retries(
                    "fail", job_id, lambda: self._queue.fail(job.id, error, job=job, now=self._clock())
                )
                return None

            job.attempts += 1
            job.last_attempt_at = self._clock()

            if not await self._with_store_retries(
                "record_attempt", job_id, lambda: self._queue.record_attempt(job)
            ):
                return None

            return await self._attempt(job)
        finally:
            clear_context()

    async def _attempt(self, job: NotificationJob) -> DeliveryOutcome:
        logger.info(
            "Delivering notification",
            extra={
                "correlation_ref": job.correlation_ref,
                "attempt": job.attempts,
                "max_attempts": job.max_attempts,
            },
        )

        started = time.monotonic()
        with get_tracer().start_as_current_span(SPAN_DELIVER) as span:
            span.set_attribute("job_id", str(job.id))
            span.set_attribute("attempt", job.attempts)

            try:
                outcome = await self._client.send(job.recipient, job.payload)
            except Exception as e:
                logger.exception("Delivery client raised exception")
                outcome = DeliveryOutcome.transient(f"Delivery client exception: {e!r}")

            span.set_attribute("outcome", outcome.status.value)

        self._metrics.record_delivery_attempt(outcome.status, time.monotonic() - started)

        await self._resolve(job, outcome)
        return outcome

    async def _resolve(self, job: NotificationJob, outcome: DeliveryOutcome) -> None:
        """Write the outcome of an attempt back into the queue."""
        now = self._clock()
        job_id = str(job.id)

        if outcome.is_delivered:
            await self._with_store_retries(
                "complete", job_id, lambda: self._queue.complete(job, now=now)
            )
            return

        job.last_error = outcome.reason or outcome.status.value

        if outcome.status == DeliveryStatus.REJECTED and not self.retry_rejected:
            logger.warning(
                "Gateway rejected notification, not retrying",
                extra={"job_id": job_id, "error": job.last_error},
            )
            await self._with_store_retries(
                "fail", job_id, lambda: self._queue.fail(job.id, job.last_error, job=job, now=now)
            )
        elif not job.is_exhausted:
            delay = compute_backoff(job.attempts, self.retry_base_delay)
            logger.warning(
                f"Notification attempt {job.attempts}/{job.max_attempts} failed, "
                f"retrying in {delay:.1f}s",
                extra={"job_id": job_id, "error": job.last_error},
            )
            await self._with_store_retries(
                "retry", job_id, lambda: self._queue.retry(job, delay, now=now)
            )
        else:
            await self._with_store_retries(
                "fail", job_id, lambda: self._queue.fail(job.id, job.last_error, job=job, now=now)
            )

    async def _with_store_retries(
        self,
        operation: str,
        job_id: str,
        call: Callable[[], Awaitable[bool]],
    ) -> bool:
        """
        Run a store transition, retrying it while the store is failing.

        The stop signal is not consulted here: a claimed job is always
        driven to a recorded state or left for lease recovery.

        Raises:
            QueueStoreError: When every attempt failed. The job stays in
                ``processing`` until its lease expires.
        """
        for attempt in range(1, self.store_retry_attempts + 1):
            try:
                return await call()
            except QueueStoreError as e:
                if attempt == self.store_retry_attempts:
                    logger.error(
                        f"Giving up on {operation} after {attempt} attempts; "
                        "job will be recovered when its lease expires",
                        extra={"job_id": job_id, "error": str(e)},
                    )
                    raise
                logger.warning(
                    f"Queue store error during {operation}, retrying",
                    extra={"job_id": job_id, "attempt": attempt, "error": str(e)},
                )
                await asyncio.sleep(self.store_error_delay)
        return False


async def _wait_for_shutdown(stop_requested: asyncio.Event, tasks: list[asyncio.Task]) -> None:
    """Return once a stop is requested or any worker task exits."""
    stop_task = asyncio.create_task(stop_requested.wait())
    try:
        await asyncio.wait([stop_task, *tasks], return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_task.cancel()


async def run_async() -> None:
    """Run the dispatch workers asynchronously."""
    settings = get_settings()

    setup_logging()
    setup_tracing()
    metrics = setup_metrics()
    if settings.worker_metrics_port:
        start_http_server(settings.worker_metrics_port)

    redis = await init_redis()
    queue = NotificationQueue(redis, settings=settings, metrics=metrics)
    base_id = settings.worker_id or default_worker_id()

    async with SMSGatewayClient.from_settings(settings) as client:
        workers = [
            DispatchWorker(
                queue,
                client,
                settings=settings,
                metrics=metrics,
                worker_id=base_id if settings.worker_concurrency == 1 else f"{base_id}-{i}",
            )
            for i in range(settings.worker_concurrency)
        ]

        # Handle shutdown signals
        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_requested.set)

        tasks = [asyncio.create_task(worker.start()) for worker in workers]

        try:
            await _wait_for_shutdown(stop_requested, tasks)

            for worker in workers:
                worker.stop()

            _, still_running = await asyncio.wait(
                tasks, timeout=settings.worker_shutdown_grace_seconds
            )
            if still_running:
                logger.warning(
                    f"Cancelling {len(still_running)} workers after shutdown grace period",
                    extra={"grace_seconds": settings.worker_shutdown_grace_seconds},
                )
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)
        finally:
            await close_redis()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
