"""
Producer-facing facade over the notification queue.

Business code calls ``submit_notification`` after its own work has
succeeded. Submission is best-effort: a notification that cannot be queued
is logged and counted, and never turns into an error for the caller.
"""

import logging
from datetime import datetime
from uuid import UUID

from pydantic import ValidationError

from notifyq.config import Settings, get_settings
from notifyq.constants import SPAN_SUBMIT_JOB, JobState
from notifyq.observability.metrics import NullMetrics
from notifyq.observability.tracing import get_tracer
from notifyq.store import NotificationQueue
from notifyq.store.errors import QueueStoreError
from notifyq.types.job import NotificationJob, QueueStats

logger = logging.getLogger(__name__)


class NotificationService:
    """Submission and inspection of notification jobs."""

    def __init__(
        self,
        queue: NotificationQueue,
        settings: Settings | None = None,
        metrics: NullMetrics | None = None,
    ):
        self._queue = queue
        self._settings = settings or get_settings()
        self._metrics = metrics or NullMetrics()

    async def submit_notification(
        self,
        recipient: str,
        payload: str,
        correlation_ref: str | None = None,
        max_attempts: int | None = None,
        scheduled_for: datetime | None = None,
    ) -> UUID | None:
        """
        Queue a notification for delivery.

        Returns as soon as the job is durably stored; delivery happens later
        on a worker.

        Args:
            recipient: Destination phone number.
            payload: Message text.
            correlation_ref: Business event that triggered the notification.
            max_attempts: Delivery attempts allowed. Defaults to ``sms_max_attempts``.
            scheduled_for: Earliest delivery time. Defaults to now.

        Returns:
            The new job's id, or None if it could not be queued.
        """
        fields = {
            "recipient": recipient,
            "payload": payload,
            "correlation_ref": correlation_ref,
            "max_attempts": max_attempts if max_attempts is not None else self._settings.sms_max_attempts,
        }
        if scheduled_for is not None:
            fields["scheduled_for"] = scheduled_for

        with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
            if correlation_ref:
                span.set_attribute("correlation_ref", correlation_ref)

            try:
                job = NotificationJob(**fields)
            except ValidationError as e:
                logger.warning(
                    "Rejected invalid notification",
                    extra={"correlation_ref": correlation_ref, "error": str(e)},
                )
                self._metrics.record_submit_failed("invalid")
                return None

            span.set_attribute("job_id", str(job.id))

            try:
                await self._queue.submit(job)
            except QueueStoreError as e:
                logger.error(
                    f"Failed to queue notification: {e}",
                    extra={"job_id": str(job.id), "correlation_ref": correlation_ref},
                )
                self._metrics.record_submit_failed("store")
                return None

        return job.id

    async def get_queue_stats(self) -> QueueStats:
        """Get per-container job counts."""
        return await self._queue.stats()

    async def get_job_status(self, job_id: UUID | str) -> JobState:
        """Get the state of a job, or UNKNOWN."""
        return await self._queue.status_of(job_id)

    async def get_job(self, job_id: UUID | str) -> NotificationJob | None:
        """
        Get a job record with its current state.

        When the job has failed, ``last_error`` is taken from the stored
        failure reason if the record itself does not carry one.
        """
        job = await self._queue.get_job(job_id)
        if job is not None and job.state == JobState.FAILED and not job.last_error:
            job.last_error = await self._queue.get_error(job_id) or ""
        return job

    async def ping(self) -> bool:
        """Check connectivity to the queue store."""
        return await self._queue.ping()
