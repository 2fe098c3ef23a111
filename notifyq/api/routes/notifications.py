"""
Notification submission and inspection routes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from notifyq.api.dependencies import get_service
from notifyq.constants import API_V1_PREFIX, JobState
from notifyq.service import NotificationService
from notifyq.store.errors import JobDecodeError, QueueStoreError
from notifyq.types.api import (
    JobStatusResponse,
    QueueStatsResponse,
    SubmitNotificationRequest,
    SubmitNotificationResponse,
)
from notifyq.types.job import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/notifications", tags=["Notifications"])


def _store_unavailable(e: QueueStoreError) -> HTTPException:
    logger.error(f"Queue store error: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Queue store unavailable",
    )


@router.post(
    "",
    response_model=SubmitNotificationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a notification",
    description="Queue an SMS notification for asynchronous delivery.",
)
async def submit_notification(
    request: SubmitNotificationRequest,
    service: NotificationService = Depends(get_service),
) -> SubmitNotificationResponse:
    """
    Queue a notification.

    Args:
        request: Notification to queue.
        service: Notification service.

    Returns:
        The queued job's id.

    Raises:
        HTTPException: 503 if the notification could not be queued.
    """
    job_id = await service.submit_notification(
        recipient=request.recipient,
        payload=request.payload,
        correlation_ref=request.correlation_ref,
        max_attempts=request.max_attempts,
        scheduled_for=request.scheduled_for,
    )

    if job_id is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification could not be queued",
        )

    return SubmitNotificationResponse(id=job_id, status=JobState.PENDING)


@router.get(
    "/stats",
    response_model=QueueStatsResponse,
    summary="Queue statistics",
    description="Get the number of jobs in each queue container.",
)
async def get_queue_stats(
    service: NotificationService = Depends(get_service),
) -> QueueStatsResponse:
    """
    Get queue statistics.

    Returns:
        Per-container counts and the lifetime delivered total.
    """
    try:
        stats = await service.get_queue_stats()
    except QueueStoreError as e:
        raise _store_unavailable(e) from e

    return QueueStatsResponse(**stats.model_dump(), timestamp=utcnow())


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    summary="Get notification status",
    description="Get the delivery status of a notification job.",
)
async def get_job_status(
    job_id: UUID,
    service: NotificationService = Depends(get_service),
) -> JobStatusResponse:
    """
    Get a job's delivery status.

    A job that was never submitted, or whose record has passed its
    retention window, reports ``unknown``.
    """
    try:
        job = await service.get_job(job_id)
    except JobDecodeError:
        # Record exists but is unreadable; membership still answers the state
        job = None
    except QueueStoreError as e:
        raise _store_unavailable(e) from e

    if job is None:
        try:
            state = await service.get_job_status(job_id)
        except QueueStoreError as e:
            raise _store_unavailable(e) from e
        return JobStatusResponse(id=job_id, status=state)

    return JobStatusResponse(
        id=job.id,
        status=job.state,
        correlation_ref=job.correlation_ref,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        last_error=job.last_error or None,
        created_at=job.created_at,
        last_attempt_at=job.last_attempt_at,
        scheduled_for=job.scheduled_for,
    )
