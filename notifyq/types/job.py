"""
Job-related type definitions for internal use.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from notifyq.constants import DEFAULT_MAX_ATTEMPTS, DeliveryStatus, JobState


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class NotificationJob(BaseModel):
    """
    One outbound notification and its delivery lifecycle.

    The record is persisted as a single JSON document keyed by ``id``.
    ``state`` is not serialized: the queue store derives it from container
    membership whenever a job is read back.
    """

    id: UUID = Field(default_factory=uuid4)
    correlation_ref: str | None = None
    recipient: str = Field(..., min_length=1)
    payload: str = Field(..., min_length=1)
    state: JobState = Field(default=JobState.PENDING, exclude=True)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    last_error: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    last_attempt_at: datetime | None = None
    scheduled_for: datetime = Field(default_factory=utcnow)

    @field_validator("recipient", "payload")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("created_at", "last_attempt_at", "scheduled_for")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        # Naive datetimes are taken to be UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_exhausted(self) -> bool:
        """Check if no delivery attempts remain."""
        return self.attempts >= self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining delivery attempts."""
        return max(0, self.max_attempts - self.attempts)

    def __repr__(self) -> str:
        return (
            f"NotificationJob(id={self.id}, state={self.state}, "
            f"attempts={self.attempts}/{self.max_attempts})"
        )


class DeliveryOutcome(BaseModel):
    """
    Result of a single delivery attempt against the SMS gateway.
    Returned by the delivery client; never raised.
    """

    status: DeliveryStatus
    reason: str = ""
    gateway_status_code: int | None = None
    message_id: str | None = None

    @classmethod
    def delivered(
        cls,
        message_id: str | None = None,
        gateway_status_code: int | None = None,
        reason: str = "",
    ) -> "DeliveryOutcome":
        return cls(
            status=DeliveryStatus.DELIVERED,
            message_id=message_id,
            gateway_status_code=gateway_status_code,
            reason=reason,
        )

    @classmethod
    def rejected(cls, reason: str, gateway_status_code: int | None = None) -> "DeliveryOutcome":
        return cls(
            status=DeliveryStatus.REJECTED,
            reason=reason,
            gateway_status_code=gateway_status_code,
        )

    @classmethod
    def transient(cls, reason: str, gateway_status_code: int | None = None) -> "DeliveryOutcome":
        return cls(
            status=DeliveryStatus.TRANSIENT_ERROR,
            reason=reason,
            gateway_status_code=gateway_status_code,
        )

    @property
    def is_delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED


class QueueStats(BaseModel):
    """
    Per-container job counts.
    Observability only: never used for scheduling decisions.
    """

    pending_count: int = 0
    retry_count: int = 0
    processing_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    total_delivered_count: int = 0

    def depth_by_container(self) -> dict[str, int]:
        """Counts keyed by container name, for gauges."""
        return {
            JobState.PENDING.value: self.pending_count,
            JobState.RETRYING.value: self.retry_count,
            JobState.PROCESSING.value: self.processing_count,
            JobState.COMPLETED.value: self.completed_count,
            JobState.FAILED.value: self.failed_count,
        }
