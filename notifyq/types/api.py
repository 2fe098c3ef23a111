"""
API request and response type definitions.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from notifyq.constants import JobState


class SubmitNotificationRequest(BaseModel):
    """Request body for queueing a notification."""

    recipient: str = Field(..., min_length=1, description="Destination phone number")
    payload: str = Field(..., min_length=1, description="Message text")
    correlation_ref: str | None = Field(
        default=None, description="Business event that triggered the notification"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=10, description="Maximum delivery attempts"
    )
    scheduled_for: datetime | None = Field(
        default=None, description="Schedule delivery for a future time"
    )

    @field_validator("recipient", "payload")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class SubmitNotificationResponse(BaseModel):
    """Response body after queueing a notification."""

    id: UUID
    status: JobState
    message: str = "Notification queued"


class JobStatusResponse(BaseModel):
    """Delivery status of a single notification job."""

    id: UUID
    status: JobState
    correlation_ref: str | None = None
    attempts: int | None = None
    max_attempts: int | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    last_attempt_at: datetime | None = None
    scheduled_for: datetime | None = None


class QueueStatsResponse(BaseModel):
    """Queue statistics response."""

    pending_count: int
    retry_count: int
    processing_count: int
    completed_count: int
    failed_count: int
    total_delivered_count: int
    timestamp: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    redis: str
    timestamp: datetime

