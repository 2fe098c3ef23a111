"""
Type definitions for the notification dispatcher.
Contains input/output type definitions for all functions, grouped by module.
"""

from notifyq.types.api import (
    HealthResponse,
    JobStatusResponse,
    QueueStatsResponse,
    SubmitNotificationRequest,
    SubmitNotificationResponse,
)
from notifyq.types.job import (
    DeliveryOutcome,
    NotificationJob,
    QueueStats,
    utcnow,
)

__all__ = [
    # API types
    "SubmitNotificationRequest",
    "SubmitNotificationResponse",
    "JobStatusResponse",
    "QueueStatsResponse",
    "HealthResponse",
    # Job types
    "NotificationJob",
    "DeliveryOutcome",
    "QueueStats",
    "utcnow",
]
