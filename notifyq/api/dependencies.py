"""
Request dependencies shared by the API routes.
"""

from fastapi import Request

from notifyq.observability.metrics import NullMetrics
from notifyq.service import NotificationService


def get_service(request: Request) -> NotificationService:
    """Get the notification service attached to the application."""
    return request.app.state.service


def get_metrics(request: Request) -> NullMetrics:
    """Get the metrics sink attached to the application."""
    return request.app.state.metrics
