"""
Health check routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from notifyq import __version__
from notifyq.api.dependencies import get_metrics, get_service
from notifyq.observability.metrics import MetricsCollector, NullMetrics
from notifyq.service import NotificationService
from notifyq.store.errors import QueueStoreError
from notifyq.types.api import HealthResponse
from notifyq.types.job import utcnow

router = APIRouter(tags=["Health"])


async def _redis_healthy(service: NotificationService) -> bool:
    try:
        return await service.ping()
    except QueueStoreError:
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the queue store connection.",
)
async def health_check(
    service: NotificationService = Depends(get_service),
) -> HealthResponse:
    """
    Perform a health check.

    Checks Redis connectivity and returns service status.

    Args:
        service: Notification service.

    Returns:
        HealthResponse with service status.
    """
    redis_status = "healthy" if await _redis_healthy(service) else "unhealthy"

    return HealthResponse(
        status="healthy" if redis_status == "healthy" else "degraded",
        version=__version__,
        redis=redis_status,
        timestamp=utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(
    service: NotificationService = Depends(get_service),
) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Returns:
        Ready status.
    """
    return {"ready": await _redis_healthy(service)}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """
    Kubernetes liveness probe endpoint.

    Returns:
        Alive status.
    """
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(
    metrics_sink: NullMetrics = Depends(get_metrics),
) -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    if not isinstance(metrics_sink, MetricsCollector):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Metrics are not enabled",
        )
    return Response(
        content=metrics_sink.get_metrics(),
        media_type=metrics_sink.get_content_type(),
    )
