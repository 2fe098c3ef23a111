"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notifyq import __version__
from notifyq.api.routes import health_router, notifications_router
from notifyq.config import get_settings
from notifyq.observability.logging import setup_logging
from notifyq.observability.metrics import NullMetrics, setup_metrics
from notifyq.observability.tracing import instrument_fastapi, setup_tracing
from notifyq.service import NotificationService
from notifyq.store import NotificationQueue, close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the notification service on startup unless one was injected,
    and closes the Redis connection it opened on shutdown.
    """
    owns_service = app.state.service is None

    # Startup
    if owns_service:
        settings = get_settings()
        setup_logging()
        setup_tracing()
        metrics = setup_metrics()
        redis = await init_redis()
        queue = NotificationQueue(redis, settings=settings, metrics=metrics)
        app.state.metrics = metrics
        app.state.service = NotificationService(queue, settings=settings, metrics=metrics)

    logger.info("Application started")

    yield

    # Shutdown
    if owns_service:
        await close_redis()
        app.state.service = None
    logger.info("Application shutdown")


def create_app(
    service: NotificationService | None = None,
    metrics: NullMetrics | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Notification service to serve. Built on startup when omitted.
        metrics: Metrics sink exposed on ``/metrics``.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Notification Dispatch API",
        description="Durable asynchronous SMS notification queue backed by Redis",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.service = service
    app.state.metrics = metrics or NullMetrics()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(notifications_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
