"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import fakeredis
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import CollectorRegistry
from redis.asyncio import Redis

from notifyq.api.main import create_app
from notifyq.config import Settings
from notifyq.observability.metrics import MetricsCollector
from notifyq.service import NotificationService
from notifyq.store import NotificationQueue
from notifyq.types.job import DeliveryOutcome, NotificationJob, utcnow


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeDeliveryClient:
    """
    Delivery client that replays scripted outcomes.

    Once the script is used up every further send is delivered.
    """

    def __init__(self, outcomes: list[DeliveryOutcome] | None = None):
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[str, str]] = []

    async def send(self, recipient: str, message: str) -> DeliveryOutcome:
        self.calls.append((recipient, message))
        if self.outcomes:
            return self.outcomes.pop(0)
        return DeliveryOutcome.delivered(message_id=f"msg-{len(self.calls)}", gateway_status_code=101)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        queue_key_prefix=f"test-{uuid4().hex[:8]}",
        log_level="DEBUG",
        log_format="console",
        sms_api_key="test-api-key",
        sms_sender_id="TESTCO",
        sms_base_url="https://gateway.test/version1",
        sms_retry_base_delay_seconds=30.0,
        worker_id="test-worker",
        worker_poll_interval_seconds=0.05,
        worker_store_error_delay_seconds=0.01,
        worker_store_retry_attempts=3,
        worker_lease_duration_seconds=300,
        worker_metrics_port=None,
        reaper_interval_seconds=1,
    )


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """In-memory Redis server shared by every client in a test."""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(redis_server: fakeredis.FakeServer) -> AsyncGenerator[Redis]:
    """Async Redis client bound to the fake server."""
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector bound to the isolated registry."""
    return MetricsCollector(registry)


@pytest.fixture
def queue(redis_client: Redis, test_settings: Settings, metrics: MetricsCollector) -> NotificationQueue:
    """Queue store under test."""
    return NotificationQueue(redis_client, settings=test_settings, metrics=metrics)


@pytest.fixture
def service(
    queue: NotificationQueue,
    test_settings: Settings,
    metrics: MetricsCollector,
) -> NotificationService:
    """Notification service over the test queue."""
    return NotificationService(queue, settings=test_settings, metrics=metrics)


@pytest.fixture
def clock() -> FrozenClock:
    """Controllable clock starting at the current time."""
    return FrozenClock()


@pytest.fixture
def make_job(clock: FrozenClock):
    """Build jobs that are due at the clock's current time."""

    def _make_job(**overrides: Any) -> NotificationJob:
        fields = {
            "recipient": "+254712345678",
            "payload": "Your order has shipped",
            "correlation_ref": f"order-{uuid4().hex[:8]}",
            "created_at": clock(),
            "scheduled_for": clock(),
        }
        fields.update(overrides)
        return NotificationJob(**fields)

    return _make_job


@pytest.fixture
def app(service: NotificationService, metrics: MetricsCollector) -> FastAPI:
    """Create a FastAPI app serving the test service."""
    return create_app(service=service, metrics=metrics)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def fake_client():
    """Factory for scripted delivery clients."""
    return FakeDeliveryClient
