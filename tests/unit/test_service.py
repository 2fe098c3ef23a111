"""
Unit tests for the notification service facade.
"""

from datetime import timedelta
from uuid import UUID

import pytest

from notifyq.constants import JobState


class TestSubmitNotification:
    """Tests for NotificationService.submit_notification."""

    @pytest.mark.asyncio
    async def test_returns_job_id(self, service, queue):
        """Test a valid notification is queued with the configured attempt budget."""
        job_id = await service.submit_notification(
            recipient="0712345678",
            payload="Your order #1001 has shipped",
            correlation_ref="order-1001",
        )

        assert isinstance(job_id, UUID)
        assert await service.get_job_status(job_id) == JobState.PENDING

        job = await service.get_job(job_id)
        assert job.correlation_ref == "order-1001"
        assert job.max_attempts == 3
        assert job.attempts == 0

    @pytest.mark.asyncio
    async def test_explicit_attempts_and_schedule(self, service, clock):
        """Test per-job attempt budget and schedule are honoured."""
        scheduled_for = clock() + timedelta(hours=1)

        job_id = await service.submit_notification(
            recipient="+254712345678",
            payload="Reminder",
            max_attempts=5,
            scheduled_for=scheduled_for,
        )

        job = await service.get_job(job_id)
        assert job.max_attempts == 5
        assert job.scheduled_for == scheduled_for

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"recipient": "   "},
            {"max_attempts": 0},
        ],
    )
    async def test_invalid_notification_is_not_raised(self, service, registry, overrides):
        """Test invalid input is reported as None, never as an exception."""
        fields = {"recipient": "+254712345678", "payload": "hello", **overrides}

        job_id = await service.submit_notification(**fields)

        assert job_id is None
        assert (await service.get_queue_stats()).pending_count == 0
        assert registry.get_sample_value(
            "notification_submit_failures_total", {"reason": "invalid"}
        ) == 1

    @pytest.mark.asyncio
    async def test_store_failure_is_not_raised(self, service, redis_server, registry):
        """Test an unreachable store never fails the producer."""
        redis_server.connected = False

        job_id = await service.submit_notification(recipient="+254712345678", payload="hello")

        assert job_id is None
        assert registry.get_sample_value(
            "notification_submit_failures_total", {"reason": "store"}
        ) == 1

    @pytest.mark.asyncio
    async def test_queue_stats(self, service):
        """Test stats reflect submitted jobs."""
        for _ in range(3):
            await service.submit_notification(recipient="+254712345678", payload="hello")

        stats = await service.get_queue_stats()

        assert stats.pending_count == 3
        assert stats.total_delivered_count == 0

    @pytest.mark.asyncio
    async def test_failed_job_carries_error(self, service, queue, make_job, clock):
        """Test a job failed without a persisted record still reports its error."""
        job = await queue.submit(make_job())
        await queue.claim_next(now=clock())
        await queue.fail(job.id, "Unreadable job record: truncated", now=clock())

        stored = await service.get_job(job.id)

        assert stored.state == JobState.FAILED
        assert stored.last_error == "Unreadable job record: truncated"

    @pytest.mark.asyncio
    async def test_ping(self, service):
        assert await service.ping() is True
