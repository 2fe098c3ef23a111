"""
Unit tests for metrics sinks.
"""

from prometheus_client import CollectorRegistry

from notifyq.constants import DeliveryStatus, JobState
from notifyq.observability.metrics import MetricsCollector, NullMetrics
from notifyq.types.job import QueueStats


class TestMetricsCollector:
    """Tests for the Prometheus metrics collector."""

    def test_collectors_are_per_registry(self):
        """Test two collectors on separate registries do not clash."""
        first = MetricsCollector(CollectorRegistry())
        second = MetricsCollector(CollectorRegistry())

        first.record_job_submitted()

        assert first.jobs_submitted._value.get() == 1
        assert second.jobs_submitted._value.get() == 0

    def test_delivery_attempts_by_outcome(self, metrics, registry):
        metrics.record_delivery_attempt(DeliveryStatus.DELIVERED, 0.2)
        metrics.record_delivery_attempt(DeliveryStatus.TRANSIENT_ERROR, 1.5)
        metrics.record_delivery_attempt(DeliveryStatus.TRANSIENT_ERROR, 0.7)

        assert registry.get_sample_value(
            "notification_delivery_attempts_total", {"outcome": "delivered"}
        ) == 1
        assert registry.get_sample_value(
            "notification_delivery_attempts_total", {"outcome": "transient_error"}
        ) == 2
        assert registry.get_sample_value(
            "notification_delivery_duration_seconds_count", {"outcome": "transient_error"}
        ) == 2

    def test_resolved_jobs_count_sms_sent(self, metrics, registry):
        """Test terminal resolutions feed the sms_sent counter."""
        metrics.record_job_resolved(JobState.COMPLETED)
        metrics.record_job_resolved(JobState.RETRYING)
        metrics.record_job_resolved(JobState.FAILED)

        assert registry.get_sample_value("sms_sent_total", {"status": "sent"}) == 1
        assert registry.get_sample_value("sms_sent_total", {"status": "failed"}) == 1
        assert registry.get_sample_value(
            "notification_jobs_resolved_total", {"state": "retrying"}
        ) == 1

    def test_queue_depth(self, metrics, registry):
        metrics.update_queue_depth(QueueStats(pending_count=4, retry_count=1, failed_count=2))

        assert registry.get_sample_value("notification_queue_depth", {"container": "pending"}) == 4
        assert registry.get_sample_value("notification_queue_depth", {"container": "retrying"}) == 1
        assert registry.get_sample_value("notification_queue_depth", {"container": "processing"}) == 0

    def test_exposition(self, metrics):
        """Test the text exposition contains registered metrics."""
        metrics.record_lease_expired(2)

        body = metrics.get_metrics().decode()

        assert "notification_lease_expired_total 2.0" in body
        assert metrics.get_content_type().startswith("text/plain")


def test_null_metrics_accepts_every_call():
    """Test the default sink silently accepts all recordings."""
    sink = NullMetrics()

    sink.record_job_submitted()
    sink.record_submit_failed("store")
    sink.record_lease_acquired("worker-1")
    sink.record_delivery_attempt(DeliveryStatus.REJECTED, 0.1)
    sink.record_job_resolved(JobState.FAILED)
    sink.record_lease_expired()
    sink.update_queue_depth(QueueStats())
