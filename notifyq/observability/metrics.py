"""
Metrics sinks for the dispatch subsystem.

Components receive a sink through their constructors. ``NullMetrics`` is the
default and records nothing; ``MetricsCollector`` exports to Prometheus.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from notifyq.constants import (
    METRIC_DELIVERY_ATTEMPTS,
    METRIC_DELIVERY_DURATION,
    METRIC_JOBS_RESOLVED,
    METRIC_JOBS_SUBMITTED,
    METRIC_LEASE_ACQUIRED,
    METRIC_LEASE_EXPIRED,
    METRIC_QUEUE_DEPTH,
    METRIC_SMS_SENT,
    METRIC_SUBMIT_FAILURES,
    DeliveryStatus,
    JobState,
)
from notifyq.types.job import QueueStats


class NullMetrics:
    """Metrics sink that discards everything."""

    def record_job_submitted(self) -> None:
        pass

    def record_submit_failed(self, reason: str) -> None:
        pass

    def record_lease_acquired(self, worker_id: str, count: int = 1) -> None:
        pass

    def record_delivery_attempt(self, outcome: DeliveryStatus, duration_seconds: float) -> None:
        pass

    def record_job_resolved(self, state: JobState) -> None:
        pass

    def record_lease_expired(self, count: int = 1) -> None:
        pass

    def update_queue_depth(self, stats: QueueStats) -> None:
        pass


class MetricsCollector(NullMetrics):
    """
    Prometheus metrics collector for the notification dispatcher.

    Collects metrics for:
    - Queue depth per container
    - Submissions and submission failures
    - Delivery attempts and their duration
    - Job resolutions (completed / retrying / failed)
    - Lease operations
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of notification jobs per container",
            ["container"],
            registry=self._registry,
        )

        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of notification jobs submitted",
            registry=self._registry,
        )

        self.submit_failures = Counter(
            METRIC_SUBMIT_FAILURES,
            "Total number of notification submissions that could not be queued",
            ["reason"],
            registry=self._registry,
        )

        self.delivery_attempts = Counter(
            METRIC_DELIVERY_ATTEMPTS,
            "Total number of gateway delivery attempts",
            ["outcome"],
            registry=self._registry,
        )

        self.delivery_duration = Histogram(
            METRIC_DELIVERY_DURATION,
            "Gateway delivery call duration in seconds",
            ["outcome"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        self.jobs_resolved = Counter(
            METRIC_JOBS_RESOLVED,
            "Total number of processed jobs by resulting state",
            ["state"],
            registry=self._registry,
        )

        self.sms_sent = Counter(
            METRIC_SMS_SENT,
            "Total number of SMS messages sent",
            ["status"],
            registry=self._registry,
        )

        self.lease_expired = Counter(
            METRIC_LEASE_EXPIRED,
            "Total number of expired processing leases",
            registry=self._registry,
        )

        self.lease_acquired = Counter(
            METRIC_LEASE_ACQUIRED,
            "Total number of jobs claimed",
            ["worker_id"],
            registry=self._registry,
        )

    def record_job_submitted(self) -> None:
        self.jobs_submitted.inc()

    def record_submit_failed(self, reason: str) -> None:
        self.submit_failures.labels(reason=reason).inc()

    def record_lease_acquired(self, worker_id: str, count: int = 1) -> None:
        self.lease_acquired.labels(worker_id=worker_id).inc(count)

    def record_delivery_attempt(self, outcome: DeliveryStatus, duration_seconds: float) -> None:
        self.delivery_attempts.labels(outcome=outcome.value).inc()
        self.delivery_duration.labels(outcome=outcome.value).observe(duration_seconds)

    def record_job_resolved(self, state: JobState) -> None:
        self.jobs_resolved.labels(state=state.value).inc()
        if state == JobState.COMPLETED:
            self.sms_sent.labels(status="sent").inc()
        elif state == JobState.FAILED:
            self.sms_sent.labels(status="failed").inc()

    def record_lease_expired(self, count: int = 1) -> None:
        self.lease_expired.inc(count)

    def update_queue_depth(self, stats: QueueStats) -> None:
        for container, depth in stats.depth_by_container().items():
            self.queue_depth.labels(container=container).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(registry: CollectorRegistry | None = None) -> MetricsCollector:
    """
    Create a Prometheus metrics collector.

    Each call registers a fresh set of collectors, so a process should call
    this once and pass the result to the components that need it.
    """
    return MetricsCollector(registry)
