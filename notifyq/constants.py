"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Notification job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (claimed, scheduled_for <= now)
    - RETRYING -> PROCESSING (claimed, scheduled_for <= now)
    - PROCESSING -> COMPLETED (delivered)
    - PROCESSING -> RETRYING (failed, attempts < max_attempts)
    - PROCESSING -> FAILED (failed, attempts >= max_attempts)
    - PROCESSING -> RETRYING (lease expired - crash recovery)

    UNKNOWN is only ever returned by status lookups for jobs that are not
    held by any container (never submitted, or expired after retention).
    """

    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"



class DeliveryStatus(StrEnum):
    """Classification of a single gateway delivery attempt."""

    DELIVERED = "delivered"
    REJECTED = "rejected"
    TRANSIENT_ERROR = "transient_error"


# Redis key suffixes, joined to the configured prefix with ":"
KEY_PENDING = "pending"
KEY_RETRY = "retry"
KEY_PROCESSING = "processing"
KEY_COMPLETED = "completed"
KEY_FAILED = "failed"
KEY_LEASES = "leases"
KEY_SEQUENCE = "sequence"
KEY_SEQUENCE_COUNTER = "sequence_counter"
KEY_JOB = "job"
KEY_ERROR = "error"
KEY_STATS_DELIVERED = "stats:delivered"
KEY_STATS_FAILED = "stats:failed"

# Africa's Talking per-recipient status codes
GATEWAY_ACCEPTED_CODES = frozenset({100, 101, 102})  # Processed, Sent, Queued
GATEWAY_TRANSIENT_CODES = frozenset({500, 501, 502})  # InternalServerError, GatewayError, RejectedByGateway
GATEWAY_MESSAGING_PATH = "/messaging"

# Default values
DEFAULT_MAX_ATTEMPTS = 3

# Optimistic transaction retries before a contended move gives up
WATCH_RETRY_LIMIT = 50

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "notification_queue_depth"
METRIC_JOBS_SUBMITTED = "notification_jobs_submitted_total"
METRIC_SUBMIT_FAILURES = "notification_submit_failures_total"
METRIC_JOBS_RESOLVED = "notification_jobs_resolved_total"
METRIC_DELIVERY_ATTEMPTS = "notification_delivery_attempts_total"
METRIC_DELIVERY_DURATION = "notification_delivery_duration_seconds"
METRIC_LEASE_EXPIRED = "notification_lease_expired_total"
METRIC_LEASE_ACQUIRED = "notification_lease_acquired_total"
METRIC_SMS_SENT = "sms_sent_total"

# Trace span names
SPAN_SUBMIT_JOB = "submit_notification"
SPAN_DELIVER = "deliver_notification"
