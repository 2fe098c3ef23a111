"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from notifyq.observability.logging import bind_context, clear_context, setup_logging
from notifyq.observability.metrics import (
    MetricsCollector,
    NullMetrics,
    setup_metrics,
)
from notifyq.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "setup_metrics",
    "MetricsCollector",
    "NullMetrics",
    "setup_tracing",
    "get_tracer",
]
