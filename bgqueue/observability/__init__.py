"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from bgqueue.observability.logging import (
    bind_context,
    clear_context,
    job_log_context,
    setup_logging,
)
from bgqueue.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from bgqueue.observability.tracing import (
    get_tracer,
    setup_tracing,
    shutdown_tracing,
    traced,
)

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "job_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "shutdown_tracing",
    "traced",
]
