"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from bgqueue.constants import (
    EVENT_JOB_ABANDONED,
    EVENT_JOB_ADDED,
    EVENT_JOB_DONE,
    EVENT_JOB_FAILED,
    METRIC_CLAIM_CONFLICTS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_ADDED,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_SETTLED,
    METRIC_QUEUE_DEPTH,
)
from bgqueue.events import EventBus
from bgqueue.types.events import JobEvent

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth
    - Jobs added and settled (done, failed, abandoned)
    - Job execution duration
    - Claims and lost claim races
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Queue depth gauge (by queue)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of queued jobs",
            ["queue"],
            registry=self._registry,
        )

        # Jobs added counter
        self.jobs_added = Counter(
            METRIC_JOBS_ADDED,
            "Total number of jobs added to a queue",
            ["queue", "job_type"],
            registry=self._registry,
        )

        # Jobs settled counter
        self.jobs_settled = Counter(
            METRIC_JOBS_SETTLED,
            "Total number of job attempts settled",
            ["queue", "status"],
            registry=self._registry,
        )

        # Job duration histogram
        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        # Claims counter
        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed",
            ["worker_id"],
            registry=self._registry,
        )

        # Lost claim races
        self.claim_conflicts = Counter(
            METRIC_CLAIM_CONFLICTS,
            "Total number of claims lost to another worker",
            ["worker_id"],
            registry=self._registry,
        )

    def bind(self, events: EventBus) -> "MetricsCollector":
        """
        Subscribe the collector to job lifecycle events.

        Args:
            events: The event bus to listen on.
        """
        events.subscribe(EVENT_JOB_ADDED, self._on_job_added)
        for event_type in (EVENT_JOB_DONE, EVENT_JOB_FAILED, EVENT_JOB_ABANDONED):
            events.subscribe(event_type, self._on_job_settled)
        return self

    def _on_job_added(self, event: JobEvent) -> None:
        self.jobs_added.labels(queue=event.queue, job_type=event.job_type).inc()

    def _on_job_settled(self, event: JobEvent) -> None:
        self.jobs_settled.labels(queue=event.queue, status=event.status.value).inc()

    def record_job_duration(
        self,
        queue: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record how long a job ran."""
        self.job_duration.labels(queue=queue, status=status).observe(duration_seconds)

    def record_claim(self, worker_id: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(worker_id=worker_id).inc()

    def record_claim_conflict(self, worker_id: str) -> None:
        """Record a claim lost to another worker."""
        self.claim_conflicts.labels(worker_id=worker_id).inc()

    def update_queue_depth(self, queue: str, depth: int) -> None:
        """Update queue depth for a queue."""
        self.queue_depth.labels(queue=queue).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, serve metrics over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
        if port:
            start_http_server(port, registry=REGISTRY)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
