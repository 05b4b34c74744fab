"""
Worker process for executing jobs.

The worker claims jobs from the queue, runs them, and settles each one as
done or failed according to the job lifecycle.
"""

import importlib
import logging
import os
import signal
import threading
import time
from types import FrameType

from bgqueue.config import get_settings
from bgqueue.constants import SPAN_EXECUTE_JOB, JobStatus
from bgqueue.db import SQLAlchemyRecordStore, close_db, get_engine, init_db
from bgqueue.events import EventBus
from bgqueue.jobs.base import Job
from bgqueue.observability.logging import (
    bind_context,
    clear_context,
    job_log_context,
    setup_logging,
)
from bgqueue.observability.metrics import MetricsCollector, get_metrics, setup_metrics
from bgqueue.observability.tracing import (
    instrument_sqlalchemy,
    setup_tracing,
    shutdown_tracing,
    traced,
)
from bgqueue.queue import JobQueue
from bgqueue.registry import JobTypeRegistry

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Atomic claims, so concurrent workers never run the same job
    - Children are worked off before unrelated top-level jobs
    - Graceful shutdown on SIGTERM/SIGINT
    - Retry and abandon handling through the job itself
    """

    def __init__(
        self,
        job_queue: JobQueue,
        worker_id: str | None = None,
        queue: str | None = None,
        poll_interval: float | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the worker.

        Args:
            job_queue: The queue to take jobs from.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            queue: Queue name to serve, or None for every queue.
            poll_interval: Seconds between polls when the queue is empty.
            metrics: Metrics collector. Defaults to the global one.
        """
        settings = get_settings()

        self.job_queue = job_queue
        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.queue = queue if queue is not None else settings.worker_queue
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds

        self._stop_event = threading.Event()
        self._metrics = metrics or get_metrics()

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def start(self) -> None:
        """Run the polling loop until stop() is called."""
        bind_context(worker_id=self.worker_id)
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "queue": self.queue or "*"}
        )

        self._stop_event.clear()
        while self.running:
            try:
                job = self.run_once()
                if job is None:
                    self._update_queue_depth()
                    self._stop_event.wait(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id}
                )
                self._stop_event.wait(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})
        clear_context()

    def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stop_event.set()

    def run_once(self) -> Job | None:
        """
        Claim and execute a single job.

        Returns:
            The settled job, or None if nothing was available.
        """
        job = self.job_queue.claim_next(self.worker_id, self.queue)
        if job is None:
            return None

        try:
            with job_log_context(job.id, job.job_type, job.queue):
                self._execute_job(job)
        except Exception as e:
            logger.exception(
                "Exception executing job",
                extra={"job_id": job.id, "error": str(e)}
            )

            # A started job is settled as failed, anything else is handed back
            try:
                if job.status == JobStatus.IN_PROGRESS:
                    job.mark_as_failed(e)
                else:
                    job.unclaim()
            except Exception:
                logger.exception("Failed to release job", extra={"job_id": job.id})

        return job

    def _execute_job(self, job: Job) -> None:
        """
        Execute a claimed job.

        Handles the full lifecycle:
        1. Transition to IN_PROGRESS
        2. Run the job
        3. Mark as DONE, or as FAILED/ABANDONED if it raised
        """
        start_time = time.monotonic()
        job.mark_as_in_progress()

        logger.info(
            "Executing job",
            extra={
                "job_id": job.id,
                "job_type": job.job_type,
                "queue": job.queue,
                "attempt": job.retry_i + 1,
            }
        )

        error: Exception | None = None
        with traced(
            SPAN_EXECUTE_JOB,
            job_id=job.id,
            job_type=job.job_type,
            attempt=job.retry_i + 1,
        ) as span:
            try:
                job.run()
            except Exception as e:
                span.record_exception(e)
                error = e

        duration = time.monotonic() - start_time

        if error is None:
            job.mark_as_done()
            logger.info(
                "Job completed successfully",
                extra={"job_id": job.id, "duration": f"{duration:.2f}s"}
            )
        else:
            logger.warning(
                "Job raised an exception",
                extra={"job_id": job.id, "error": str(error), "attempt": job.retry_i + 1}
            )
            job.mark_as_failed(error)

        self._metrics.record_job_duration(
            queue=job.queue,
            status=job.status.value,
            duration_seconds=duration,
        )

    def _update_queue_depth(self) -> None:
        if self.queue is not None:
            depth = self.job_queue.count_by_queue(self.queue, (JobStatus.QUEUED,))
        else:
            depth = self.job_queue.count_all((JobStatus.QUEUED,))
        self._metrics.update_queue_depth(self.queue or "*", depth)


def load_registry(path: str) -> JobTypeRegistry:
    """
    Import a job type registry from a ``"module:attribute"`` path.

    Raises:
        ValueError: If the path is malformed or does not name a registry.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Registry path must look like 'module:attribute', got {path!r}")

    registry = getattr(importlib.import_module(module_name), attribute)
    if not isinstance(registry, JobTypeRegistry):
        raise ValueError(f"{path!r} is not a JobTypeRegistry")
    return registry


def run() -> None:
    """Run the worker."""
    settings = get_settings()
    setup_logging()
    if settings.otel_enabled:
        setup_tracing()
        instrument_sqlalchemy(get_engine())

    if not settings.worker_registry:
        raise SystemExit("WORKER_REGISTRY must name the job type registry, e.g. 'myapp.jobs:registry'")

    session_factory = init_db()
    events = EventBus()
    metrics = setup_metrics(settings.metrics_port).bind(events)

    job_queue = JobQueue(
        store=SQLAlchemyRecordStore(session_factory),
        registry=load_registry(settings.worker_registry),
        events=events,
        metrics=metrics,
    )
    worker = Worker(job_queue, metrics=metrics)

    def _handle_signal(signum: int, frame: FrameType | None) -> None:
        worker.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_signal)

    try:
        worker.start()
    finally:
        close_db()
        shutdown_tracing()


if __name__ == "__main__":
    run()
