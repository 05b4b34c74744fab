"""
Job queue.

Entry point for hosts and workers: creates jobs, loads them back from the
store, picks the next job to work on and lists what is queued.

Dequeue order: a parent's pending descendants are worked off before any
unrelated top-level job is offered. At every level of the job tree the
oldest eligible job that itself has eligible children wins, otherwise the
oldest eligible job. The walk then descends until it reaches a job without
eligible children.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from bgqueue.config import get_settings
from bgqueue.constants import (
    ELIGIBLE_STATUSES,
    NO_PARENT,
    SPAN_CLAIM_JOB,
    SPAN_DEQUEUE_JOB,
    JobStatus,
)
from bgqueue.db.base import RecordStore
from bgqueue.events import EventBus
from bgqueue.exceptions import DequeueJob
from bgqueue.jobs.base import Job, JobContext
from bgqueue.observability.metrics import MetricsCollector
from bgqueue.observability.tracing import traced
from bgqueue.registry import JobTypeRegistry
from bgqueue.types.job import JobRecord, RecordQuery

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Facade over the record store, job type registry and event bus.

    Selection (get_next_from_queue) and claiming are separate steps;
    claim_next() combines them with an atomic claim so that two workers can
    never both take the same job.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: JobTypeRegistry,
        events: EventBus | None = None,
        metrics: MetricsCollector | None = None,
        claim_attempts: int | None = None,
        max_depth: int | None = None,
    ):
        """
        Initialize the queue.

        Args:
            store: Where job records live.
            registry: Job type name to class mapping.
            events: Event bus for lifecycle events. A private bus is created
                when omitted.
            metrics: Optional metrics collector for claim statistics.
            claim_attempts: How many selections claim_next() tries before
                giving up on lost races.
            max_depth: Deepest level the dequeue walk descends to.
        """
        settings = get_settings()

        self._context = JobContext(
            store=store,
            registry=registry,
            events=events or EventBus(),
        )
        self._metrics = metrics
        self.claim_attempts = claim_attempts or settings.claim_attempts
        self.max_depth = max_depth or settings.dequeue_max_depth

    @property
    def store(self) -> RecordStore:
        return self._context.store

    @property
    def registry(self) -> JobTypeRegistry:
        return self._context.registry

    @property
    def events(self) -> EventBus:
        return self._context.events

    # ------------------------------------------------------------------
    # Creating and loading jobs
    # ------------------------------------------------------------------

    def create(
        self,
        label: str,
        job_type: str,
        dataset: Any = None,
        parent_job_id: int = NO_PARENT,
        *,
        max_retries: int | None = None,
        time_estimate: int | None = None,
    ) -> Job:
        """
        Create a new, unqueued job. Call save() on it to enqueue it.

        Args:
            label: Human-friendly description.
            job_type: Registered job type name.
            dataset: Data the job works with.
            parent_job_id: Id of the job that spawned this one, 0 for none.
            max_retries: Override the job class default.
            time_estimate: Override the job class default, in seconds.

        Raises:
            UnregisteredJobType: If ``job_type`` is not registered.
            ValueError: If the parent job does not exist.
        """
        klass = self.registry.resolve(job_type)

        if parent_job_id != NO_PARENT and self.store.get(parent_job_id) is None:
            raise ValueError(f"Parent job #{parent_job_id} does not exist")

        return klass(
            self._context,
            job_type=job_type,
            label=label,
            dataset=dataset,
            parent_id=parent_job_id,
            max_retries=max_retries,
            time_estimate=time_estimate,
        )

    def get(self, job_id: int) -> Job | None:
        """
        Load a job by id.

        Returns:
            The job or None if not found.
        """
        record = self.store.get(job_id)
        if record is None:
            return None
        return self._to_job(record)

    def dequeue(self, job_id: int) -> Job:
        """
        Remove a job from the store by id.

        Returns:
            The removed job, with its id, queue and claim reset.

        Raises:
            DequeueJob: If the job does not exist or could not be removed.
        """
        job = self.get(job_id)
        if job is None:
            raise DequeueJob(job_id)
        return job.delete()

    # ------------------------------------------------------------------
    # Dequeue
    # ------------------------------------------------------------------

    def get_next_from_queue(
        self,
        queue: str | None = None,
        unclaimed_only: bool = False,
    ) -> Job | None:
        """
        Select the next job to work on. The job is not claimed.

        Args:
            queue: Queue to take from, or None for any queue.
            unclaimed_only: Ignore jobs a worker already holds.

        Returns:
            The selected job, or None if no job is queued or failed.
        """
        with traced(SPAN_DEQUEUE_JOB, queue=queue or "*") as span:

            record = self._first_eligible(queue, NO_PARENT, unclaimed_only)
            if record is None:
                # Children whose parents are no longer eligible, and orphans
                record = self._first_eligible(queue, None, unclaimed_only)
            if record is None:
                return None

            record = self._descend(record, queue, unclaimed_only)
            span.set_attribute("job_id", record.id)

        return self._to_job(record)

    def claim_next(self, worker_id: str, queue: str | None = None) -> Job | None:
        """
        Select and atomically claim the next job for a worker.

        If another worker claims the selected job first, selection is
        repeated up to ``claim_attempts`` times.

        Args:
            worker_id: The claiming worker.
            queue: Queue to take from, or None for any queue.

        Returns:
            The claimed job, or None if nothing could be claimed.
        """
        with traced(SPAN_CLAIM_JOB, worker_id=worker_id, queue=queue) as span:

            for attempt in range(1, self.claim_attempts + 1):
                candidate = self.get_next_from_queue(queue, unclaimed_only=True)
                if candidate is None:
                    return None

                if self.store.claim(candidate.id, worker_id, ELIGIBLE_STATUSES):
                    if self._metrics is not None:
                        self._metrics.record_claim(worker_id)
                    logger.info(
                        "Claimed job",
                        extra={"job_id": candidate.id, "worker_id": worker_id, "queue": candidate.queue}
                    )
                    span.set_attribute("job_id", candidate.id)
                    return self.get(candidate.id)

                if self._metrics is not None:
                    self._metrics.record_claim_conflict(worker_id)
                logger.info(
                    "Lost claim race",
                    extra={"job_id": candidate.id, "worker_id": worker_id, "attempt": attempt}
                )

        return None

    def _first_eligible(
        self,
        queue: str | None,
        parent_id: int | None,
        unclaimed_only: bool,
    ) -> JobRecord | None:
        """Find the preferred eligible job under ``parent_id`` (None: any parent)."""
        query = RecordQuery(
            parent_id=parent_id,
            statuses=ELIGIBLE_STATUSES,
            queue=queue,
            unclaimed_only=unclaimed_only,
        )
        for candidate_query in (replace(query, has_child_in=ELIGIBLE_STATUSES), query):
            records = self.store.query(candidate_query, limit=1)
            if records:
                return records[0]
        return None

    def _descend(
        self,
        record: JobRecord,
        queue: str | None,
        unclaimed_only: bool,
    ) -> JobRecord:
        """Walk down to the deepest eligible descendant of ``record``."""
        visited = {record.id}
        for _ in range(self.max_depth):
            child = self._first_eligible(queue, record.id, unclaimed_only)
            if child is None:
                return record
            if child.id in visited:
                logger.warning(
                    "Job tree contains a cycle, stopping descent",
                    extra={"job_id": record.id, "child_id": child.id}
                )
                return record
            visited.add(child.id)
            record = child

        logger.warning(
            f"Dequeue walk reached max depth {self.max_depth}",
            extra={"job_id": record.id}
        )
        return record

    # ------------------------------------------------------------------
    # Listing and counting
    # ------------------------------------------------------------------

    def list_by_queue(
        self,
        queue: str | None = None,
        limit: int = 0,
        statuses: Iterable[JobStatus] = ELIGIBLE_STATUSES,
        parent_id: int | None = None,
    ) -> list[Job]:
        """
        List jobs, oldest first.

        Args:
            queue: Queue name, or None for all queues.
            limit: Maximum number of jobs, 0 for no limit.
            statuses: Statuses to include.
            parent_id: Only children of this job (0 for top-level jobs).
        """
        query = RecordQuery(
            parent_id=parent_id,
            statuses=frozenset(statuses),
            queue=queue,
        )
        return [self._to_job(record) for record in self.store.query(query, limit=limit)]

    def count_by_queue(
        self,
        queue: str,
        statuses: Iterable[JobStatus] = (JobStatus.QUEUED,),
    ) -> int:
        """Count jobs in one queue with the given statuses."""
        return self.store.count(RecordQuery(statuses=frozenset(statuses), queue=queue))

    def count_all(self, statuses: Iterable[JobStatus] = (JobStatus.QUEUED,)) -> int:
        """Count jobs across all queues with the given statuses."""
        return self.store.count(RecordQuery(statuses=frozenset(statuses)))

    def list_queue_names(self, hide_inactive: bool = False) -> list[str]:
        """
        Get the names of all queues that have been used.

        Args:
            hide_inactive: Leave out queues whose jobs are all done or abandoned.
        """
        return self.store.queue_names(active_only=hide_inactive)

    def _to_job(self, record: JobRecord) -> Job:
        return Job.from_record(record, self._context)
