"""
Job entity.

A Job is the in-memory form of one queued unit of work. It owns its
lifecycle: persisting itself, moving between statuses and deciding whether a
failure is retried or abandoned. Job types subclass Job and implement run().
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bgqueue.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIME_ESTIMATE_SECONDS,
    ELIGIBLE_STATUSES,
    NO_PARENT,
    TERMINAL_STATUSES,
    TRANSITIONS,
    JobStatus,
)
from bgqueue.db.base import RecordStore
from bgqueue.events import EventBus
from bgqueue.exceptions import DequeueJob, InvalidTransition, SaveJob, StoreError
from bgqueue.registry import JobTypeRegistry
from bgqueue.types.events import JobEvent
from bgqueue.types.job import JobPayload, JobRecord

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """
    Collaborators a job needs to persist and announce itself.
    Shared by every job built through the same JobQueue.
    """

    store: RecordStore
    registry: JobTypeRegistry
    events: EventBus = field(default_factory=EventBus)


def format_timestamp(timestamp: float | datetime | None = None) -> str:
    """Render a log timestamp as ISO-8601 UTC. Defaults to now."""
    if timestamp is None:
        moment = datetime.now(timezone.utc)
    elif isinstance(timestamp, datetime):
        moment = timestamp if timestamp.tzinfo else timestamp.replace(tzinfo=timezone.utc)
        moment = moment.astimezone(timezone.utc)
    else:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="seconds")


class Job(ABC):
    """
    Base class for all job types.

    Subclasses implement run() and may override the class defaults for
    retries and the time estimate:

        class ResizeImage(Job):
            default_max_retries = 3
            default_time_estimate = 60

            def run(self) -> None:
                ...

    Retry policy: every failure increments retry_i. A job is retried while
    retry_i <= max_retries, and never when max_retries is 0.
    """

    default_max_retries: int = DEFAULT_MAX_RETRIES
    default_time_estimate: int = DEFAULT_TIME_ESTIMATE_SECONDS

    def __init__(
        self,
        context: JobContext,
        *,
        job_type: str,
        label: str = "",
        dataset: Any = None,
        parent_id: int = NO_PARENT,
        job_id: int = 0,
        status: JobStatus = JobStatus.UNQUEUED,
        queue: str = "",
        worker_id: str = "",
        history: list[str] | None = None,
        output: list[str] | None = None,
        retry_i: int = 0,
        max_retries: int | None = None,
        time_estimate: int | None = None,
    ):
        self._context = context
        self._type = job_type
        self._label = label
        self._dataset = {} if dataset is None else dataset
        self._parent_id = parent_id
        self._id = job_id
        self._status = JobStatus(status)
        self._queue = queue
        self._worker_id = worker_id
        self._history = list(history or [])
        self._output = list(output or [])
        self._retry_i = retry_i
        self._max_retries = self.default_max_retries if max_retries is None else max_retries
        self._time_estimate = (
            self.default_time_estimate if time_estimate is None else time_estimate
        )

    @abstractmethod
    def run(self) -> None:
        """Execute the job. Raise to report a failure."""

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_record(cls, record: JobRecord, context: JobContext) -> "Job":
        """
        Build a job from a persisted record.

        The concrete class is resolved from the payload's type name.

        Raises:
            UnregisteredJobType: If the type is not registered.
        """
        klass = context.registry.resolve(record.payload.type)
        return klass(
            context,
            job_type=record.payload.type,
            label=record.title,
            dataset=record.payload.dataset,
            parent_id=record.parent_id,
            job_id=record.id,
            status=record.status,
            queue=record.queue,
            worker_id=record.worker_id,
            history=record.payload.history,
            output=record.payload.output,
            retry_i=record.payload.retry_i,
            max_retries=record.payload.max_retries,
            time_estimate=record.payload.time_estimate,
        )

    def to_record(self) -> JobRecord:
        """Get the store representation of the job."""
        return JobRecord(
            id=self._id,
            parent_id=self._parent_id,
            title=self._label,
            status=self._status,
            queue=self._queue,
            worker_id=self._worker_id,
            payload=JobPayload(
                type=self._type,
                dataset=self._dataset,
                history=self._history,
                output=self._output,
                retry_i=self._retry_i,
                max_retries=self._max_retries,
                time_estimate=self._time_estimate,
            ),
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id(self) -> int:
        return self._id

    @property
    def parent_id(self) -> int:
        return self._parent_id

    @property
    def label(self) -> str:
        return self._label

    @property
    def job_type(self) -> str:
        return self._type

    @property
    def dataset(self) -> Any:
        return self._dataset

    @property
    def status(self) -> JobStatus:
        return self._status

    @property
    def queue(self) -> str:
        return self._queue

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def time_estimate(self) -> int:
        return self._time_estimate

    @property
    def retry_i(self) -> int:
        return self._retry_i

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def is_claimed(self) -> bool:
        """Check if a worker holds the job."""
        return bool(self._worker_id)

    @property
    def history(self) -> list[str]:
        return list(self._history)

    @property
    def output(self) -> list[str]:
        return list(self._output)

    def format_history(self, sep: str = "\n") -> str:
        return sep.join(self._history)

    def format_output(self, sep: str = "\n") -> str:
        return sep.join(self._output)

    def set_dataset(self, data: Any) -> "Job":
        """Replace the dataset. The change is only stored on the next save()."""
        self._dataset = data
        return self

    def get_parent(self) -> "Job | None":
        """
        Load the parent job.

        Returns:
            The parent, or None for top-level jobs and missing parents.
        """
        if self._parent_id == NO_PARENT:
            return None
        record = self._context.store.get(self._parent_id)
        if record is None:
            return None
        return Job.from_record(record, self._context)

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def log_history(self, msg: str, timestamp: float | datetime | None = None) -> "Job":
        """Append an entry to the job's history."""
        self._history.append(f"{format_timestamp(timestamp)}\t{msg}")
        return self

    def log_output(self, msg: str, timestamp: float | datetime | None = None) -> "Job":
        """Append an entry to the job's output."""
        self._output.append(f"{format_timestamp(timestamp)}\t{msg}")
        return self

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def can_be_retried(self) -> bool:
        """
        Determine whether the job may still be retried.

        max_retries == 0 disables retries entirely.
        """
        return (
            self._status != JobStatus.ABANDONED
            and self._retry_i <= self._max_retries
            and self._max_retries != 0
        )

    def save(self, queue: str, worker_id: str | None = None) -> "Job":
        """
        Persist the job.

        The first save moves an unqueued job to QUEUED and announces it with a
        job_added event. Later saves keep the status. The claim is set to
        ``worker_id``; passing None releases it.

        Args:
            queue: The queue the job belongs to.
            worker_id: The claiming worker, if any.

        Raises:
            SaveJob: If the store rejects the job. The id, status, queue and
                claim are restored to their values before the call.
        """
        previous = (self._id, self._status, self._queue, self._worker_id)
        previously_unqueued = self._status == JobStatus.UNQUEUED

        if previously_unqueued:
            self._set_status(JobStatus.QUEUED)
        self._queue = queue
        self._worker_id = worker_id or ""

        self.log_history("Job was persisted to the store")
        store = self._context.store
        try:
            if self._id:
                store.update(self.to_record())
            else:
                self._id = store.insert(self.to_record())
        except StoreError as e:
            self._id, self._status, self._queue, self._worker_id = previous
            self.log_history(f"Job could not be persisted: {e}")
            logger.warning(
                f"Failed to save job: {e}",
                extra={"job_id": self._id, "queue": queue}
            )
            raise SaveJob(str(e)) from e

        if previously_unqueued:
            logger.info(
                "Job added",
                extra={"job_id": self._id, "job_type": self._type, "queue": queue}
            )
            self._emit(JobEvent.job_added(self._id, self._type, queue))

        return self

    def mark_as_in_progress(self) -> "Job":
        """
        Mark a claimed job as running. The claim is kept.

        Raises:
            InvalidTransition: If the job is not QUEUED or FAILED.
            SaveJob: If the store rejects the job. The job keeps its
                previous status.
        """
        if self._status not in ELIGIBLE_STATUSES:
            raise InvalidTransition(self._status, JobStatus.IN_PROGRESS)

        with self._rollback_on_save_error():
            self._set_status(JobStatus.IN_PROGRESS)
            attempt = self._retry_i + 1
            self.log_history(f"Job started by {self._worker_id or 'an unknown worker'} (attempt #{attempt})")
            self.save(self._queue, self._worker_id)
        self._emit(
            JobEvent.job_started(self._id, self._type, self._queue, self._worker_id, attempt)
        )
        return self

    def mark_as_failed(self, error: BaseException | str | None = None) -> "Job":
        """
        Record a failed attempt.

        The job becomes FAILED while it can be retried and ABANDONED
        otherwise. A job already done or abandoned keeps its status; the
        attempt is still counted. The job is saved right away and its claim
        released. An unqueued job has never been attempted: the failure is
        noted in its history and nothing else changes.

        Args:
            error: What went wrong, for the history log.

        Raises:
            SaveJob: If the store rejects the job. Status, attempt count and
                claim are left as they were before the call.
        """
        if error is not None:
            self.log_history(f"A problem occurred processing the job: {error}")
        else:
            self.log_history("A problem occurred processing the job")

        if self._status == JobStatus.UNQUEUED:
            self.log_history("Job is not queued; the failure is not counted")
            logger.warning(
                "Failure reported for an unqueued job",
                extra={"job_type": self._type, "error": str(error) if error else None}
            )
            return self

        with self._rollback_on_save_error():
            self._retry_i += 1

            if self._status in TERMINAL_STATUSES:
                self.log_history(
                    f"Job is already {self._status}; attempt #{self._retry_i} does not change it"
                )
                self.save(self._queue)
                return self

            will_retry = self.can_be_retried()
            if will_retry:
                self._set_status(JobStatus.FAILED)
                self.log_history(f"Job failed in attempt #{self._retry_i}")
            else:
                self._set_status(JobStatus.ABANDONED)
                self.log_history(f"Job abandoned after attempt #{self._retry_i}")

            self.save(self._queue)

        logger.warning(
            "Job failed" if will_retry else "Job abandoned",
            extra={"job_id": self._id, "retry_i": self._retry_i, "error": str(error) if error else None}
        )
        self._emit(
            JobEvent.job_failed(
                self._id,
                self._type,
                self._queue,
                str(error) if error is not None else None,
                self._retry_i,
                will_retry,
            )
        )
        return self

    def mark_as_done(self) -> "Job":
        """
        Mark the job as complete and release its claim.

        Raises:
            InvalidTransition: If the job is unqueued, done or abandoned.
            SaveJob: If the store rejects the job. The job keeps its
                previous status and claim.
        """
        with self._rollback_on_save_error():
            self._set_status(JobStatus.DONE)
            self.log_history("Job is complete")
            self.save(self._queue)
        self._emit(JobEvent.job_done(self._id, self._type, self._queue))
        return self

    def unclaim(self) -> "Job":
        """Release the job from its worker. The status is unchanged."""
        self.log_history(f"Job was unclaimed from {self._worker_id}")
        self.save(self._queue)
        return self

    def delete(self) -> "Job":
        """
        Permanently remove the job from the store.

        Raises:
            DequeueJob: If the job is not persisted or could not be removed.
        """
        if not self._id or not self._context.store.delete(self._id):
            raise DequeueJob(self._id, f"Could not dequeue job #{self._id}")

        logger.info("Job deleted", extra={"job_id": self._id})
        self._id = 0
        self._worker_id = ""
        self._queue = ""
        return self

    @contextmanager
    def _rollback_on_save_error(self) -> Iterator[None]:
        """Restore status, attempt count and claim if the block raises SaveJob."""
        previous = (self._status, self._retry_i, self._worker_id)
        try:
            yield
        except SaveJob:
            self._status, self._retry_i, self._worker_id = previous
            raise

    def _set_status(self, target: JobStatus) -> None:
        if target not in TRANSITIONS[self._status]:
            raise InvalidTransition(self._status, target)
        self._status = target

    def _emit(self, event: JobEvent) -> None:
        self._context.events.emit(event)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self._id}, type={self._type!r}, "
            f"status={self._status}, retry={self._retry_i}/{self._max_retries})"
        )
