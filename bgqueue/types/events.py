"""
Event type definitions for job lifecycle notifications.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from bgqueue.constants import (
    EVENT_JOB_ABANDONED,
    EVENT_JOB_ADDED,
    EVENT_JOB_DONE,
    EVENT_JOB_FAILED,
    EVENT_JOB_STARTED,
    JobStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobEvent(BaseModel):
    """
    Event emitted when job state changes.
    Delivered to subscribers of the event bus.
    """

    event_type: str
    job_id: int
    job_type: str
    queue: str
    status: JobStatus
    timestamp: datetime
    data: dict[str, Any] | None = None

    @classmethod
    def job_added(cls, job_id: int, job_type: str, queue: str) -> "JobEvent":
        """Create a job added event."""
        return cls(
            event_type=EVENT_JOB_ADDED,
            job_id=job_id,
            job_type=job_type,
            queue=queue,
            status=JobStatus.QUEUED,
            timestamp=_utcnow(),
        )

    @classmethod
    def job_started(
        cls,
        job_id: int,
        job_type: str,
        queue: str,
        worker_id: str,
        attempt: int,
    ) -> "JobEvent":
        """Create a job started event."""
        return cls(
            event_type=EVENT_JOB_STARTED,
            job_id=job_id,
            job_type=job_type,
            queue=queue,
            status=JobStatus.IN_PROGRESS,
            timestamp=_utcnow(),
            data={"worker_id": worker_id, "attempt": attempt},
        )

    @classmethod
    def job_done(cls, job_id: int, job_type: str, queue: str) -> "JobEvent":
        """Create a job done event."""
        return cls(
            event_type=EVENT_JOB_DONE,
            job_id=job_id,
            job_type=job_type,
            queue=queue,
            status=JobStatus.DONE,
            timestamp=_utcnow(),
        )

    @classmethod
    def job_failed(
        cls,
        job_id: int,
        job_type: str,
        queue: str,
        error: str | None,
        retry_i: int,
        will_retry: bool,
    ) -> "JobEvent":
        """Create a job failed or abandoned event."""
        return cls(
            event_type=EVENT_JOB_FAILED if will_retry else EVENT_JOB_ABANDONED,
            job_id=job_id,
            job_type=job_type,
            queue=queue,
            status=JobStatus.FAILED if will_retry else JobStatus.ABANDONED,
            timestamp=_utcnow(),
            data={"error": error, "retry_i": retry_i, "will_retry": will_retry},
        )
