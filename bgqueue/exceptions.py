"""
Exception hierarchy for the job queue.
"""


class JobQueueError(Exception):
    """Base class for all job queue errors."""


class UnregisteredJobType(JobQueueError):
    """Raised when a job type name has no registered constructor."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"A type has not been registered for '{job_type}'")


class DequeueJob(JobQueueError):
    """Raised when a job record could not be removed from the store."""

    def __init__(self, job_id: int, message: str | None = None):
        self.job_id = job_id
        super().__init__(message or f"Job #{job_id} could not be dequeued")


class SaveJob(JobQueueError):
    """
    Raised when the store rejects a job.

    The store's own message is kept on ``store_message``.
    """

    def __init__(self, store_message: str):
        self.store_message = store_message
        super().__init__(f"Job could not be saved: {store_message}")


class InvalidJobRecord(JobQueueError):
    """Raised when a persisted record cannot be turned back into a job."""


class InvalidTransition(JobQueueError):
    """Raised when a status change is not allowed by the job state machine."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Cannot move a job from '{source}' to '{target}'")


class StoreError(JobQueueError):
    """Raised by a record store when it rejects an operation."""
