"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - UNQUEUED -> QUEUED (first save)
    - QUEUED, FAILED -> IN_PROGRESS (claimed and started)
    - QUEUED, FAILED, IN_PROGRESS -> DONE (success)
    - QUEUED, FAILED, IN_PROGRESS -> FAILED (failure, retry allowed)
    - QUEUED, FAILED, IN_PROGRESS -> ABANDONED (failure, retries exhausted or disabled)

    DONE and ABANDONED are terminal. An unqueued job can only be saved.
    """

    UNQUEUED = "unqueued"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"
    ABANDONED = "abandoned"


# Statuses the dequeue algorithm may hand out
ELIGIBLE_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.FAILED, JobStatus.QUEUED}
)

# Statuses a job never leaves
TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.DONE, JobStatus.ABANDONED}
)

# Allowed status transitions (source -> targets)
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.UNQUEUED: frozenset({JobStatus.QUEUED}),
    JobStatus.QUEUED: frozenset(
        {JobStatus.IN_PROGRESS, JobStatus.DONE, JobStatus.FAILED, JobStatus.ABANDONED}
    ),
    JobStatus.IN_PROGRESS: frozenset(
        {JobStatus.DONE, JobStatus.FAILED, JobStatus.ABANDONED}
    ),
    JobStatus.FAILED: frozenset(
        {JobStatus.IN_PROGRESS, JobStatus.DONE, JobStatus.FAILED, JobStatus.ABANDONED}
    ),
    JobStatus.DONE: frozenset(),
    JobStatus.ABANDONED: frozenset(),
}

# Default values
DEFAULT_TIME_ESTIMATE_SECONDS = 20
DEFAULT_MAX_RETRIES = 0
DEFAULT_CLAIM_ATTEMPTS = 3
DEFAULT_DEQUEUE_MAX_DEPTH = 64

# Parent id of a top-level job
NO_PARENT = 0

# Metrics names
METRIC_QUEUE_DEPTH = "bgqueue_queue_depth"
METRIC_JOBS_ADDED = "bgqueue_jobs_added_total"
METRIC_JOBS_SETTLED = "bgqueue_jobs_settled_total"
METRIC_JOB_DURATION = "bgqueue_job_duration_seconds"
METRIC_JOBS_CLAIMED = "bgqueue_jobs_claimed_total"
METRIC_CLAIM_CONFLICTS = "bgqueue_claim_conflicts_total"

# Trace span names
SPAN_DEQUEUE_JOB = "dequeue_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"

# Event types
EVENT_JOB_ADDED = "job_added"
EVENT_JOB_STARTED = "job_started"
EVENT_JOB_DONE = "job_done"
EVENT_JOB_FAILED = "job_failed"
EVENT_JOB_ABANDONED = "job_abandoned"
