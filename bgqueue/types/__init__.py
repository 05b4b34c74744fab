"""
Type definitions for the job queue.
Contains record, query and event types shared across modules.
"""

from bgqueue.types.events import JobEvent
from bgqueue.types.job import (
    JobPayload,
    JobRecord,
    RecordQuery,
)

__all__ = [
    # Job types
    "JobPayload",
    "JobRecord",
    "RecordQuery",
    # Event types
    "JobEvent",
]
