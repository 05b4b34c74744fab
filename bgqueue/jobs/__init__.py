"""
Jobs module.
Contains the Job base class and the built-in job types.
"""

from bgqueue.jobs.base import Job, JobContext, format_timestamp
from bgqueue.jobs.builtin import (
    EchoJob,
    FailingJob,
    SleepJob,
    register_builtin_types,
)

__all__ = [
    "Job",
    "JobContext",
    "format_timestamp",
    "EchoJob",
    "SleepJob",
    "FailingJob",
    "register_builtin_types",
]
