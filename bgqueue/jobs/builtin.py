"""
Built-in job types.

Small job implementations used for smoke testing workers and queues.
Jobs may run more than once (a failed attempt is retried), so they should be
idempotent.
"""

import logging
import time

from bgqueue.jobs.base import Job
from bgqueue.registry import JobTypeRegistry

logger = logging.getLogger(__name__)


class EchoJob(Job):
    """
    Echo job for testing.

    Writes the dataset to the job output.
    """

    def run(self) -> None:
        logger.info(
            "Echo job executing",
            extra={"job_id": self.id, "attempt": self.retry_i + 1}
        )
        self.log_output(f"echo: {self.dataset}")


class SleepJob(Job):
    """
    Sleep job for testing delays.

    Dataset should contain:
    - duration_seconds: How long to sleep
    """

    def run(self) -> None:
        duration = self.dataset.get("duration_seconds", 1)

        logger.info(
            "Sleep job starting",
            extra={"job_id": self.id, "duration": duration}
        )

        time.sleep(duration)
        self.log_output(f"slept for {duration}s")


class FailingJob(Job):
    """Job that always fails - for testing retry logic."""

    default_max_retries = 2

    def run(self) -> None:
        logger.info(
            "Failing job executing (will fail)",
            extra={"job_id": self.id, "attempt": self.retry_i + 1}
        )
        raise RuntimeError(f"Intentional failure on attempt {self.retry_i + 1}")


BUILTIN_TYPES: dict[str, type[Job]] = {
    "echo": EchoJob,
    "sleep": SleepJob,
    "failing_job": FailingJob,
}


def register_builtin_types(registry: JobTypeRegistry) -> JobTypeRegistry:
    """Register the built-in job types on a registry."""
    for name, klass in BUILTIN_TYPES.items():
        registry.register(name, klass)
    return registry
