"""
Hierarchical Background Job Queue

Jobs are enqueued under a type and an optional parent job. Workers claim the
next eligible job, descending into pending children before moving on to
unrelated top-level work, and settle it as done, failed (retryable) or
abandoned.
"""

__version__ = "1.0.0"
