"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bgqueue.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIME_ESTIMATE_SECONDS,
    NO_PARENT,
    JobStatus,
)


class JobPayload(BaseModel):
    """
    Serialized part of a job record.
    Holds everything that has no dedicated column in the store.
    """

    model_config = ConfigDict(extra="forbid")

    type: str
    dataset: Any = Field(default_factory=dict)
    history: list[str] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)
    retry_i: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    time_estimate: int = Field(default=DEFAULT_TIME_ESTIMATE_SECONDS, ge=0)


class JobRecord(BaseModel):
    """
    A job as the record store sees it.

    ``queue`` and ``worker_id`` are first-class fields so that stores can
    index and filter on them directly.
    """

    model_config = ConfigDict(extra="forbid")

    id: int = 0
    parent_id: int = NO_PARENT
    title: str = ""
    status: JobStatus
    queue: str = ""
    worker_id: str = ""
    payload: JobPayload


@dataclass(frozen=True)
class RecordQuery:
    """
    Filter for record store queries.

    Every field left as None is not filtered on.
    """

    parent_id: int | None = None
    statuses: frozenset[JobStatus] | None = None
    queue: str | None = None
    unclaimed_only: bool = False
    # Only match records with at least one child in these statuses. The
    # queue and unclaimed_only conditions apply to that child as well.
    has_child_in: frozenset[JobStatus] | None = None
