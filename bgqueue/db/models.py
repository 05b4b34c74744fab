"""
SQLAlchemy database models.
Defines the jobs table.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from bgqueue.constants import NO_PARENT, JobStatus


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class JobModel(Base):
    """
    Persisted job record.

    Key constraints:
    - id is assigned by the database and never reused
    - parent_id is 0 for top-level jobs
    - queue and worker_id are plain indexed columns; an empty worker_id
      means the job is not claimed
    - payload holds the serialized job fields (type, dataset, logs, retry counters)
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    parent_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=NO_PARENT,
        server_default="0",
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobStatus.QUEUED,
        index=True,
    )
    queue: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        server_default="",
        index=True,
    )
    worker_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        server_default="",
        index=True,
    )
    payload: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=dict,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        # Index for queue polling and child lookups
        Index("ix_jobs_queue_poll", "queue", "parent_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"JobModel(id={self.id}, parent={self.parent_id}, queue={self.queue!r}, "
            f"status={self.status}, worker={self.worker_id!r})"
        )
