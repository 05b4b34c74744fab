"""
SQLAlchemy record store.
Implements the record store contract on top of the jobs table.
"""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError
from sqlalchemy import and_, delete, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from bgqueue.constants import TERMINAL_STATUSES, JobStatus
from bgqueue.db.connection import session_scope
from bgqueue.db.models import JobModel
from bgqueue.exceptions import InvalidJobRecord, StoreError
from bgqueue.types.job import JobPayload, JobRecord, RecordQuery

logger = logging.getLogger(__name__)


class SQLAlchemyRecordStore:
    """
    Record store backed by the jobs table.

    Every operation runs in its own short transaction, so the store can be
    shared by any number of workers. Claiming uses a conditional UPDATE so
    that only one worker can win a given job. Database errors surface as
    StoreError, except from delete(), which reports them as a failed removal.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        """
        Initialize the store.

        Args:
            session_factory: Session factory to use. Defaults to the one
                configured by init_db().
        """
        self._session_factory = session_factory

    def insert(self, record: JobRecord) -> int:
        """
        Insert a new job record.

        Args:
            record: The record to persist. Its id must be unset.

        Returns:
            The id assigned by the database.

        Raises:
            StoreError: If the record already has an id or the insert fails.
        """
        if record.id:
            raise StoreError(f"Job #{record.id} is already persisted")

        row = JobModel(
            parent_id=record.parent_id,
            title=record.title,
            status=record.status,
            queue=record.queue,
            worker_id=record.worker_id,
            payload=record.payload.model_dump(mode="json"),
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(row)
                session.flush()
                job_id = row.id
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

        logger.debug(
            "Inserted job record",
            extra={"job_id": job_id, "queue": record.queue}
        )
        return job_id

    def update(self, record: JobRecord) -> int:
        """
        Overwrite an existing job record.

        parent_id is fixed at insert time and is not updated.

        Raises:
            StoreError: If the record does not exist or the update fails.
        """
        stmt = (
            update(JobModel)
            .where(JobModel.id == record.id)
            .values(
                title=record.title,
                status=record.status,
                queue=record.queue,
                worker_id=record.worker_id,
                payload=record.payload.model_dump(mode="json"),
            )
        )
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(stmt)
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

        if not updated:
            raise StoreError(f"Job #{record.id} does not exist")
        return record.id

    def get(self, record_id: int) -> JobRecord | None:
        """
        Get a job record by id.

        Returns:
            The record or None if not found.
        """
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(JobModel, record_id)
                return self._to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def query(self, query: RecordQuery, limit: int = 0) -> list[JobRecord]:
        """
        List job records matching a filter, oldest first.

        Args:
            query: The filter.
            limit: Maximum number of records, 0 for no limit.

        Returns:
            Matching records in insertion order.
        """
        stmt = (
            select(JobModel)
            .where(*self._filters(query))
            .order_by(JobModel.id.asc())
        )
        if limit > 0:
            stmt = stmt.limit(limit)

        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(stmt).scalars().all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def delete(self, record_id: int) -> bool:
        """
        Delete a job record.

        Returns:
            True if a record was removed.
        """
        stmt = delete(JobModel).where(JobModel.id == record_id)
        try:
            with session_scope(self._session_factory) as session:
                removed = session.execute(stmt).rowcount
        except SQLAlchemyError as e:
            logger.warning(
                f"Failed to delete job record: {e}",
                extra={"job_id": record_id}
            )
            return False
        return removed > 0

    def claim(
        self,
        record_id: int,
        worker_id: str,
        statuses: Iterable[JobStatus],
    ) -> bool:
        """
        Claim a job for a worker.

        The UPDATE only matches while the job is unclaimed and in one of the
        given statuses, so concurrent claims on the same job cannot both win.

        Returns:
            True if this call claimed the job.
        """
        stmt = (
            update(JobModel)
            .where(
                and_(
                    JobModel.id == record_id,
                    JobModel.worker_id == "",
                    JobModel.status.in_(list(statuses)),
                )
            )
            .values(worker_id=worker_id)
        )
        try:
            with session_scope(self._session_factory) as session:
                claimed = session.execute(stmt).rowcount == 1
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

        if claimed:
            logger.debug(
                "Claimed job",
                extra={"job_id": record_id, "worker_id": worker_id}
            )
        return claimed

    def count(self, query: RecordQuery) -> int:
        """Count job records matching a filter."""
        stmt = select(func.count()).select_from(JobModel).where(*self._filters(query))
        try:
            with session_scope(self._session_factory) as session:
                return session.execute(stmt).scalar() or 0
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def queue_names(self, active_only: bool = False) -> list[str]:
        """
        Get the distinct queue names in use.

        Args:
            active_only: Only include queues holding at least one job that is
                not done or abandoned.
        """
        stmt = select(JobModel.queue).distinct().where(JobModel.queue != "")
        if active_only:
            stmt = stmt.where(JobModel.status.notin_(list(TERMINAL_STATUSES)))
        stmt = stmt.order_by(JobModel.queue)

        try:
            with session_scope(self._session_factory) as session:
                return list(session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    @staticmethod
    def _filters(query: RecordQuery) -> list[Any]:
        """Translate a RecordQuery into WHERE clauses."""
        filters: list[Any] = []
        if query.parent_id is not None:
            filters.append(JobModel.parent_id == query.parent_id)
        if query.statuses is not None:
            filters.append(JobModel.status.in_(list(query.statuses)))
        if query.queue is not None:
            filters.append(JobModel.queue == query.queue)
        if query.unclaimed_only:
            filters.append(JobModel.worker_id == "")
        if query.has_child_in is not None:
            child = aliased(JobModel)
            child_filters = [
                child.parent_id == JobModel.id,
                child.status.in_(list(query.has_child_in)),
            ]
            if query.queue is not None:
                child_filters.append(child.queue == query.queue)
            if query.unclaimed_only:
                child_filters.append(child.worker_id == "")
            filters.append(exists().where(and_(*child_filters)))
        return filters

    @staticmethod
    def _to_record(row: JobModel) -> JobRecord:
        """Convert a row into a validated JobRecord."""
        try:
            return JobRecord(
                id=row.id,
                parent_id=row.parent_id,
                title=row.title,
                status=JobStatus(row.status),
                queue=row.queue,
                worker_id=row.worker_id,
                payload=JobPayload.model_validate(row.payload),
            )
        except ValidationError as e:
            raise InvalidJobRecord(f"Job #{row.id} has an invalid record: {e}") from e
