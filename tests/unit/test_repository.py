"""
Unit tests for the SQLAlchemy record store.
"""

import pytest
from sqlalchemy import Engine, update
from sqlalchemy.orm import Session, sessionmaker

from bgqueue.constants import ELIGIBLE_STATUSES, JobStatus
from bgqueue.db import Base, JobModel, RecordStore, SQLAlchemyRecordStore, session_scope
from bgqueue.exceptions import InvalidJobRecord, StoreError
from bgqueue.types.job import JobPayload, JobRecord, RecordQuery


def make_record(
    title: str = "job",
    queue: str = "default",
    status: JobStatus = JobStatus.QUEUED,
    parent_id: int = 0,
    worker_id: str = "",
) -> JobRecord:
    return JobRecord(
        parent_id=parent_id,
        title=title,
        status=status,
        queue=queue,
        worker_id=worker_id,
        payload=JobPayload(type="resize", dataset={"path": f"/{title}.png"}),
    )


class TestSQLAlchemyRecordStore:
    """Tests for SQLAlchemyRecordStore."""

    def test_implements_contract(self, store: SQLAlchemyRecordStore):
        """Test that the store satisfies the RecordStore protocol."""
        assert isinstance(store, RecordStore)

    def test_insert_assigns_increasing_ids(self, store: SQLAlchemyRecordStore):
        """Test that ids are assigned by the store."""
        first = store.insert(make_record("a"))
        second = store.insert(make_record("b"))

        assert first > 0
        assert second > first

    def test_insert_rejects_persisted_record(self, store: SQLAlchemyRecordStore):
        """Test that a record with an id cannot be inserted again."""
        job_id = store.insert(make_record())
        record = store.get(job_id)

        with pytest.raises(StoreError):
            store.insert(record)

    def test_get_round_trip(self, store: SQLAlchemyRecordStore):
        """Test reading back an inserted record."""
        job_id = store.insert(make_record("resize", queue="images"))

        record = store.get(job_id)

        assert record is not None
        assert record.id == job_id
        assert record.title == "resize"
        assert record.queue == "images"
        assert record.status == JobStatus.QUEUED
        assert record.payload.dataset == {"path": "/resize.png"}
        assert record.payload.retry_i == 0

    def test_get_not_found(self, store: SQLAlchemyRecordStore):
        """Test getting a non-existent record."""
        assert store.get(12345) is None

    def test_update(self, store: SQLAlchemyRecordStore):
        """Test overwriting a record."""
        job_id = store.insert(make_record())
        record = store.get(job_id)
        changed = record.model_copy(
            update={"status": JobStatus.FAILED, "worker_id": "w-1", "queue": "other"}
        )

        assert store.update(changed) == job_id

        reloaded = store.get(job_id)
        assert reloaded.status == JobStatus.FAILED
        assert reloaded.worker_id == "w-1"
        assert reloaded.queue == "other"

    def test_update_keeps_parent(self, store: SQLAlchemyRecordStore):
        """Test that the parent link cannot be changed by an update."""
        parent_id = store.insert(make_record("parent"))
        child_id = store.insert(make_record("child", parent_id=parent_id))
        record = store.get(child_id)

        store.update(record.model_copy(update={"parent_id": 0}))

        assert store.get(child_id).parent_id == parent_id

    def test_update_missing_record(self, store: SQLAlchemyRecordStore):
        """Test that updating an unknown id is rejected."""
        record = make_record().model_copy(update={"id": 999})

        with pytest.raises(StoreError, match="does not exist"):
            store.update(record)

    def test_delete(self, store: SQLAlchemyRecordStore):
        """Test deleting a record."""
        job_id = store.insert(make_record())

        assert store.delete(job_id) is True
        assert store.get(job_id) is None
        assert store.delete(job_id) is False

    def test_query_filters_and_order(self, store: SQLAlchemyRecordStore):
        """Test filtering by queue, status and parent, oldest first."""
        a = store.insert(make_record("a", queue="emails"))
        store.insert(make_record("b", queue="images"))
        c = store.insert(make_record("c", queue="emails", status=JobStatus.FAILED))
        store.insert(make_record("d", queue="emails", status=JobStatus.DONE))
        store.insert(make_record("e", queue="emails", parent_id=a))

        records = store.query(
            RecordQuery(parent_id=0, statuses=ELIGIBLE_STATUSES, queue="emails")
        )

        assert [r.id for r in records] == [a, c]

    def test_query_limit(self, store: SQLAlchemyRecordStore):
        """Test capping the number of returned records."""
        ids = [store.insert(make_record(str(i))) for i in range(3)]

        records = store.query(RecordQuery(), limit=2)

        assert [r.id for r in records] == ids[:2]

    def test_query_unclaimed_only(self, store: SQLAlchemyRecordStore):
        """Test skipping claimed records."""
        store.insert(make_record("claimed", worker_id="w-1"))
        free = store.insert(make_record("free"))

        records = store.query(RecordQuery(unclaimed_only=True))

        assert [r.id for r in records] == [free]

    def test_query_has_child_in(self, store: SQLAlchemyRecordStore):
        """Test matching only records with children in given statuses."""
        lonely = store.insert(make_record("lonely"))
        parent = store.insert(make_record("parent"))
        finished_parent = store.insert(make_record("finished-parent"))
        store.insert(make_record("child", parent_id=parent))
        store.insert(make_record("done-child", parent_id=finished_parent, status=JobStatus.DONE))

        records = store.query(RecordQuery(parent_id=0, has_child_in=ELIGIBLE_STATUSES))

        assert [r.id for r in records] == [parent]
        assert lonely not in [r.id for r in records]

    def test_claim_is_conditional(self, store: SQLAlchemyRecordStore):
        """Test that only one claim on a job can succeed."""
        job_id = store.insert(make_record())

        assert store.claim(job_id, "worker-1", ELIGIBLE_STATUSES) is True
        assert store.claim(job_id, "worker-2", ELIGIBLE_STATUSES) is False
        assert store.get(job_id).worker_id == "worker-1"

    def test_claim_requires_eligible_status(self, store: SQLAlchemyRecordStore):
        """Test that finished jobs cannot be claimed."""
        job_id = store.insert(make_record(status=JobStatus.DONE))

        assert store.claim(job_id, "worker-1", ELIGIBLE_STATUSES) is False

    def test_count(self, store: SQLAlchemyRecordStore):
        """Test counting records."""
        store.insert(make_record("a", queue="emails"))
        store.insert(make_record("b", queue="emails", status=JobStatus.FAILED))
        store.insert(make_record("c", queue="images"))

        assert store.count(RecordQuery(statuses=frozenset({JobStatus.QUEUED}))) == 2
        assert store.count(RecordQuery(queue="emails")) == 2
        assert store.count(RecordQuery(queue="nowhere")) == 0

    def test_queue_names(self, store: SQLAlchemyRecordStore):
        """Test listing distinct queue names."""
        store.insert(make_record("a", queue="emails"))
        store.insert(make_record("b", queue="emails"))
        store.insert(make_record("c", queue="images", status=JobStatus.DONE))
        store.insert(make_record("d", queue="reports", status=JobStatus.ABANDONED))

        assert store.queue_names() == ["emails", "images", "reports"]
        assert store.queue_names(active_only=True) == ["emails"]

    def test_invalid_payload_is_rejected(
        self,
        store: SQLAlchemyRecordStore,
        session_factory: sessionmaker[Session],
    ):
        """Test that unknown payload fields fail hydration."""
        job_id = store.insert(make_record())
        with session_scope(session_factory) as session:
            session.execute(
                update(JobModel)
                .where(JobModel.id == job_id)
                .values(payload={"type": "resize", "surprise": True})
            )

        with pytest.raises(InvalidJobRecord):
            store.get(job_id)

    def test_database_errors_become_store_errors(
        self,
        store: SQLAlchemyRecordStore,
        engine: Engine,
    ):
        """Test that reads and claims report database failures as StoreError."""
        job_id = store.insert(make_record())
        Base.metadata.drop_all(engine)

        with pytest.raises(StoreError):
            store.get(job_id)
        with pytest.raises(StoreError):
            store.query(RecordQuery())
        with pytest.raises(StoreError):
            store.claim(job_id, "worker-1", ELIGIBLE_STATUSES)
        with pytest.raises(StoreError):
            store.count(RecordQuery())
        with pytest.raises(StoreError):
            store.queue_names()
        assert store.delete(job_id) is False
