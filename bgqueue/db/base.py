"""
Record store contract.

The job entity and the dequeue algorithm only talk to persistence through
this protocol. Implementations raise StoreError when they reject a write.
"""

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from bgqueue.constants import JobStatus
from bgqueue.types.job import JobRecord, RecordQuery


@runtime_checkable
class RecordStore(Protocol):
    """Persistence operations consumed by the job queue."""

    def insert(self, record: JobRecord) -> int:
        """Persist a new record and return its assigned id."""
        ...

    def update(self, record: JobRecord) -> int:
        """Overwrite an existing record and return its id."""
        ...

    def get(self, record_id: int) -> JobRecord | None:
        """Fetch a record by id."""
        ...

    def query(self, query: RecordQuery, limit: int = 0) -> list[JobRecord]:
        """Return matching records in insertion order. A limit of 0 means no limit."""
        ...

    def delete(self, record_id: int) -> bool:
        """Remove a record. Returns False if nothing was removed."""
        ...

    def claim(
        self,
        record_id: int,
        worker_id: str,
        statuses: Iterable[JobStatus],
    ) -> bool:
        """
        Atomically assign a worker to a record.

        Succeeds only if the record is unclaimed and its status is one of
        ``statuses``.
        """
        ...

    def count(self, query: RecordQuery) -> int:
        """Count matching records."""
        ...

    def queue_names(self, active_only: bool = False) -> list[str]:
        """Distinct queue names, optionally only queues with non-terminal records."""
        ...
