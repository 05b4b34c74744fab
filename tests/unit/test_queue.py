"""
Unit tests for JobQueue loading, listing and counting.
"""

import pytest

from bgqueue.constants import JobStatus
from bgqueue.exceptions import DequeueJob
from bgqueue.queue import JobQueue


class TestLoading:
    """Tests for get and dequeue."""

    def test_get(self, job_queue: JobQueue, enqueue):
        """Test loading a job by id."""
        job = enqueue("a", queue="images")

        loaded = job_queue.get(job.id)

        assert loaded.id == job.id
        assert loaded.queue == "images"

    def test_get_not_found(self, job_queue: JobQueue):
        """Test loading a non-existent job."""
        assert job_queue.get(999) is None

    def test_dequeue(self, job_queue: JobQueue, enqueue):
        """Test removing a job by id."""
        job = enqueue("a")
        job_id = job.id

        removed = job_queue.dequeue(job_id)

        assert removed.id == 0
        assert removed.label == "a"
        assert job_queue.get(job_id) is None

    def test_dequeue_not_found(self, job_queue: JobQueue):
        """Test removing a non-existent job."""
        with pytest.raises(DequeueJob) as exc_info:
            job_queue.dequeue(999)

        assert exc_info.value.job_id == 999


class TestListing:
    """Tests for listing and counting jobs."""

    def test_list_by_queue(self, job_queue: JobQueue, enqueue):
        """Test listing eligible jobs of one queue, oldest first."""
        a = enqueue("a", queue="emails")
        enqueue("b", queue="images")
        c = enqueue("c", queue="emails", max_retries=1)
        c.mark_as_failed()
        enqueue("d", queue="emails").mark_as_done()

        jobs = job_queue.list_by_queue("emails")

        assert [job.id for job in jobs] == [a.id, c.id]

    def test_list_by_queue_with_limit(self, job_queue: JobQueue, enqueue):
        """Test capping the listing."""
        jobs = [enqueue(str(i)) for i in range(4)]

        listed = job_queue.list_by_queue(limit=2)

        assert [job.id for job in listed] == [jobs[0].id, jobs[1].id]

    def test_list_by_status_and_parent(self, job_queue: JobQueue, enqueue):
        """Test listing settled children of a parent."""
        parent = enqueue("parent")
        done = enqueue("done", parent=parent)
        done.mark_as_done()
        enqueue("pending", parent=parent)

        listed = job_queue.list_by_queue(statuses=[JobStatus.DONE], parent_id=parent.id)

        assert [job.id for job in listed] == [done.id]

    def test_count_by_queue(self, job_queue: JobQueue, enqueue):
        """Test counting queued jobs per queue and overall."""
        enqueue("a", queue="emails")
        enqueue("b", queue="emails")
        enqueue("c", queue="images")
        enqueue("d", queue="images", max_retries=2).mark_as_failed()

        assert job_queue.count_by_queue("emails") == 2
        assert job_queue.count_by_queue("images") == 1
        assert job_queue.count_by_queue("images", [JobStatus.QUEUED, JobStatus.FAILED]) == 2
        assert job_queue.count_by_queue("reports") == 0
        assert job_queue.count_all() == 3

    def test_list_queue_names(self, job_queue: JobQueue, enqueue):
        """Test listing used queues, optionally only active ones."""
        enqueue("a", queue="emails")
        enqueue("b", queue="images").mark_as_done()

        assert job_queue.list_queue_names() == ["emails", "images"]
        assert job_queue.list_queue_names(hide_inactive=True) == ["emails"]
