"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Generator
from typing import Any

import pytest
from prometheus_client import CollectorRegistry
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from bgqueue.db import (
    Base,
    SQLAlchemyRecordStore,
    create_session_factory,
    get_test_engine,
)
from bgqueue.events import EventBus
from bgqueue.jobs import Job, register_builtin_types
from bgqueue.observability.metrics import MetricsCollector
from bgqueue.queue import JobQueue
from bgqueue.registry import JobTypeRegistry


class ResizeImage(Job):
    """Test job that records the path it was asked to resize."""

    def run(self) -> None:
        self.log_output(f"resized {self.dataset['path']}")


class FlakyJob(Job):
    """Test job that fails until the dataset says otherwise."""

    default_max_retries = 2

    def run(self) -> None:
        if self.retry_i < self.dataset.get("succeed_on_retry", 99):
            raise ValueError(f"flaky failure #{self.retry_i + 1}")
        self.log_output("finally worked")


@pytest.fixture
def engine() -> Generator[Engine]:
    """Create an in-memory SQLite engine with the jobs table."""
    engine = get_test_engine()
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the test engine."""
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory: sessionmaker[Session]) -> SQLAlchemyRecordStore:
    """Create a record store on the test database."""
    return SQLAlchemyRecordStore(session_factory)


@pytest.fixture
def registry() -> JobTypeRegistry:
    """Create a registry with the built-in and test job types."""
    registry = register_builtin_types(JobTypeRegistry())
    registry.register("resize", ResizeImage)
    registry.register("flaky", FlakyJob)
    return registry


@pytest.fixture
def events() -> EventBus:
    """Create an event bus."""
    return EventBus()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    """Create a private Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(events: EventBus, metrics_registry: CollectorRegistry) -> MetricsCollector:
    """Create a metrics collector on the private registry, bound to the bus."""
    return MetricsCollector(registry=metrics_registry).bind(events)


@pytest.fixture
def job_queue(
    store: SQLAlchemyRecordStore,
    registry: JobTypeRegistry,
    events: EventBus,
    metrics: MetricsCollector,
) -> JobQueue:
    """Create a job queue over the test store."""
    return JobQueue(
        store=store,
        registry=registry,
        events=events,
        metrics=metrics,
        claim_attempts=3,
        max_depth=16,
    )


@pytest.fixture
def enqueue(job_queue: JobQueue):
    """Factory fixture: create and save a job in one call."""

    def _enqueue(
        label: str,
        queue: str = "default",
        job_type: str = "resize",
        dataset: Any = None,
        parent: Job | None = None,
        **kwargs: Any,
    ) -> Job:
        job = job_queue.create(
            label,
            job_type,
            dataset if dataset is not None else {"path": f"/{label}.png"},
            parent.id if parent is not None else 0,
            **kwargs,
        )
        return job.save(queue)

    return _enqueue
