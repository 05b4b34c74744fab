"""
Database connection management.
Handles SQLAlchemy engine and session creation.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bgqueue.config import get_settings
from bgqueue.db.models import Base

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """
    Get or create the database engine.

    Returns:
        Engine: The SQLAlchemy engine instance.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.database_url.startswith("sqlite"):
            _engine = create_engine(
                settings.database_url,
                echo=settings.database_echo,
                connect_args={"check_same_thread": False},
            )
        else:
            _engine = create_engine(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.database_echo,
                pool_pre_ping=True,
            )
    return _engine


def get_test_engine(database_url: str = "sqlite+pysqlite:///:memory:") -> Engine:
    """
    Create a test database engine.

    In-memory SQLite shares a single connection across threads so every
    session sees the same database.

    Args:
        database_url: The database URL for testing.

    Returns:
        Engine: The test SQLAlchemy engine instance.
    """
    return create_engine(
        database_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build a session factory bound to an engine."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db(create_tables: bool = True) -> sessionmaker[Session]:
    """
    Initialize the database connection and session factory.
    Should be called on application startup.

    Args:
        create_tables: Create the jobs table if it does not exist.

    Returns:
        The session factory.
    """
    global SessionLocal
    engine = get_engine()
    if create_tables:
        Base.metadata.create_all(engine)
    SessionLocal = create_session_factory(engine)
    logger.info("Database connection initialized")
    return SessionLocal


def close_db() -> None:
    """
    Close the database connection.
    Should be called on application shutdown.
    """
    global _engine, SessionLocal
    if _engine is not None:
        _engine.dispose()
        _engine = None
        SessionLocal = None
        logger.info("Database connection closed")


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session]:
    """
    Context manager for a database session with commit/rollback.

    Args:
        factory: Session factory to use. Defaults to the one set up by init_db().

    Yields:
        Session: A database session.

    Raises:
        RuntimeError: If no factory is given and the database is not initialized.
    """
    factory = factory or SessionLocal
    if factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
