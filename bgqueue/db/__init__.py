"""
Database module.
Contains the record store contract, database connection, models and the
SQLAlchemy store implementation.
"""

from bgqueue.db.base import RecordStore
from bgqueue.db.connection import (
    close_db,
    create_session_factory,
    get_engine,
    get_test_engine,
    init_db,
    session_scope,
)
from bgqueue.db.models import Base, JobModel
from bgqueue.db.repository import SQLAlchemyRecordStore

__all__ = [
    "RecordStore",
    "SQLAlchemyRecordStore",
    "session_scope",
    "create_session_factory",
    "get_engine",
    "get_test_engine",
    "init_db",
    "close_db",
    "JobModel",
    "Base",
]
