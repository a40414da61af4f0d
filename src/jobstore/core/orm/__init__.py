"""SQLAlchemy 2.0 ORM layer for the job store.

Modules
-------
base        JobStoreBase (declarative base) + TimestampMixin
session     Engine factory, JobStoreSession, create_schema
tables      JobTable, TriggerTable, SchedulerRecordTable

Tags:
    orm, sqlalchemy, declarative
"""

from __future__ import annotations

from jobstore.core.orm.base import JobStoreBase, TimestampMixin
from jobstore.core.orm.session import (
    JobStoreSession,
    create_jobstore_engine,
    create_schema,
    jobstore_session_factory,
)
from jobstore.core.orm.tables import JobTable, SchedulerRecordTable, TriggerTable

__all__ = [
    "JobStoreBase",
    "TimestampMixin",
    "create_jobstore_engine",
    "create_schema",
    "JobStoreSession",
    "jobstore_session_factory",
    "JobTable",
    "TriggerTable",
    "SchedulerRecordTable",
]
