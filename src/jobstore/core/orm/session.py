"""SQLAlchemy engine factory and session factory for the job store.

This module provides:

* ``create_jobstore_engine``  -- Create a SA engine from a URL.
* ``JobStoreSession``         -- A pre-configured ``Session`` subclass.
* ``jobstore_session_factory``-- ``sessionmaker`` producing ``JobStoreSession``.
* ``create_schema``           -- Create all job store tables.

Tags:
    orm, sqlalchemy, session, engine
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from jobstore.core.orm.base import JobStoreBase


def create_jobstore_engine(
    url: str = "sqlite:///jobstore.db",
    *,
    echo: bool = False,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL to stdout.
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return _sa_create_engine(url, echo=echo, **kwargs)


class JobStoreSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Rows handed back to callers after commit stay readable without a
    lazy reload.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def jobstore_session_factory(engine: Engine) -> sessionmaker[JobStoreSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``JobStoreSession`` instances."""
    return sessionmaker(bind=engine, class_=JobStoreSession)


def create_schema(engine: Engine) -> None:
    """Create every job store table that does not exist yet."""
    # Import for side effect: registers the mapped tables on the metadata.
    from jobstore.core.orm import tables  # noqa: F401

    JobStoreBase.metadata.create_all(engine)
