"""SQLAlchemy 2.0 ORM table definitions for the job store.

Three tables make up the persisted layout.  It must stay stable across
restarts of the same logical store:

* ``js_jobs``        -- job catalog, keyed by (scheduler_name, name, group)
* ``js_triggers``    -- trigger catalog plus internal state and fire times
* ``js_schedulers``  -- one record per scheduler instance name

Every table maps an integer ``version`` column as the SQLAlchemy
``version_id_col``.  An UPDATE or DELETE issued against a row that another
transaction changed since it was loaded matches zero rows and the flush
raises ``StaleDataError``; concurrent writers are rejected, never merged.

Tags:
    orm, sqlalchemy, tables, schema-mapping, optimistic-locking

Usage::

    from jobstore.core.orm import JobStoreBase
    from sqlalchemy import create_engine

    engine = create_engine("sqlite:///jobstore.db")
    JobStoreBase.metadata.create_all(engine)
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from jobstore.core.orm.base import JobStoreBase, TimestampMixin
from jobstore.core.timestamps import to_ticks


class JobTable(TimestampMixin, JobStoreBase):
    __tablename__ = "js_jobs"

    scheduler_name: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    group: Mapped[str] = mapped_column("job_group", Text, primary_key=True)
    job_type: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    durable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    concurrent_execution_disallowed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    persist_data_after_execution: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    requests_recovery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    job_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def job_id(self) -> str:
        return f"{self.name}/{self.group}"


class TriggerTable(TimestampMixin, JobStoreBase):
    __tablename__ = "js_triggers"

    scheduler_name: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, primary_key=True)
    group: Mapped[str] = mapped_column("trigger_group", Text, primary_key=True)
    job_name: Mapped[str] = mapped_column(Text, nullable=False)
    job_group: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False, default="WAITING")
    description: Mapped[str | None] = mapped_column(Text)
    calendar_name: Mapped[str | None] = mapped_column(Text)
    job_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    fire_instance_id: Mapped[str | None] = mapped_column(Text)
    misfire_instruction: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    start_time: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    end_time: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True))
    next_fire_time: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True))
    next_fire_time_ticks: Mapped[int | None] = mapped_column(BigInteger)
    previous_fire_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    times_triggered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    schedule_kind: Mapped[str] = mapped_column(Text, nullable=False)
    schedule: Mapped[dict] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_js_triggers_due", "scheduler_name", "state", "next_fire_time_ticks"),
        Index("ix_js_triggers_job", "scheduler_name", "job_name", "job_group"),
        Index("ix_js_triggers_calendar", "scheduler_name", "calendar_name"),
    )

    @validates("next_fire_time")
    def _mirror_ticks(self, _key: str, value: datetime.datetime | None) -> datetime.datetime | None:
        self.next_fire_time_ticks = to_ticks(value)
        return value

    @property
    def job_id(self) -> str:
        return f"{self.job_name}/{self.job_group}"


class SchedulerRecordTable(JobStoreBase):
    __tablename__ = "js_schedulers"

    scheduler_name: Mapped[str] = mapped_column(Text, primary_key=True)
    state: Mapped[str | None] = mapped_column(Text)
    paused_job_groups: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    blocked_jobs: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    calendars: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    last_checkin_time: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


__all__ = ["JobTable", "TriggerTable", "SchedulerRecordTable"]
