"""Job store repository: query helpers for one unit of work.

Manifesto:
    Every public store operation opens exactly one SQLAlchemy session and
    one transaction.  ``JobStoreRepository`` wraps that session and scopes
    every query to one scheduler name, so the components above it
    (acquisition, firing, recovery) never build queries themselves.

    The scheduler record is loaded as an explicit aggregate
    (``SchedulerRecord``) per operation and written back through the same
    session; it is never cached between operations.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JobStoreRepository(session, scheduler_name)                                  │
│                                                                               │
│   Jobs:      job(key) · jobs() · jobs_requesting_recovery()                   │
│   Triggers:  trigger(key) · triggers() · triggers_for_job(key)                │
│              triggers_in_states(states) · due_triggers(max_ticks)             │
│              triggers_with_calendar(name) · paused_trigger_groups()           │
│   Removal:   remove_trigger(row) (cascades non-durable job)                   │
│              remove_job(row) · release_job(job_key, trigger_key)             │
│   Record:    record() -> SchedulerRecord                                      │
│   State:     initial_state(trigger_group, job_key, record)                    │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    repository, sqlalchemy, unit-of-work, aggregate

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from jobstore.core.logging import get_logger
from jobstore.core.orm.tables import JobTable, SchedulerRecordTable, TriggerTable
from jobstore.scheduling.calendars import Calendar
from jobstore.scheduling.models import (
    JobKey,
    SchedulerState,
    Trigger,
    TriggerKey,
    TriggerState,
)

logger = get_logger(__name__)

_PAUSED = (TriggerState.PAUSED.value, TriggerState.PAUSED_AND_BLOCKED.value)


# ---------------------------------------------------------------------------
# Scheduler record aggregate
# ---------------------------------------------------------------------------


class SchedulerRecord:
    """Paused job groups, blocked jobs, calendars and lifecycle state.

    JSON columns are always reassigned, never mutated in place, so the ORM
    sees every change and bumps the row version.
    """

    def __init__(self, row: SchedulerRecordTable):
        self.row = row

    @property
    def name(self) -> str:
        return self.row.scheduler_name

    @property
    def state(self) -> SchedulerState | None:
        return SchedulerState(self.row.state) if self.row.state else None

    @state.setter
    def state(self, value: SchedulerState) -> None:
        self.row.state = value.value

    # Paused job groups

    @property
    def paused_job_groups(self) -> set[str]:
        return set(self.row.paused_job_groups or [])

    def is_job_group_paused(self, group: str) -> bool:
        return group in self.paused_job_groups

    def pause_job_groups(self, groups: Iterable[str]) -> None:
        updated = self.paused_job_groups | set(groups)
        if updated != self.paused_job_groups:
            self.row.paused_job_groups = sorted(updated)

    def resume_job_groups(self, groups: Iterable[str]) -> None:
        updated = self.paused_job_groups - set(groups)
        if updated != self.paused_job_groups:
            self.row.paused_job_groups = sorted(updated)

    # Blocked jobs

    @property
    def blocked_jobs(self) -> set[str]:
        return set(self.row.blocked_jobs or [])

    def is_job_blocked(self, job_key: JobKey) -> bool:
        return job_key.id in self.blocked_jobs

    def block_job(self, job_key: JobKey) -> None:
        if not self.is_job_blocked(job_key):
            self.row.blocked_jobs = sorted(self.blocked_jobs | {job_key.id})

    def unblock_job(self, job_key: JobKey) -> None:
        if self.is_job_blocked(job_key):
            self.row.blocked_jobs = sorted(self.blocked_jobs - {job_key.id})

    def clear_blocked_jobs(self) -> None:
        if self.row.blocked_jobs:
            self.row.blocked_jobs = []

    # Calendars

    @property
    def calendar_names(self) -> list[str]:
        return sorted((self.row.calendars or {}).keys())

    def has_calendar(self, name: str) -> bool:
        return name in (self.row.calendars or {})

    def calendar(self, name: str | None) -> Calendar | None:
        if name is None:
            return None
        data = (self.row.calendars or {}).get(name)
        return Calendar.from_dict(data) if data is not None else None

    def put_calendar(self, name: str, calendar: Calendar) -> None:
        calendars = dict(self.row.calendars or {})
        calendars[name] = calendar.to_dict()
        self.row.calendars = calendars

    def drop_calendar(self, name: str) -> bool:
        calendars = dict(self.row.calendars or {})
        if calendars.pop(name, None) is None:
            return False
        self.row.calendars = calendars
        return True

    def clear_calendars(self) -> None:
        if self.row.calendars:
            self.row.calendars = {}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class JobStoreRepository:
    """Queries scoped to one scheduler name inside one session."""

    def __init__(self, session: Session, scheduler_name: str):
        self.session = session
        self.scheduler_name = scheduler_name
        self._record: SchedulerRecord | None = None

    # ── Scheduler record ─────────────────────────────────────────

    def record_exists(self) -> bool:
        return self.session.get(SchedulerRecordTable, self.scheduler_name) is not None

    def record(self) -> SchedulerRecord:
        """Load the scheduler record, creating an empty one on first use."""
        if self._record is None:
            row = self.session.get(SchedulerRecordTable, self.scheduler_name)
            if row is None:
                row = SchedulerRecordTable(
                    scheduler_name=self.scheduler_name,
                    paused_job_groups=[],
                    blocked_jobs=[],
                    calendars={},
                )
                self.session.add(row)
            self._record = SchedulerRecord(row)
        return self._record

    def touch(self, now: datetime) -> None:
        self.record().row.last_checkin_time = now

    # ── Jobs ─────────────────────────────────────────────────────

    def job(self, key: JobKey) -> JobTable | None:
        return self.session.get(JobTable, (self.scheduler_name, key.name, key.group))

    def jobs(self) -> list[JobTable]:
        stmt = (
            select(JobTable)
            .where(JobTable.scheduler_name == self.scheduler_name)
            .order_by(JobTable.group, JobTable.name)
        )
        return list(self.session.scalars(stmt))

    def jobs_requesting_recovery(self) -> list[JobTable]:
        stmt = select(JobTable).where(
            JobTable.scheduler_name == self.scheduler_name,
            JobTable.requests_recovery.is_(True),
        )
        return list(self.session.scalars(stmt))

    def count_jobs(self) -> int:
        stmt = select(func.count()).select_from(JobTable).where(
            JobTable.scheduler_name == self.scheduler_name
        )
        return self.session.scalar(stmt) or 0

    def job_group_names(self) -> list[str]:
        stmt = (
            select(JobTable.group)
            .where(JobTable.scheduler_name == self.scheduler_name)
            .distinct()
            .order_by(JobTable.group)
        )
        return list(self.session.scalars(stmt))

    # ── Triggers ─────────────────────────────────────────────────

    def trigger(self, key: TriggerKey) -> TriggerTable | None:
        return self.session.get(TriggerTable, (self.scheduler_name, key.name, key.group))

    def triggers(self) -> list[TriggerTable]:
        stmt = (
            select(TriggerTable)
            .where(TriggerTable.scheduler_name == self.scheduler_name)
            .order_by(TriggerTable.group, TriggerTable.name)
        )
        return list(self.session.scalars(stmt))

    def triggers_for_job(self, key: JobKey) -> list[TriggerTable]:
        stmt = (
            select(TriggerTable)
            .where(
                TriggerTable.scheduler_name == self.scheduler_name,
                TriggerTable.job_name == key.name,
                TriggerTable.job_group == key.group,
            )
            .order_by(TriggerTable.group, TriggerTable.name)
        )
        return list(self.session.scalars(stmt))

    def triggers_in_states(self, *states: TriggerState) -> list[TriggerTable]:
        stmt = select(TriggerTable).where(
            TriggerTable.scheduler_name == self.scheduler_name,
            TriggerTable.state.in_([s.value for s in states]),
        )
        return list(self.session.scalars(stmt))

    def triggers_with_calendar(self, calendar_name: str) -> list[TriggerTable]:
        stmt = select(TriggerTable).where(
            TriggerTable.scheduler_name == self.scheduler_name,
            TriggerTable.calendar_name == calendar_name,
        )
        return list(self.session.scalars(stmt))

    def due_triggers(self, max_ticks: int) -> list[TriggerTable]:
        """WAITING triggers with a fire time at or before ``max_ticks``."""
        stmt = (
            select(TriggerTable)
            .where(
                TriggerTable.scheduler_name == self.scheduler_name,
                TriggerTable.state == TriggerState.WAITING.value,
                TriggerTable.next_fire_time_ticks.is_not(None),
                TriggerTable.next_fire_time_ticks <= max_ticks,
            )
            .order_by(TriggerTable.next_fire_time_ticks, TriggerTable.priority.desc())
        )
        return list(self.session.scalars(stmt))

    def count_triggers(self) -> int:
        stmt = select(func.count()).select_from(TriggerTable).where(
            TriggerTable.scheduler_name == self.scheduler_name
        )
        return self.session.scalar(stmt) or 0

    def trigger_group_names(self) -> list[str]:
        stmt = (
            select(TriggerTable.group)
            .where(TriggerTable.scheduler_name == self.scheduler_name)
            .distinct()
            .order_by(TriggerTable.group)
        )
        return list(self.session.scalars(stmt))

    def paused_trigger_groups(self) -> set[str]:
        """Groups with at least one PAUSED / PAUSED_AND_BLOCKED trigger."""
        stmt = (
            select(TriggerTable.group)
            .where(
                TriggerTable.scheduler_name == self.scheduler_name,
                TriggerTable.state.in_(_PAUSED),
            )
            .distinct()
        )
        return set(self.session.scalars(stmt))

    def is_trigger_group_paused(self, group: str) -> bool:
        stmt = (
            select(TriggerTable.name)
            .where(
                TriggerTable.scheduler_name == self.scheduler_name,
                TriggerTable.group == group,
                TriggerTable.state.in_(_PAUSED),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) is not None

    def has_other_triggers(self, job_key: JobKey, exclude: TriggerKey) -> bool:
        stmt = (
            select(TriggerTable.name)
            .where(
                TriggerTable.scheduler_name == self.scheduler_name,
                TriggerTable.job_name == job_key.name,
                TriggerTable.job_group == job_key.group,
                ~((TriggerTable.name == exclude.name) & (TriggerTable.group == exclude.group)),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) is not None

    # ── State derivation ─────────────────────────────────────────

    def initial_state(self, trigger: Trigger, record: SchedulerRecord) -> TriggerState:
        """State for a newly stored trigger given current pause/block state."""
        paused = self.is_trigger_group_paused(trigger.key.group) or record.is_job_group_paused(
            trigger.job_key.group
        )
        blocked = record.is_job_blocked(trigger.job_key)
        if paused:
            return TriggerState.PAUSED_AND_BLOCKED if blocked else TriggerState.PAUSED
        if blocked:
            return TriggerState.BLOCKED
        return TriggerState.WAITING

    # ── Removal ──────────────────────────────────────────────────

    def remove_trigger(self, row: TriggerTable) -> JobKey | None:
        """Delete ``row``; delete its job too when it was the job's last trigger.

        Sibling triggers are counted before the delete is issued.  Returns
        the key of a job removed by the cascade.
        """
        job_key = JobKey(row.job_name, row.job_group)
        trigger_key = TriggerKey(row.name, row.group)
        has_siblings = self.has_other_triggers(job_key, trigger_key)

        self.session.delete(row)
        if has_siblings:
            return None
        return self._delete_orphaned_job(job_key, trigger_key)

    def release_job(self, job_key: JobKey, trigger_key: TriggerKey) -> JobKey | None:
        """``trigger_key`` no longer points at ``job_key``; cascade if that orphaned the job."""
        if self.has_other_triggers(job_key, trigger_key):
            return None
        return self._delete_orphaned_job(job_key, trigger_key)

    def _delete_orphaned_job(self, job_key: JobKey, trigger_key: TriggerKey) -> JobKey | None:
        job = self.job(job_key)
        if job is None or job.durable:
            return None
        self.session.delete(job)
        logger.info(
            "job_deleted_cascade",
            scheduler=self.scheduler_name,
            job_key=str(job_key),
            trigger_key=str(trigger_key),
        )
        return job_key

    def remove_job(self, row: JobTable) -> None:
        for trigger in self.triggers_for_job(JobKey(row.name, row.group)):
            self.session.delete(trigger)
        self.session.delete(row)


__all__ = ["SchedulerRecord", "JobStoreRepository"]
