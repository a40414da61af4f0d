"""Conversion between domain models and ORM rows.

The persisted layout is the contract between scheduler restarts, so every
field is written explicitly here and nowhere else.  Schedule payloads are
stored as ``schedule_kind`` plus a JSON document.
"""

from __future__ import annotations

from datetime import time, timedelta
from typing import Any

from jobstore.core.errors import ScheduleError
from jobstore.core.orm.tables import JobTable, TriggerTable
from jobstore.core.timestamps import ensure_utc
from jobstore.scheduling.models import (
    SCHEDULE_KINDS,
    CalendarIntervalSchedule,
    CronSchedule,
    DailyTimeIntervalSchedule,
    IntervalUnit,
    JobDetail,
    JobKey,
    MisfireInstruction,
    Schedule,
    SimpleSchedule,
    Trigger,
    TriggerKey,
    TriggerState,
)

# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


def schedule_to_dict(schedule: Schedule) -> dict[str, Any]:
    if isinstance(schedule, CronSchedule):
        return {"expression": schedule.expression, "timezone": schedule.timezone}
    if isinstance(schedule, SimpleSchedule):
        return {
            "repeat_count": schedule.repeat_count,
            "repeat_interval_us": schedule.repeat_interval // timedelta(microseconds=1),
        }
    if isinstance(schedule, CalendarIntervalSchedule):
        return {
            "repeat_interval": schedule.repeat_interval,
            "unit": schedule.unit.value,
            "timezone": schedule.timezone,
            "preserve_hour_of_day_across_daylight_savings": (
                schedule.preserve_hour_of_day_across_daylight_savings
            ),
            "skip_day_if_hour_does_not_exist": schedule.skip_day_if_hour_does_not_exist,
        }
    if isinstance(schedule, DailyTimeIntervalSchedule):
        return {
            "repeat_interval": schedule.repeat_interval,
            "unit": schedule.unit.value,
            "start_time_of_day": schedule.start_time_of_day.isoformat(),
            "end_time_of_day": schedule.end_time_of_day.isoformat(),
            "days_of_week": sorted(schedule.days_of_week),
            "repeat_count": schedule.repeat_count,
            "timezone": schedule.timezone,
        }
    raise ScheduleError(f"Unsupported schedule payload {type(schedule).__name__}")


def schedule_from_dict(kind: str, data: dict[str, Any]) -> Schedule:
    if kind not in SCHEDULE_KINDS:
        raise ScheduleError(f"Unknown schedule kind {kind!r}")
    if kind == CronSchedule.kind:
        return CronSchedule(expression=data["expression"], timezone=data.get("timezone", "UTC"))
    if kind == SimpleSchedule.kind:
        return SimpleSchedule(
            repeat_count=data["repeat_count"],
            repeat_interval=timedelta(microseconds=data["repeat_interval_us"]),
        )
    if kind == CalendarIntervalSchedule.kind:
        return CalendarIntervalSchedule(
            repeat_interval=data["repeat_interval"],
            unit=IntervalUnit(data["unit"]),
            timezone=data.get("timezone", "UTC"),
            preserve_hour_of_day_across_daylight_savings=data.get(
                "preserve_hour_of_day_across_daylight_savings", False
            ),
            skip_day_if_hour_does_not_exist=data.get("skip_day_if_hour_does_not_exist", False),
        )
    return DailyTimeIntervalSchedule(
        repeat_interval=data["repeat_interval"],
        unit=IntervalUnit(data["unit"]),
        start_time_of_day=time.fromisoformat(data["start_time_of_day"]),
        end_time_of_day=time.fromisoformat(data["end_time_of_day"]),
        days_of_week=frozenset(data["days_of_week"]),
        repeat_count=data.get("repeat_count", -1),
        timezone=data.get("timezone", "UTC"),
    )


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def job_to_row(job: JobDetail, scheduler_name: str) -> JobTable:
    row = JobTable(scheduler_name=scheduler_name, name=job.key.name, group=job.key.group)
    apply_job(row, job)
    return row


def apply_job(row: JobTable, job: JobDetail) -> None:
    """Copy every mutable job field onto an existing row (replace semantics)."""
    row.job_type = job.job_type
    row.description = job.description
    row.durable = job.durable
    row.concurrent_execution_disallowed = job.concurrent_execution_disallowed
    row.persist_data_after_execution = job.persist_data_after_execution
    row.requests_recovery = job.requests_recovery
    row.job_data = dict(job.job_data)


def job_from_row(row: JobTable) -> JobDetail:
    return JobDetail(
        key=JobKey(row.name, row.group),
        job_type=row.job_type,
        description=row.description,
        durable=row.durable,
        concurrent_execution_disallowed=row.concurrent_execution_disallowed,
        persist_data_after_execution=row.persist_data_after_execution,
        requests_recovery=row.requests_recovery,
        job_data=dict(row.job_data or {}),
    )


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


def trigger_to_row(trigger: Trigger, scheduler_name: str, state: TriggerState) -> TriggerTable:
    row = TriggerTable(
        scheduler_name=scheduler_name, name=trigger.key.name, group=trigger.key.group
    )
    apply_trigger(row, trigger)
    row.state = state.value
    return row


def apply_trigger(row: TriggerTable, trigger: Trigger) -> None:
    """Copy every trigger field except identity and state onto ``row``."""
    row.job_name = trigger.job_key.name
    row.job_group = trigger.job_key.group
    row.description = trigger.description
    row.calendar_name = trigger.calendar_name
    row.job_data = dict(trigger.job_data)
    row.fire_instance_id = trigger.fire_instance_id
    row.misfire_instruction = int(trigger.misfire_instruction)
    row.priority = trigger.priority
    row.start_time = ensure_utc(trigger.start_time)
    row.end_time = ensure_utc(trigger.end_time)
    row.next_fire_time = ensure_utc(trigger.next_fire_time)
    row.previous_fire_time = ensure_utc(trigger.previous_fire_time)
    row.times_triggered = trigger.times_triggered
    row.schedule_kind = trigger.schedule.kind
    row.schedule = schedule_to_dict(trigger.schedule)


def apply_fire_times(row: TriggerTable, trigger: Trigger) -> None:
    """Persist only what a schedule capability may have changed.

    Columns whose instant is unchanged are not assigned, so a naive value
    loaded from SQLite never turns the row dirty.
    """
    for attr in ("next_fire_time", "previous_fire_time"):
        value = ensure_utc(getattr(trigger, attr))
        if ensure_utc(getattr(row, attr)) != value:
            setattr(row, attr, value)
    if row.times_triggered != trigger.times_triggered:
        row.times_triggered = trigger.times_triggered


def trigger_from_row(row: TriggerTable) -> Trigger:
    return Trigger(
        key=TriggerKey(row.name, row.group),
        job_key=JobKey(row.job_name, row.job_group),
        schedule=schedule_from_dict(row.schedule_kind, row.schedule),
        description=row.description,
        calendar_name=row.calendar_name,
        job_data=dict(row.job_data or {}),
        priority=row.priority,
        misfire_instruction=MisfireInstruction(row.misfire_instruction),
        start_time=ensure_utc(row.start_time),
        end_time=ensure_utc(row.end_time),
        next_fire_time=ensure_utc(row.next_fire_time),
        previous_fire_time=ensure_utc(row.previous_fire_time),
        times_triggered=row.times_triggered,
        fire_instance_id=row.fire_instance_id,
    )


__all__ = [
    "schedule_to_dict",
    "schedule_from_dict",
    "job_to_row",
    "apply_job",
    "job_from_row",
    "trigger_to_row",
    "apply_trigger",
    "apply_fire_times",
    "trigger_from_row",
]
