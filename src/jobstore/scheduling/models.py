"""Job store domain models.

Manifesto:
    Jobs and triggers cross the store boundary as plain dataclasses so the
    host scheduler never touches ORM rows.  The four schedule kinds are a
    tagged variant: one frozen payload dataclass per kind, each carrying a
    ``kind`` tag that selects its ``ScheduleCapability``.

Models:
    JobKey / TriggerKey       -- stable (name, group) identity
    JobDetail                 -- durable job definition
    Trigger                   -- schedule + job reference + fire times
    CronSchedule | SimpleSchedule | CalendarIntervalSchedule | DailyTimeIntervalSchedule
    TriggerFiredBundle        -- what the host needs to run one execution

Tags:
    models, dataclasses, triggers, jobs, tagged-variant

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, ClassVar

from jobstore.core.timestamps import utc_now

if TYPE_CHECKING:
    from jobstore.scheduling.calendars import Calendar

DEFAULT_GROUP = "DEFAULT"
REPEAT_INDEFINITELY = -1
ALL_DAYS_OF_WEEK = frozenset(range(7))


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TriggerState(str, Enum):
    """Internal trigger lifecycle state, as persisted."""

    WAITING = "WAITING"
    ACQUIRED = "ACQUIRED"
    PAUSED = "PAUSED"
    PAUSED_AND_BLOCKED = "PAUSED_AND_BLOCKED"
    BLOCKED = "BLOCKED"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


PAUSED_STATES = frozenset({TriggerState.PAUSED, TriggerState.PAUSED_AND_BLOCKED})


class TriggerStatus(str, Enum):
    """Trigger state as reported to the host scheduler."""

    NONE = "NONE"
    NORMAL = "NORMAL"
    PAUSED = "PAUSED"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    BLOCKED = "BLOCKED"

    @classmethod
    def from_state(cls, state: TriggerState | None) -> TriggerStatus:
        if state is None:
            return cls.NONE
        return {
            TriggerState.COMPLETE: cls.COMPLETE,
            TriggerState.PAUSED: cls.PAUSED,
            TriggerState.PAUSED_AND_BLOCKED: cls.PAUSED,
            TriggerState.BLOCKED: cls.BLOCKED,
            TriggerState.ERROR: cls.ERROR,
        }.get(state, cls.NORMAL)


class SchedulerState(str, Enum):
    """Lifecycle state stored on the scheduler record."""

    STARTED = "STARTED"
    PAUSED = "PAUSED"
    RESUMED = "RESUMED"
    SHUTDOWN = "SHUTDOWN"


class MisfireInstruction(IntEnum):
    """What to do with a trigger whose fire time passed the misfire threshold."""

    IGNORE_MISFIRE_POLICY = -1
    SMART_POLICY = 0
    FIRE_ONCE_NOW = 1
    DO_NOTHING = 2


class CompletedExecutionInstruction(str, Enum):
    """Instruction the host passes back when a job execution finishes."""

    NOOP = "NOOP"
    RE_EXECUTE_JOB = "RE_EXECUTE_JOB"
    SET_TRIGGER_COMPLETE = "SET_TRIGGER_COMPLETE"
    DELETE_TRIGGER = "DELETE_TRIGGER"
    SET_ALL_JOB_TRIGGERS_COMPLETE = "SET_ALL_JOB_TRIGGERS_COMPLETE"
    SET_TRIGGER_ERROR = "SET_TRIGGER_ERROR"
    SET_ALL_JOB_TRIGGERS_ERROR = "SET_ALL_JOB_TRIGGERS_ERROR"


class IntervalUnit(str, Enum):
    SECOND = "SECOND"
    MINUTE = "MINUTE"
    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class JobKey:
    """Identity of a job: unique (name, group) within one scheduler."""

    name: str
    group: str = DEFAULT_GROUP

    @property
    def id(self) -> str:
        """Storage id, ``name/group``; also used in the blocked-job set."""
        return f"{self.name}/{self.group}"

    def __str__(self) -> str:
        return f"{self.group}.{self.name}"


@dataclass(frozen=True, order=True)
class TriggerKey:
    """Identity of a trigger: unique (name, group) within one scheduler."""

    name: str
    group: str = DEFAULT_GROUP

    @property
    def id(self) -> str:
        return f"{self.name}/{self.group}"

    def __str__(self) -> str:
        return f"{self.group}.{self.name}"


# ---------------------------------------------------------------------------
# Schedule payloads (tagged variant)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CronSchedule:
    """Fire on a cron expression evaluated in ``timezone``."""

    kind: ClassVar[str] = "cron"

    expression: str
    timezone: str = "UTC"


@dataclass(frozen=True)
class SimpleSchedule:
    """Fire at ``start_time`` then every ``repeat_interval``, ``repeat_count`` more times."""

    kind: ClassVar[str] = "simple"

    repeat_count: int = 0  # REPEAT_INDEFINITELY for no limit
    repeat_interval: timedelta = timedelta(0)


@dataclass(frozen=True)
class CalendarIntervalSchedule:
    """Fire every ``repeat_interval`` calendar units (months and years included)."""

    kind: ClassVar[str] = "calendar_interval"

    repeat_interval: int = 1
    unit: IntervalUnit = IntervalUnit.DAY
    timezone: str = "UTC"
    preserve_hour_of_day_across_daylight_savings: bool = False
    skip_day_if_hour_does_not_exist: bool = False


@dataclass(frozen=True)
class DailyTimeIntervalSchedule:
    """Fire every interval inside a daily time window on selected weekdays (0=Monday)."""

    kind: ClassVar[str] = "daily_time_interval"

    repeat_interval: int = 1
    unit: IntervalUnit = IntervalUnit.HOUR
    start_time_of_day: time = time(0, 0)
    end_time_of_day: time = time(23, 59, 59)
    days_of_week: frozenset[int] = ALL_DAYS_OF_WEEK
    repeat_count: int = REPEAT_INDEFINITELY
    timezone: str = "UTC"


Schedule = CronSchedule | SimpleSchedule | CalendarIntervalSchedule | DailyTimeIntervalSchedule

SCHEDULE_KINDS: dict[str, type] = {
    cls.kind: cls
    for cls in (CronSchedule, SimpleSchedule, CalendarIntervalSchedule, DailyTimeIntervalSchedule)
}


# ---------------------------------------------------------------------------
# Jobs and triggers
# ---------------------------------------------------------------------------


@dataclass
class JobDetail:
    """Durable job definition (``js_jobs``)."""

    key: JobKey
    job_type: str  # "package.module:ClassName"
    description: str | None = None
    durable: bool = False
    concurrent_execution_disallowed: bool = False
    persist_data_after_execution: bool = False
    requests_recovery: bool = False
    job_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Trigger:
    """A schedule plus a reference to a job (``js_triggers``).

    ``next_fire_time`` and ``previous_fire_time`` are advanced by the
    schedule capability registered for ``schedule.kind``; the store
    persists whatever the capability leaves here.
    """

    key: TriggerKey
    job_key: JobKey
    schedule: Schedule
    description: str | None = None
    calendar_name: str | None = None
    job_data: dict[str, Any] = field(default_factory=dict)
    priority: int = 5
    misfire_instruction: MisfireInstruction = MisfireInstruction.SMART_POLICY
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime | None = None
    next_fire_time: datetime | None = None
    previous_fire_time: datetime | None = None
    times_triggered: int = 0
    fire_instance_id: str | None = None


@dataclass
class TriggerFiredBundle:
    """Everything the host needs to run one execution of a fired trigger."""

    job_detail: JobDetail
    trigger: Trigger
    calendar: Calendar | None
    recovering: bool
    fire_time: datetime
    scheduled_fire_time: datetime | None
    previous_fire_time: datetime | None
    next_fire_time: datetime | None


@dataclass
class TriggerFiredResult:
    bundle: TriggerFiredBundle
