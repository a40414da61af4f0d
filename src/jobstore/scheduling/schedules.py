"""Reference fire-time capabilities for the four schedule kinds.

Manifesto:
    The store never does fire-time arithmetic itself.  It looks up the
    capability registered for ``trigger.schedule.kind`` and lets it move
    ``next_fire_time`` / ``previous_fire_time``.  Hosts can register their
    own capability for a kind; these are the defaults.

Every capability only implements ``fire_time_after`` (the first raw
schedule instant strictly after a given time).  The base class layers
``start_time`` / ``end_time`` clamping, calendar exclusion, misfire
instructions and calendar changes on top of it.

Cron evaluation uses croniter, month/year arithmetic uses dateutil's
``relativedelta``; both evaluate wall-clock time in the schedule's timezone.

Tags:
    scheduling, cron, croniter, intervals, misfire, calendars

Doc-Types:
    api-reference
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from dateutil.relativedelta import relativedelta

from jobstore.core.errors import ScheduleError
from jobstore.core.timestamps import ensure_utc
from jobstore.scheduling.calendars import Calendar
from jobstore.scheduling.models import (
    REPEAT_INDEFINITELY,
    CalendarIntervalSchedule,
    CronSchedule,
    DailyTimeIntervalSchedule,
    IntervalUnit,
    MisfireInstruction,
    SimpleSchedule,
    Trigger,
)

_ONE_MICROSECOND = timedelta(microseconds=1)
# Calendars can exclude everything; stop searching after this many candidates.
_MAX_CALENDAR_SKIPS = 10_000

_UNIT_SECONDS = {
    IntervalUnit.SECOND: 1,
    IntervalUnit.MINUTE: 60,
    IntervalUnit.HOUR: 3600,
    IntervalUnit.DAY: 86_400,
    IntervalUnit.WEEK: 7 * 86_400,
}


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleError(f"Unknown timezone {name!r}", cause=exc) from exc


def _localize(naive: datetime, tz: ZoneInfo) -> datetime | None:
    """Attach ``tz`` to a naive wall-clock time; None if the time falls in a DST gap."""
    aware = naive.replace(tzinfo=tz)
    if aware.astimezone(UTC).astimezone(tz).replace(tzinfo=None) != naive:
        return None
    return aware


class BaseScheduleCapability(ABC):
    """Shared behaviour of the reference capabilities."""

    kind: str = ""

    @abstractmethod
    def fire_time_after(self, trigger: Trigger, after: datetime) -> datetime | None:
        """First raw schedule instant strictly after ``after`` (UTC, aware)."""

    def validate(self, trigger: Trigger) -> None:
        """Raise ``ScheduleError`` for a payload this capability cannot evaluate."""

    # ── Building blocks ───────────────────────────────────────────

    def _bounded_after(self, trigger: Trigger, after: datetime | None) -> datetime | None:
        start = ensure_utc(trigger.start_time)
        floor = start - _ONE_MICROSECOND
        after = floor if after is None else max(ensure_utc(after), floor)
        candidate = self.fire_time_after(trigger, after)
        if candidate is None:
            return None
        end = ensure_utc(trigger.end_time)
        if end is not None and candidate > end:
            return None
        return candidate

    def next_included_time(
        self, trigger: Trigger, after: datetime | None, calendar: Calendar | None
    ) -> datetime | None:
        candidate = self._bounded_after(trigger, after)
        skips = 0
        while (
            candidate is not None
            and calendar is not None
            and not calendar.is_time_included(candidate)
        ):
            skips += 1
            if skips > _MAX_CALENDAR_SKIPS:
                return None
            included = calendar.get_next_included_time(candidate)
            if included is None:
                return None
            candidate = self._bounded_after(trigger, included - _ONE_MICROSECOND)
        return candidate

    # ── ScheduleCapability ────────────────────────────────────────

    def compute_first_fire_time(
        self, trigger: Trigger, calendar: Calendar | None
    ) -> datetime | None:
        self.validate(trigger)
        trigger.next_fire_time = self.next_included_time(trigger, None, calendar)
        return trigger.next_fire_time

    def update_after_misfire(
        self, trigger: Trigger, calendar: Calendar | None, now: datetime
    ) -> None:
        instruction = trigger.misfire_instruction
        if instruction == MisfireInstruction.IGNORE_MISFIRE_POLICY:
            return
        if instruction == MisfireInstruction.SMART_POLICY:
            instruction = MisfireInstruction.FIRE_ONCE_NOW

        end = ensure_utc(trigger.end_time)
        if instruction == MisfireInstruction.FIRE_ONCE_NOW and (end is None or now <= end):
            trigger.next_fire_time = now
        else:
            trigger.next_fire_time = self.next_included_time(trigger, now, calendar)

    def triggered(self, trigger: Trigger, calendar: Calendar | None) -> None:
        trigger.times_triggered += 1
        trigger.previous_fire_time = trigger.next_fire_time
        if trigger.next_fire_time is not None:
            trigger.next_fire_time = self.next_included_time(
                trigger, trigger.next_fire_time, calendar
            )

    def update_with_new_calendar(
        self,
        trigger: Trigger,
        calendar: Calendar | None,
        misfire_threshold: timedelta,
        now: datetime,
    ) -> None:
        after = trigger.previous_fire_time
        next_fire = self.next_included_time(trigger, after, calendar)
        if next_fire is not None and now - next_fire >= misfire_threshold:
            next_fire = self.next_included_time(trigger, now - misfire_threshold, calendar)
        trigger.next_fire_time = next_fire


class CronCapability(BaseScheduleCapability):
    kind = CronSchedule.kind

    def validate(self, trigger: Trigger) -> None:
        schedule = trigger.schedule
        if not croniter.is_valid(schedule.expression):
            raise ScheduleError(f"Invalid cron expression {schedule.expression!r}")
        _zone(schedule.timezone)

    def fire_time_after(self, trigger: Trigger, after: datetime) -> datetime | None:
        schedule: CronSchedule = trigger.schedule
        # croniter works on whole seconds; flooring keeps the result strictly after ``after``.
        base = after.replace(microsecond=0).astimezone(_zone(schedule.timezone))
        try:
            next_run = croniter(schedule.expression, base).get_next(datetime)
        except (ValueError, KeyError) as exc:
            raise ScheduleError(f"Cannot evaluate cron {schedule.expression!r}", cause=exc) from exc
        return next_run.astimezone(UTC)


class SimpleCapability(BaseScheduleCapability):
    kind = SimpleSchedule.kind

    def validate(self, trigger: Trigger) -> None:
        schedule: SimpleSchedule = trigger.schedule
        if schedule.repeat_count < REPEAT_INDEFINITELY:
            raise ScheduleError(f"repeat_count must be >= -1, got {schedule.repeat_count}")
        if schedule.repeat_interval < timedelta(0):
            raise ScheduleError("repeat_interval must not be negative")
        if schedule.repeat_count != 0 and schedule.repeat_interval == timedelta(0):
            raise ScheduleError("a repeating simple schedule needs a positive repeat_interval")

    def fire_time_after(self, trigger: Trigger, after: datetime) -> datetime | None:
        schedule: SimpleSchedule = trigger.schedule
        start = ensure_utc(trigger.start_time)
        if after < start:
            return start
        if schedule.repeat_interval <= timedelta(0):
            return None
        n = (after - start) // schedule.repeat_interval + 1
        if schedule.repeat_count != REPEAT_INDEFINITELY and n > schedule.repeat_count:
            return None
        return start + n * schedule.repeat_interval


class CalendarIntervalCapability(BaseScheduleCapability):
    kind = CalendarIntervalSchedule.kind

    def validate(self, trigger: Trigger) -> None:
        schedule: CalendarIntervalSchedule = trigger.schedule
        if schedule.repeat_interval < 1:
            raise ScheduleError("repeat_interval must be at least 1")
        _zone(schedule.timezone)

    def _nth(self, schedule: CalendarIntervalSchedule, start: datetime, n: int) -> datetime | None:
        step = n * schedule.repeat_interval
        unit = schedule.unit
        wall_clock = unit in (IntervalUnit.MONTH, IntervalUnit.YEAR) or (
            unit in (IntervalUnit.DAY, IntervalUnit.WEEK)
            and schedule.preserve_hour_of_day_across_daylight_savings
        )
        if not wall_clock:
            return start + timedelta(seconds=step * _UNIT_SECONDS[unit])

        tz = _zone(schedule.timezone)
        local = start.astimezone(tz).replace(tzinfo=None)
        if unit is IntervalUnit.MONTH:
            local += relativedelta(months=step)
        elif unit is IntervalUnit.YEAR:
            local += relativedelta(years=step)
        elif unit is IntervalUnit.WEEK:
            local += relativedelta(weeks=step)
        else:
            local += relativedelta(days=step)
        aware = _localize(local, tz)
        if aware is None:
            if schedule.skip_day_if_hour_does_not_exist:
                return None
            aware = local.replace(tzinfo=tz)
        return aware.astimezone(UTC)

    def _estimate(
        self, schedule: CalendarIntervalSchedule, start: datetime, after: datetime
    ) -> int:
        unit = schedule.unit
        if unit is IntervalUnit.MONTH:
            months = (after.year - start.year) * 12 + after.month - start.month
            return max(0, months // schedule.repeat_interval - 1)
        if unit is IntervalUnit.YEAR:
            return max(0, (after.year - start.year) // schedule.repeat_interval - 1)
        step = schedule.repeat_interval * _UNIT_SECONDS[unit]
        return max(0, math.floor((after - start).total_seconds() / step) - 1)

    def fire_time_after(self, trigger: Trigger, after: datetime) -> datetime | None:
        schedule: CalendarIntervalSchedule = trigger.schedule
        start = ensure_utc(trigger.start_time)
        if after < start:
            return start
        n = self._estimate(schedule, start, after)
        # A skipped (non-existent) hour can at most skip a few consecutive steps.
        for _ in range(_MAX_CALENDAR_SKIPS):
            candidate = self._nth(schedule, start, n)
            if candidate is not None and candidate > after:
                return candidate
            n += 1
        return None


class DailyTimeIntervalCapability(BaseScheduleCapability):
    kind = DailyTimeIntervalSchedule.kind

    def validate(self, trigger: Trigger) -> None:
        schedule: DailyTimeIntervalSchedule = trigger.schedule
        if schedule.unit not in (IntervalUnit.SECOND, IntervalUnit.MINUTE, IntervalUnit.HOUR):
            raise ScheduleError("daily time interval unit must be SECOND, MINUTE or HOUR")
        if schedule.repeat_interval < 1:
            raise ScheduleError("repeat_interval must be at least 1")
        if schedule.end_time_of_day < schedule.start_time_of_day:
            raise ScheduleError("end_time_of_day is before start_time_of_day")
        if not schedule.days_of_week or not set(schedule.days_of_week) <= set(range(7)):
            raise ScheduleError("days_of_week must be a non-empty subset of 0..6")
        _zone(schedule.timezone)

    def fire_time_after(self, trigger: Trigger, after: datetime) -> datetime | None:
        schedule: DailyTimeIntervalSchedule = trigger.schedule
        if (
            schedule.repeat_count != REPEAT_INDEFINITELY
            and trigger.times_triggered > schedule.repeat_count
        ):
            return None
        if not schedule.days_of_week:
            return None

        tz = _zone(schedule.timezone)
        step = timedelta(seconds=schedule.repeat_interval * _UNIT_SECONDS[schedule.unit])
        local_after = after.astimezone(tz).replace(tzinfo=None)
        day = local_after.date()
        for _ in range(8 * 7):
            if day.weekday() in schedule.days_of_week:
                window_start = datetime.combine(day, schedule.start_time_of_day)
                window_end = datetime.combine(day, schedule.end_time_of_day)
                if local_after < window_start:
                    candidate = window_start
                else:
                    candidate = window_start + ((local_after - window_start) // step + 1) * step
                while candidate <= window_end:
                    aware = _localize(candidate, tz)
                    if aware is not None:
                        return aware.astimezone(UTC)
                    candidate += step
            day += timedelta(days=1)
        return None


class ScheduleRegistry:
    """Maps schedule ``kind`` tags to capabilities.

    Example:
        >>> registry = ScheduleRegistry()
        >>> registry.get("cron").kind
        'cron'
    """

    def __init__(self, capabilities: list[BaseScheduleCapability] | None = None):
        self._capabilities: dict[str, object] = {}
        for capability in capabilities or default_capabilities():
            self.register(capability)

    def register(self, capability: object) -> None:
        self._capabilities[capability.kind] = capability

    def get(self, kind: str):
        try:
            return self._capabilities[kind]
        except KeyError:
            raise ScheduleError(f"No schedule capability registered for kind {kind!r}") from None

    def for_trigger(self, trigger: Trigger):
        return self.get(trigger.schedule.kind)

    def validate(self, trigger: Trigger) -> None:
        capability = self.for_trigger(trigger)
        validate = getattr(capability, "validate", None)
        if validate is not None:
            validate(trigger)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._capabilities)


def default_capabilities() -> list[BaseScheduleCapability]:
    return [
        CronCapability(),
        SimpleCapability(),
        CalendarIntervalCapability(),
        DailyTimeIntervalCapability(),
    ]


__all__ = [
    "BaseScheduleCapability",
    "CronCapability",
    "SimpleCapability",
    "CalendarIntervalCapability",
    "DailyTimeIntervalCapability",
    "ScheduleRegistry",
    "default_capabilities",
]
