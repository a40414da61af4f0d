"""Misfire resolver.

A trigger has misfired when its next fire time is older than
``now - misfire_threshold``.  The resolver lets the trigger's schedule
capability decide where the trigger goes next, persists the new fire times
on the row and reports whether the caller must re-evaluate the trigger.

Tags:
    scheduling, misfire
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from jobstore.core.logging import get_logger
from jobstore.core.orm.tables import TriggerTable
from jobstore.core.timestamps import ensure_utc
from jobstore.scheduling.models import MisfireInstruction, TriggerState
from jobstore.scheduling.protocol import SchedulerSignaler
from jobstore.scheduling.repository import JobStoreRepository
from jobstore.scheduling.schedules import ScheduleRegistry
from jobstore.scheduling.serialization import apply_fire_times, trigger_from_row

logger = get_logger(__name__)

DEFAULT_MISFIRE_THRESHOLD = timedelta(seconds=5)


class MisfireResolver:
    """Detects misfires and advances misfired triggers.

    Example:
        >>> resolver = MisfireResolver(ScheduleRegistry(), timedelta(seconds=5))
        >>> resolver.misfire_time(datetime(2026, 1, 1, 12, 0, 5))
        datetime.datetime(2026, 1, 1, 12, 0)
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        misfire_threshold: timedelta = DEFAULT_MISFIRE_THRESHOLD,
    ):
        self.registry = registry
        self.misfire_threshold = misfire_threshold

    def misfire_time(self, now: datetime) -> datetime:
        if self.misfire_threshold > timedelta(0):
            return now - self.misfire_threshold
        return now

    def apply(
        self,
        repo: JobStoreRepository,
        row: TriggerTable,
        signaler: SchedulerSignaler,
        now: datetime,
    ) -> bool:
        """Advance ``row`` if it misfired.

        Returns True when the trigger's fire time moved (or the trigger was
        finalized) and the caller has to look at it again; False when
        nothing misfired or the recomputed fire time equals the old one.
        """
        fire_time = ensure_utc(row.next_fire_time)
        if (
            fire_time is None
            or fire_time > self.misfire_time(now)
            or row.misfire_instruction == MisfireInstruction.IGNORE_MISFIRE_POLICY
        ):
            return False

        calendar = repo.record().calendar(row.calendar_name) if row.calendar_name else None
        trigger = trigger_from_row(row)
        missed = replace(trigger)
        self.registry.for_trigger(trigger).update_after_misfire(trigger, calendar, now)

        # Same fire time again: leave the row and the signaler untouched.
        if trigger.next_fire_time is not None and ensure_utc(trigger.next_fire_time) == fire_time:
            return False

        signaler.misfired(missed)
        apply_fire_times(row, trigger)

        if trigger.next_fire_time is None:
            row.state = TriggerState.COMPLETE.value
            signaler.finalized(trigger)
            logger.info(
                "trigger_finalized_after_misfire",
                scheduler=repo.scheduler_name,
                trigger_key=str(trigger.key),
                missed_fire_time=fire_time.isoformat(),
            )
            return True

        logger.info(
            "trigger_misfired",
            scheduler=repo.scheduler_name,
            trigger_key=str(trigger.key),
            missed_fire_time=fire_time.isoformat(),
            next_fire_time=trigger.next_fire_time.isoformat(),
        )
        return True


__all__ = ["DEFAULT_MISFIRE_THRESHOLD", "MisfireResolver"]
