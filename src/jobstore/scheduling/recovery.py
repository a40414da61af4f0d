"""Startup recovery.

Runs once, before the scheduler loop starts, when a record for the same
scheduler name already exists.  The whole sweep is one transaction: the
store either ends up fully recovered or exactly as it was.

Steps:
    1. ACQUIRED / BLOCKED -> WAITING, PAUSED_AND_BLOCKED -> PAUSED; the
       blocked-job set is cleared (nothing is executing after a restart).
    2. Triggers of jobs that request recovery get their first fire time
       recomputed and are re-stored.
    3. COMPLETE triggers are removed (cascading to non-durable jobs).
    4. The scheduler record is marked STARTED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from jobstore.core.logging import get_logger
from jobstore.scheduling.models import JobKey, SchedulerState, TriggerState
from jobstore.scheduling.protocol import SchedulerSignaler
from jobstore.scheduling.repository import JobStoreRepository
from jobstore.scheduling.schedules import ScheduleRegistry
from jobstore.scheduling.serialization import apply_fire_times, trigger_from_row

logger = get_logger(__name__)


@dataclass
class RecoveryReport:
    created: bool = False
    reset_triggers: int = 0
    recovered_triggers: int = 0
    removed_complete_triggers: int = 0
    removed_jobs: int = 0

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "created": self.created,
            "reset_triggers": self.reset_triggers,
            "recovered_triggers": self.recovered_triggers,
            "removed_complete_triggers": self.removed_complete_triggers,
            "removed_jobs": self.removed_jobs,
        }


class RecoveryProcedure:
    def __init__(self, registry: ScheduleRegistry):
        self.registry = registry

    def run(
        self,
        repo: JobStoreRepository,
        signaler: SchedulerSignaler,
        now: datetime,
    ) -> RecoveryReport:
        report = RecoveryReport()
        # A record written by store operations alone has never been started.
        record = repo.record()
        if record.state is None:
            record.state = SchedulerState.STARTED
            repo.touch(now)
            report.created = True
            logger.info("scheduler_record_created", scheduler=repo.scheduler_name)
            return report

        for row in repo.triggers_in_states(
            TriggerState.ACQUIRED, TriggerState.BLOCKED, TriggerState.PAUSED_AND_BLOCKED
        ):
            if row.state == TriggerState.PAUSED_AND_BLOCKED.value:
                row.state = TriggerState.PAUSED.value
            else:
                row.state = TriggerState.WAITING.value
            report.reset_triggers += 1
        record.clear_blocked_jobs()

        for job in repo.jobs_requesting_recovery():
            for row in repo.triggers_for_job(JobKey(job.name, job.group)):
                trigger = trigger_from_row(row)
                calendar = record.calendar(trigger.calendar_name)
                self.registry.for_trigger(trigger).compute_first_fire_time(trigger, calendar)
                apply_fire_times(row, trigger)
                row.state = repo.initial_state(trigger, record).value
                report.recovered_triggers += 1

        for row in repo.triggers_in_states(TriggerState.COMPLETE):
            deleted_job = repo.remove_trigger(row)
            report.removed_complete_triggers += 1
            if deleted_job is not None:
                report.removed_jobs += 1
                signaler.job_deleted(deleted_job)

        record.state = SchedulerState.STARTED
        repo.touch(now)
        logger.info("recovery_completed", scheduler=repo.scheduler_name, **report.to_dict())
        return report


__all__ = ["RecoveryReport", "RecoveryProcedure"]
