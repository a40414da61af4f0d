"""Fired-trigger committer and completion handler.

Manifesto:
    Firing and completing are the two halves of one execution.  Firing
    turns an ACQUIRED reservation into a ``TriggerFiredBundle`` and, for a
    job that forbids concurrent execution, blocks every trigger of that job.
    Completion undoes the block and applies the host's instruction.
    Each half runs inside the caller's single unit of work.

State changes:

    fire      ACQUIRED ──► WAITING                      (the fired trigger)
              WAITING  ──► BLOCKED                      (every trigger of a
              PAUSED   ──► PAUSED_AND_BLOCKED            non-concurrent job)

    complete  BLOCKED            ──► WAITING
              PAUSED_AND_BLOCKED ──► PAUSED
              then COMPLETE / ERROR / delete per CompletedExecutionInstruction

Tags:
    scheduling, firing, completion, non-concurrent
"""

from __future__ import annotations

from datetime import datetime

from jobstore.core.logging import get_logger
from jobstore.scheduling.models import (
    CompletedExecutionInstruction,
    JobDetail,
    JobKey,
    Trigger,
    TriggerFiredBundle,
    TriggerFiredResult,
    TriggerState,
)
from jobstore.scheduling.protocol import SchedulerSignaler
from jobstore.scheduling.repository import JobStoreRepository
from jobstore.scheduling.schedules import ScheduleRegistry
from jobstore.scheduling.serialization import (
    apply_fire_times,
    job_from_row,
    trigger_from_row,
)

logger = get_logger(__name__)


class FiredTriggerCommitter:
    def __init__(self, registry: ScheduleRegistry):
        self.registry = registry

    def fire(
        self,
        repo: JobStoreRepository,
        signaler: SchedulerSignaler,
        triggers: list[Trigger],
        now: datetime,
        checkpoint=None,
    ) -> list[TriggerFiredResult]:
        """Commit the firing of previously acquired triggers.

        A trigger that is gone, no longer ACQUIRED, or whose calendar or job
        has disappeared is left out of the result without error.
        """
        record = repo.record()
        results: list[TriggerFiredResult] = []

        for candidate in triggers:
            if checkpoint is not None:
                checkpoint()
            row = repo.trigger(candidate.key)
            if row is None or row.state != TriggerState.ACQUIRED.value:
                continue

            calendar = None
            if row.calendar_name is not None:
                calendar = record.calendar(row.calendar_name)
                if calendar is None:
                    logger.warning(
                        "fired_trigger_calendar_missing",
                        scheduler=repo.scheduler_name,
                        trigger_key=str(candidate.key),
                        calendar_name=row.calendar_name,
                    )
                    continue

            job_row = repo.job(JobKey(row.job_name, row.job_group))
            if job_row is None:
                logger.warning(
                    "fired_trigger_job_missing",
                    scheduler=repo.scheduler_name,
                    trigger_key=str(candidate.key),
                )
                continue

            trigger = trigger_from_row(row)
            previous_fire_time = trigger.previous_fire_time
            self.registry.for_trigger(trigger).triggered(trigger, calendar)
            apply_fire_times(row, trigger)
            row.state = TriggerState.WAITING.value

            job = job_from_row(job_row)
            bundle = TriggerFiredBundle(
                job_detail=job,
                trigger=trigger,
                calendar=calendar,
                recovering=False,
                fire_time=now,
                scheduled_fire_time=trigger.previous_fire_time,
                previous_fire_time=previous_fire_time,
                next_fire_time=trigger.next_fire_time,
            )

            if job.concurrent_execution_disallowed:
                for sibling in repo.triggers_for_job(job.key):
                    if sibling.state == TriggerState.WAITING.value:
                        sibling.state = TriggerState.BLOCKED.value
                    elif sibling.state == TriggerState.PAUSED.value:
                        sibling.state = TriggerState.PAUSED_AND_BLOCKED.value
                record.block_job(job.key)

            results.append(TriggerFiredResult(bundle))
            logger.info(
                "trigger_fired",
                scheduler=repo.scheduler_name,
                trigger_key=str(trigger.key),
                job_key=str(job.key),
                fire_instance_id=trigger.fire_instance_id,
                next_fire_time=str(trigger.next_fire_time),
            )

        return results


class CompletionHandler:
    def complete(
        self,
        repo: JobStoreRepository,
        signaler: SchedulerSignaler,
        trigger: Trigger,
        job_detail: JobDetail,
        instruction: CompletedExecutionInstruction,
    ) -> None:
        record = repo.record()
        row = repo.trigger(trigger.key)
        job_row = repo.job(trigger.job_key)

        if job_row is not None:
            if job_detail.persist_data_after_execution:
                job_row.job_data = dict(job_detail.job_data)
            if job_row.concurrent_execution_disallowed:
                record.unblock_job(trigger.job_key)
                for sibling in repo.triggers_for_job(trigger.job_key):
                    if sibling.state == TriggerState.BLOCKED.value:
                        sibling.state = TriggerState.WAITING.value
                    elif sibling.state == TriggerState.PAUSED_AND_BLOCKED.value:
                        sibling.state = TriggerState.PAUSED.value
                signaler.scheduling_changed(None)
        else:
            # The job was deleted while running; the block still has to go.
            record.unblock_job(job_detail.key)

        if row is None:
            return

        if instruction is CompletedExecutionInstruction.DELETE_TRIGGER:
            if trigger.next_fire_time is None:
                # Rescheduled during execution: the stored row has a fire time again.
                if row.next_fire_time is None:
                    self._remove(repo, signaler, row)
            else:
                self._remove(repo, signaler, row)
                signaler.scheduling_changed(None)
        elif instruction is CompletedExecutionInstruction.SET_TRIGGER_COMPLETE:
            row.state = TriggerState.COMPLETE.value
            signaler.scheduling_changed(None)
        elif instruction is CompletedExecutionInstruction.SET_TRIGGER_ERROR:
            row.state = TriggerState.ERROR.value
            logger.warning(
                "trigger_set_error", scheduler=repo.scheduler_name, trigger_key=str(trigger.key)
            )
            signaler.scheduling_changed(None)
        elif instruction in (
            CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE,
            CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_ERROR,
        ):
            state = (
                TriggerState.COMPLETE
                if instruction is CompletedExecutionInstruction.SET_ALL_JOB_TRIGGERS_COMPLETE
                else TriggerState.ERROR
            )
            for sibling in repo.triggers_for_job(trigger.job_key):
                sibling.state = state.value
            signaler.scheduling_changed(None)

    @staticmethod
    def _remove(repo: JobStoreRepository, signaler: SchedulerSignaler, row) -> None:
        deleted_job = repo.remove_trigger(row)
        if deleted_job is not None:
            signaler.job_deleted(deleted_job)


__all__ = ["FiredTriggerCommitter", "CompletionHandler"]
