"""Pause and resume propagation.

Paused trigger groups are not stored: a trigger group counts as paused
while any of its triggers is PAUSED or PAUSED_AND_BLOCKED.  Paused job
groups are stored on the scheduler record so that jobs and triggers stored
later into the group start out paused.
"""

from __future__ import annotations

from datetime import datetime

from jobstore.core.orm.tables import TriggerTable
from jobstore.scheduling.matchers import GroupMatcher, StringOperator
from jobstore.scheduling.misfire import MisfireResolver
from jobstore.scheduling.models import JobKey, TriggerKey, TriggerState
from jobstore.scheduling.protocol import SchedulerSignaler
from jobstore.scheduling.repository import JobStoreRepository

_PAUSED = (TriggerState.PAUSED.value, TriggerState.PAUSED_AND_BLOCKED.value)


class PauseController:
    def __init__(self, misfire: MisfireResolver):
        self.misfire = misfire

    # ── Single rows ──────────────────────────────────────────────

    @staticmethod
    def pause_row(row: TriggerTable) -> None:
        if row.state == TriggerState.COMPLETE.value or row.state in _PAUSED:
            return
        if row.state == TriggerState.BLOCKED.value:
            row.state = TriggerState.PAUSED_AND_BLOCKED.value
        else:
            row.state = TriggerState.PAUSED.value

    def resume_row(
        self,
        repo: JobStoreRepository,
        row: TriggerTable,
        signaler: SchedulerSignaler,
        now: datetime,
    ) -> bool:
        if row.state not in _PAUSED:
            return False
        blocked = repo.record().is_job_blocked(JobKey(row.job_name, row.job_group))
        row.state = TriggerState.BLOCKED.value if blocked else TriggerState.WAITING.value
        self.misfire.apply(repo, row, signaler, now)
        return True

    # ── Triggers ─────────────────────────────────────────────────

    def pause_trigger(self, repo: JobStoreRepository, key: TriggerKey) -> None:
        row = repo.trigger(key)
        if row is not None:
            self.pause_row(row)

    def pause_triggers(self, repo: JobStoreRepository, matcher: GroupMatcher) -> set[str]:
        groups: set[str] = set()
        for row in repo.triggers():
            if matcher.matches(row.group):
                self.pause_row(row)
                groups.add(row.group)
        return groups

    def resume_trigger(
        self, repo: JobStoreRepository, key: TriggerKey, signaler: SchedulerSignaler, now: datetime
    ) -> None:
        row = repo.trigger(key)
        if row is not None:
            self.resume_row(repo, row, signaler, now)

    def resume_triggers(
        self,
        repo: JobStoreRepository,
        matcher: GroupMatcher,
        signaler: SchedulerSignaler,
        now: datetime,
    ) -> set[str]:
        groups: set[str] = set()
        for row in repo.triggers():
            if matcher.matches(row.group):
                self.resume_row(repo, row, signaler, now)
                groups.add(row.group)
        return groups

    # ── Jobs ─────────────────────────────────────────────────────

    def pause_job(self, repo: JobStoreRepository, key: JobKey) -> None:
        for row in repo.triggers_for_job(key):
            self.pause_row(row)

    def pause_jobs(self, repo: JobStoreRepository, matcher: GroupMatcher) -> set[str]:
        groups: set[str] = set()
        for job in repo.jobs():
            if matcher.matches(job.group):
                self.pause_job(repo, JobKey(job.name, job.group))
                groups.add(job.group)
        if matcher.operator is StringOperator.EQUALS:
            groups.add(matcher.compare_to)
        repo.record().pause_job_groups(groups)
        return groups

    def resume_job(
        self, repo: JobStoreRepository, key: JobKey, signaler: SchedulerSignaler, now: datetime
    ) -> None:
        for row in repo.triggers_for_job(key):
            self.resume_row(repo, row, signaler, now)

    def resume_jobs(
        self,
        repo: JobStoreRepository,
        matcher: GroupMatcher,
        signaler: SchedulerSignaler,
        now: datetime,
    ) -> set[str]:
        record = repo.record()
        groups = {group for group in record.paused_job_groups if matcher.matches(group)}
        record.resume_job_groups(groups)
        for job in repo.jobs():
            if matcher.matches(job.group):
                self.resume_job(repo, JobKey(job.name, job.group), signaler, now)
                groups.add(job.group)
        return groups

    # ── Everything ───────────────────────────────────────────────

    def pause_all(self, repo: JobStoreRepository) -> None:
        self.pause_triggers(repo, GroupMatcher.any_group())

    def resume_all(
        self, repo: JobStoreRepository, signaler: SchedulerSignaler, now: datetime
    ) -> None:
        repo.record().resume_job_groups(repo.record().paused_job_groups)
        self.resume_triggers(repo, GroupMatcher.any_group(), signaler, now)


__all__ = ["PauseController"]
