"""JobStore: the persistence interface a scheduler talks to.

Manifesto:
    One public call is one unit of work: one SQLAlchemy session, one
    transaction, one commit.  Nothing half-written is ever visible to
    another scheduler instance.  Conflicting concurrent writes are rejected
    by the row version check (``StaleDataError``) and propagate to the
    caller, who owns retry policy.

    Signals raised while the transaction is open are buffered and only
    delivered after it commits.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB STORE                                                                    │
│                                                                               │
│   lifecycle   initialize · scheduler_started · scheduler_paused               │
│               scheduler_resumed · shutdown                                    │
│   jobs        store_job · store_jobs_and_triggers · store_job_and_trigger     │
│               remove_job(s) · retrieve_job · check_job_exists                 │
│   triggers    store_trigger · remove_trigger(s) · replace_trigger             │
│               retrieve_trigger · check_trigger_exists · get_trigger_state     │
│               get_triggers_for_job                                            │
│   pausing     pause/resume × trigger/job × single/group · pause/resume_all    │
│   firing      acquire_next_triggers · release_acquired_trigger                │
│               triggers_fired · triggered_job_complete                         │
│   calendars   store/remove/retrieve_calendar · calendar_exists · names        │
│   lookups     keys · group names · counts · clear_all_scheduling_data         │
└──────────────────────────────────────────────────────────────────────────────┘

Example:
    >>> from jobstore.scheduling import JobStore
    >>> store = JobStore.from_settings(database_url="sqlite://")
    >>> store.scheduler_started()
    >>> store.get_number_of_jobs()
    0

Tags:
    scheduling, job-store, persistence, unit-of-work, sqlalchemy

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from jobstore.core.errors import (
    DanglingReferenceError,
    JobPersistenceError,
    JobStoreError,
    ObjectAlreadyExistsError,
    OperationCancelledError,
    ScheduleError,
    SchedulerConfigError,
)
from jobstore.core.logging import get_logger
from jobstore.core.orm.session import (
    create_jobstore_engine,
    create_schema,
    jobstore_session_factory,
)
from jobstore.core.settings import JobStoreSettings, load_settings
from jobstore.core.timestamps import generate_ulid, utc_now
from jobstore.scheduling.acquisition import AcquisitionEngine, FireInstanceIdGenerator
from jobstore.scheduling.calendars import Calendar
from jobstore.scheduling.firing import CompletionHandler, FiredTriggerCommitter
from jobstore.scheduling.matchers import GroupMatcher
from jobstore.scheduling.misfire import DEFAULT_MISFIRE_THRESHOLD, MisfireResolver
from jobstore.scheduling.models import (
    CompletedExecutionInstruction,
    JobDetail,
    JobKey,
    SchedulerState,
    Trigger,
    TriggerFiredResult,
    TriggerKey,
    TriggerState,
    TriggerStatus,
)
from jobstore.scheduling.pausing import PauseController
from jobstore.scheduling.protocol import (
    ImportJobTypeResolver,
    JobTypeResolver,
    LoggingSignaler,
    PendingSignals,
    SchedulerSignaler,
)
from jobstore.scheduling.recovery import RecoveryProcedure, RecoveryReport
from jobstore.scheduling.repository import JobStoreRepository
from jobstore.scheduling.schedules import ScheduleRegistry
from jobstore.scheduling.serialization import (
    apply_fire_times,
    apply_job,
    apply_trigger,
    job_from_row,
    job_to_row,
    trigger_from_row,
    trigger_to_row,
)

logger = get_logger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, DisconnectionError)


@dataclass
class _UnitOfWork:
    repo: JobStoreRepository
    signals: PendingSignals
    now: datetime
    checkpoint: Callable[[], None]


class JobStore:
    """Durable job store shared by one or more scheduler instances."""

    supports_persistence = True
    estimated_time_to_release_and_acquire_trigger = timedelta(milliseconds=100)

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        instance_name: str = "scheduler",
        instance_id: str | None = None,
        misfire_threshold: timedelta = DEFAULT_MISFIRE_THRESHOLD,
        clustered: bool = False,
        registry: ScheduleRegistry | None = None,
        signaler: SchedulerSignaler | None = None,
        job_type_resolver: JobTypeResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
        fire_instance_ids: FireInstanceIdGenerator | None = None,
    ):
        self._session_factory = session_factory
        self.instance_name = instance_name
        self.instance_id = instance_id or generate_ulid()
        self.clustered = clustered
        self.registry = registry or ScheduleRegistry()
        self.signaler: SchedulerSignaler = signaler or LoggingSignaler()
        self.job_type_resolver: JobTypeResolver = job_type_resolver or ImportJobTypeResolver()
        self._clock = clock

        self._misfire = MisfireResolver(self.registry, misfire_threshold)
        self._acquisition = AcquisitionEngine(self._misfire, fire_instance_ids)
        self._firing = FiredTriggerCommitter(self.registry)
        self._completion = CompletionHandler()
        self._recovery = RecoveryProcedure(self.registry)
        self._pausing = PauseController(self._misfire)

    @classmethod
    def from_settings(
        cls,
        settings: JobStoreSettings | None = None,
        *,
        engine: Engine | None = None,
        **overrides: Any,
    ) -> JobStore:
        """Build engine, schema and store from ``JOBSTORE_*`` settings.

        Keyword overrides that are settings fields are applied to the
        settings; the rest are passed to the constructor.
        """
        field_overrides = {k: v for k, v in overrides.items() if k in JobStoreSettings.model_fields}
        store_kwargs = {k: v for k, v in overrides.items() if k not in field_overrides}
        if settings is None:
            settings = load_settings(**field_overrides)
        elif field_overrides:
            settings = settings.model_copy(update=field_overrides)

        if engine is None:
            engine = create_jobstore_engine(settings.database_url, echo=settings.database_echo)
        create_schema(engine)
        return cls(
            jobstore_session_factory(engine),
            instance_name=settings.instance_name,
            instance_id=settings.instance_id,
            misfire_threshold=settings.misfire_threshold,
            clustered=settings.clustered,
            **store_kwargs,
        )

    @property
    def misfire_threshold(self) -> timedelta:
        return self._misfire.misfire_threshold

    # ── Unit of work ─────────────────────────────────────────────

    @staticmethod
    def _check_cancelled(cancel: threading.Event | None, operation: str) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(f"{operation} was cancelled").with_context(
                operation=operation
            )

    @contextmanager
    def _unit_of_work(
        self, operation: str, cancel: threading.Event | None = None
    ) -> Iterator[_UnitOfWork]:
        self._check_cancelled(cancel, operation)
        signals = PendingSignals()
        session = self._session_factory()
        try:
            uow = _UnitOfWork(
                repo=JobStoreRepository(session, self.instance_name),
                signals=signals,
                now=self._clock(),
                checkpoint=lambda: self._check_cancelled(cancel, operation),
            )
            yield uow
            self._check_cancelled(cancel, operation)
            session.commit()
        except _UNAVAILABLE as exc:
            session.rollback()
            signals.discard()
            logger.error(
                "job_store_unavailable",
                scheduler=self.instance_name,
                operation=operation,
                error=str(exc),
            )
            raise JobPersistenceError(
                f"Job store unavailable during {operation}: {exc}", cause=exc
            ).with_context(scheduler_name=self.instance_name, operation=operation) from exc
        except BaseException:
            session.rollback()
            signals.discard()
            raise
        finally:
            session.close()
        signals.deliver(self.signaler)

    # ── Lifecycle ────────────────────────────────────────────────

    def initialize(
        self,
        signaler: SchedulerSignaler | None = None,
        job_type_resolver: JobTypeResolver | None = None,
    ) -> None:
        """Attach the host's collaborators and make sure the tables exist."""
        if signaler is not None:
            self.signaler = signaler
        if job_type_resolver is not None:
            self.job_type_resolver = job_type_resolver
        create_schema(self._session_factory.kw["bind"])
        logger.info(
            "job_store_initialized",
            scheduler=self.instance_name,
            instance_id=self.instance_id,
            clustered=self.clustered,
        )

    def scheduler_started(self, cancel: threading.Event | None = None) -> RecoveryReport:
        """Create the scheduler record, or recover from the previous run.

        Raises:
            SchedulerConfigError: recovery failed; the scheduler must not start.
        """
        try:
            with self._unit_of_work("scheduler_started", cancel) as uow:
                return self._recovery.run(uow.repo, uow.signals, uow.now)
        except OperationCancelledError:
            raise
        except Exception as exc:
            logger.error("recovery_failed", scheduler=self.instance_name, error=str(exc))
            raise SchedulerConfigError(
                f"Failure occurred during job recovery: {exc}", cause=exc
            ).with_context(
                scheduler_name=self.instance_name, operation="scheduler_started"
            ) from exc

    def _set_scheduler_state(self, state: SchedulerState, cancel: threading.Event | None) -> None:
        with self._unit_of_work(f"scheduler_{state.value.lower()}", cancel) as uow:
            uow.repo.record().state = state
            uow.repo.touch(uow.now)
        logger.info("scheduler_state_changed", scheduler=self.instance_name, state=state.value)

    def scheduler_paused(self, cancel: threading.Event | None = None) -> None:
        self._set_scheduler_state(SchedulerState.PAUSED, cancel)

    def scheduler_resumed(self, cancel: threading.Event | None = None) -> None:
        self._set_scheduler_state(SchedulerState.RESUMED, cancel)

    def shutdown(self, cancel: threading.Event | None = None) -> None:
        self._set_scheduler_state(SchedulerState.SHUTDOWN, cancel)

    def get_scheduler_state(self) -> SchedulerState | None:
        with self._unit_of_work("get_scheduler_state") as uow:
            if not uow.repo.record_exists():
                return None
            return uow.repo.record().state

    # ── Jobs ─────────────────────────────────────────────────────

    def _store_job(self, uow: _UnitOfWork, job: JobDetail, replace_existing: bool) -> None:
        existing = uow.repo.job(job.key)
        if existing is not None:
            if not replace_existing:
                raise ObjectAlreadyExistsError("job", str(job.key)).with_context(
                    job_key=str(job.key)
                )
            apply_job(existing, job)
        else:
            uow.repo.session.add(job_to_row(job, self.instance_name))

    def store_job(
        self,
        job: JobDetail,
        replace_existing: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        with self._unit_of_work("store_job", cancel) as uow:
            self._store_job(uow, job, replace_existing)

    def store_job_and_trigger(
        self,
        job: JobDetail,
        trigger: Trigger,
        replace_existing: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        with self._unit_of_work("store_job_and_trigger", cancel) as uow:
            self._store_job(uow, job, replace_existing)
            uow.repo.session.flush()
            self._store_trigger(uow, trigger, replace_existing)

    def store_jobs_and_triggers(
        self,
        jobs_and_triggers: Iterable[tuple[JobDetail, Sequence[Trigger]]],
        replace: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        """Store several jobs with their triggers in one transaction.

        Without ``replace`` nothing is written if any key already exists or
        appears twice in the batch.
        """
        pairs = list(jobs_and_triggers)
        with self._unit_of_work("store_jobs_and_triggers", cancel) as uow:
            if not replace:
                job_keys: set[JobKey] = set()
                trigger_keys: set[TriggerKey] = set()
                for job, triggers in pairs:
                    if job.key in job_keys or uow.repo.job(job.key) is not None:
                        raise ObjectAlreadyExistsError("job", str(job.key))
                    job_keys.add(job.key)
                    for trigger in triggers:
                        stored = uow.repo.trigger(trigger.key) is not None
                        if stored or trigger.key in trigger_keys:
                            raise ObjectAlreadyExistsError("trigger", str(trigger.key))
                        trigger_keys.add(trigger.key)
            for job, triggers in pairs:
                uow.checkpoint()
                self._store_job(uow, job, replace_existing=True)
                uow.repo.session.flush()
                for trigger in triggers:
                    self._store_trigger(uow, trigger, replace_existing=True)

    def remove_job(self, key: JobKey, cancel: threading.Event | None = None) -> bool:
        """Remove a job and all of its triggers."""
        with self._unit_of_work("remove_job", cancel) as uow:
            row = uow.repo.job(key)
            if row is None:
                return False
            uow.repo.remove_job(row)
            return True

    def remove_jobs(self, keys: Iterable[JobKey], cancel: threading.Event | None = None) -> bool:
        """Remove several jobs; False if at least one did not exist."""
        all_found = True
        with self._unit_of_work("remove_jobs", cancel) as uow:
            for key in keys:
                row = uow.repo.job(key)
                if row is None:
                    all_found = False
                    continue
                uow.repo.remove_job(row)
        return all_found

    def retrieve_job(self, key: JobKey) -> JobDetail | None:
        with self._unit_of_work("retrieve_job") as uow:
            row = uow.repo.job(key)
            return job_from_row(row) if row is not None else None

    def check_job_exists(self, key: JobKey) -> bool:
        with self._unit_of_work("check_job_exists") as uow:
            return uow.repo.job(key) is not None

    def resolve_job_class(self, job: JobDetail | str) -> type:
        name = job.job_type if isinstance(job, JobDetail) else job
        return self.job_type_resolver.resolve(name)

    # ── Triggers ─────────────────────────────────────────────────

    def _store_trigger(self, uow: _UnitOfWork, trigger: Trigger, replace_existing: bool) -> None:
        repo = uow.repo
        existing = repo.trigger(trigger.key)
        if existing is not None and not replace_existing:
            raise ObjectAlreadyExistsError("trigger", str(trigger.key)).with_context(
                trigger_key=str(trigger.key)
            )
        if repo.job(trigger.job_key) is None:
            raise DanglingReferenceError(str(trigger.key), str(trigger.job_key)).with_context(
                scheduler_name=self.instance_name
            )

        self.registry.validate(trigger)
        record = repo.record()
        if trigger.next_fire_time is None and trigger.previous_fire_time is None:
            trigger = replace(trigger)
            self.registry.for_trigger(trigger).compute_first_fire_time(
                trigger, record.calendar(trigger.calendar_name)
            )

        state = repo.initial_state(trigger, record)
        if existing is not None:
            previous_job = JobKey(existing.job_name, existing.job_group)
            apply_trigger(existing, trigger)
            existing.state = state.value
            if previous_job != trigger.job_key:
                deleted_job = repo.release_job(previous_job, trigger.key)
                if deleted_job is not None:
                    uow.signals.job_deleted(deleted_job)
        else:
            repo.session.add(trigger_to_row(trigger, self.instance_name, state))
        logger.debug(
            "trigger_stored",
            scheduler=self.instance_name,
            trigger_key=str(trigger.key),
            state=state.value,
            next_fire_time=trigger.next_fire_time.isoformat() if trigger.next_fire_time else None,
        )

    def store_trigger(
        self,
        trigger: Trigger,
        replace_existing: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        """Store a trigger.

        A trigger that has neither a next nor a previous fire time gets its
        first fire time computed by its schedule capability.

        Raises:
            ObjectAlreadyExistsError: key taken and ``replace_existing`` is False
            DanglingReferenceError: the referenced job does not exist
        """
        with self._unit_of_work("store_trigger", cancel) as uow:
            self._store_trigger(uow, trigger, replace_existing)

    def remove_trigger(self, key: TriggerKey, cancel: threading.Event | None = None) -> bool:
        """Remove a trigger; its job goes too if it is non-durable and now orphaned."""
        with self._unit_of_work("remove_trigger", cancel) as uow:
            row = uow.repo.trigger(key)
            if row is None:
                return False
            deleted_job = uow.repo.remove_trigger(row)
            if deleted_job is not None:
                uow.signals.job_deleted(deleted_job)
            return True

    def remove_triggers(
        self, keys: Iterable[TriggerKey], cancel: threading.Event | None = None
    ) -> bool:
        all_found = True
        with self._unit_of_work("remove_triggers", cancel) as uow:
            for key in keys:
                row = uow.repo.trigger(key)
                if row is None:
                    all_found = False
                    continue
                deleted_job = uow.repo.remove_trigger(row)
                if deleted_job is not None:
                    uow.signals.job_deleted(deleted_job)
        return all_found

    def replace_trigger(
        self,
        key: TriggerKey,
        new_trigger: Trigger,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Swap the trigger stored under ``key`` for ``new_trigger``.

        The new trigger must belong to the same job.  The job is never
        cascade-deleted in between.
        """
        with self._unit_of_work("replace_trigger", cancel) as uow:
            row = uow.repo.trigger(key)
            if row is None:
                return False
            old_job_key = JobKey(row.job_name, row.job_group)
            if new_trigger.job_key != old_job_key:
                raise ScheduleError(
                    "New trigger is not related to the same job as the old trigger."
                ).with_context(trigger_key=str(key), job_key=str(old_job_key))
            uow.repo.session.delete(row)
            uow.repo.session.flush()
            self._store_trigger(uow, new_trigger, replace_existing=False)
            return True

    def retrieve_trigger(self, key: TriggerKey) -> Trigger | None:
        with self._unit_of_work("retrieve_trigger") as uow:
            row = uow.repo.trigger(key)
            return trigger_from_row(row) if row is not None else None

    def check_trigger_exists(self, key: TriggerKey) -> bool:
        with self._unit_of_work("check_trigger_exists") as uow:
            return uow.repo.trigger(key) is not None

    def get_trigger_state(self, key: TriggerKey) -> TriggerStatus:
        with self._unit_of_work("get_trigger_state") as uow:
            row = uow.repo.trigger(key)
            return TriggerStatus.from_state(TriggerState(row.state) if row is not None else None)

    def get_triggers_for_job(self, key: JobKey) -> list[Trigger]:
        with self._unit_of_work("get_triggers_for_job") as uow:
            return [trigger_from_row(row) for row in uow.repo.triggers_for_job(key)]

    # ── Pause / resume ───────────────────────────────────────────

    def pause_trigger(self, key: TriggerKey, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("pause_trigger", cancel) as uow:
            self._pausing.pause_trigger(uow.repo, key)

    def pause_triggers(
        self, matcher: GroupMatcher, cancel: threading.Event | None = None
    ) -> set[str]:
        with self._unit_of_work("pause_triggers", cancel) as uow:
            return self._pausing.pause_triggers(uow.repo, matcher)

    def pause_job(self, key: JobKey, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("pause_job", cancel) as uow:
            self._pausing.pause_job(uow.repo, key)

    def pause_jobs(self, matcher: GroupMatcher, cancel: threading.Event | None = None) -> set[str]:
        with self._unit_of_work("pause_jobs", cancel) as uow:
            return self._pausing.pause_jobs(uow.repo, matcher)

    def pause_all(self, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("pause_all", cancel) as uow:
            self._pausing.pause_all(uow.repo)

    def resume_trigger(self, key: TriggerKey, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("resume_trigger", cancel) as uow:
            self._pausing.resume_trigger(uow.repo, key, uow.signals, uow.now)

    def resume_triggers(
        self, matcher: GroupMatcher, cancel: threading.Event | None = None
    ) -> set[str]:
        with self._unit_of_work("resume_triggers", cancel) as uow:
            return self._pausing.resume_triggers(uow.repo, matcher, uow.signals, uow.now)

    def resume_job(self, key: JobKey, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("resume_job", cancel) as uow:
            self._pausing.resume_job(uow.repo, key, uow.signals, uow.now)

    def resume_jobs(
        self, matcher: GroupMatcher, cancel: threading.Event | None = None
    ) -> set[str]:
        with self._unit_of_work("resume_jobs", cancel) as uow:
            return self._pausing.resume_jobs(uow.repo, matcher, uow.signals, uow.now)

    def resume_all(self, cancel: threading.Event | None = None) -> None:
        with self._unit_of_work("resume_all", cancel) as uow:
            self._pausing.resume_all(uow.repo, uow.signals, uow.now)

    def get_paused_trigger_groups(self) -> set[str]:
        with self._unit_of_work("get_paused_trigger_groups") as uow:
            return uow.repo.paused_trigger_groups()

    def is_trigger_group_paused(self, group: str) -> bool:
        with self._unit_of_work("is_trigger_group_paused") as uow:
            return uow.repo.is_trigger_group_paused(group)

    def is_job_group_paused(self, group: str) -> bool:
        with self._unit_of_work("is_job_group_paused") as uow:
            return uow.repo.record_exists() and uow.repo.record().is_job_group_paused(group)

    # ── Firing ───────────────────────────────────────────────────

    def acquire_next_triggers(
        self,
        no_later_than: datetime,
        max_count: int = 1,
        time_window: timedelta = timedelta(0),
        cancel: threading.Event | None = None,
    ) -> list[Trigger]:
        """Reserve up to ``max_count`` triggers due by ``no_later_than + time_window``.

        Triggers come back ordered by fire time, then by descending priority,
        each in state ACQUIRED with a fresh ``fire_instance_id``.
        """
        if max_count <= 0:
            return []
        with self._unit_of_work("acquire_next_triggers", cancel) as uow:
            return self._acquisition.acquire(
                uow.repo,
                uow.signals,
                no_later_than,
                max_count,
                time_window,
                uow.now,
                checkpoint=uow.checkpoint,
            )

    def release_acquired_trigger(
        self, trigger: Trigger, cancel: threading.Event | None = None
    ) -> None:
        with self._unit_of_work("release_acquired_trigger", cancel) as uow:
            row = uow.repo.trigger(trigger.key)
            if row is not None and row.state == TriggerState.ACQUIRED.value:
                row.state = TriggerState.WAITING.value

    def triggers_fired(
        self, triggers: Sequence[Trigger], cancel: threading.Event | None = None
    ) -> list[TriggerFiredResult]:
        with self._unit_of_work("triggers_fired", cancel) as uow:
            return self._firing.fire(
                uow.repo, uow.signals, list(triggers), uow.now, checkpoint=uow.checkpoint
            )

    def triggered_job_complete(
        self,
        trigger: Trigger,
        job_detail: JobDetail,
        instruction: CompletedExecutionInstruction | str,
        cancel: threading.Event | None = None,
    ) -> None:
        instruction = CompletedExecutionInstruction(instruction)
        with self._unit_of_work("triggered_job_complete", cancel) as uow:
            self._completion.complete(uow.repo, uow.signals, trigger, job_detail, instruction)

    # ── Calendars ────────────────────────────────────────────────

    def store_calendar(
        self,
        name: str,
        calendar: Calendar,
        replace_existing: bool = False,
        update_triggers: bool = False,
        cancel: threading.Event | None = None,
    ) -> None:
        with self._unit_of_work("store_calendar", cancel) as uow:
            record = uow.repo.record()
            if record.has_calendar(name) and not replace_existing:
                raise ObjectAlreadyExistsError(
                    "calendar", name, f"Calendar with name '{name}' already exists."
                ).with_context(calendar_name=name)
            record.put_calendar(name, calendar)
            if not update_triggers:
                return
            stored = record.calendar(name)
            for row in uow.repo.triggers_with_calendar(name):
                trigger = trigger_from_row(row)
                self.registry.for_trigger(trigger).update_with_new_calendar(
                    trigger, stored, self.misfire_threshold, uow.now
                )
                apply_fire_times(row, trigger)

    def remove_calendar(self, name: str, cancel: threading.Event | None = None) -> bool:
        """Remove a calendar; False if unknown.

        Raises:
            JobStoreError: a trigger still references the calendar
        """
        with self._unit_of_work("remove_calendar", cancel) as uow:
            if uow.repo.triggers_with_calendar(name):
                raise JobStoreError(
                    f"Calendar '{name}' cannot be removed while triggers reference it."
                ).with_context(calendar_name=name)
            return uow.repo.record().drop_calendar(name)

    def retrieve_calendar(self, name: str) -> Calendar | None:
        with self._unit_of_work("retrieve_calendar") as uow:
            if not uow.repo.record_exists():
                return None
            return uow.repo.record().calendar(name)

    def calendar_exists(self, name: str) -> bool:
        with self._unit_of_work("calendar_exists") as uow:
            return uow.repo.record_exists() and uow.repo.record().has_calendar(name)

    def get_calendar_names(self) -> list[str]:
        with self._unit_of_work("get_calendar_names") as uow:
            if not uow.repo.record_exists():
                return []
            return uow.repo.record().calendar_names

    # ── Lookups ──────────────────────────────────────────────────

    def get_job_keys(self, matcher: GroupMatcher) -> set[JobKey]:
        with self._unit_of_work("get_job_keys") as uow:
            return {
                JobKey(row.name, row.group) for row in uow.repo.jobs() if matcher.matches(row.group)
            }

    def get_trigger_keys(self, matcher: GroupMatcher) -> set[TriggerKey]:
        with self._unit_of_work("get_trigger_keys") as uow:
            return {
                TriggerKey(row.name, row.group)
                for row in uow.repo.triggers()
                if matcher.matches(row.group)
            }

    def get_job_group_names(self) -> list[str]:
        with self._unit_of_work("get_job_group_names") as uow:
            return uow.repo.job_group_names()

    def get_trigger_group_names(self) -> list[str]:
        with self._unit_of_work("get_trigger_group_names") as uow:
            return uow.repo.trigger_group_names()

    def get_number_of_jobs(self) -> int:
        with self._unit_of_work("get_number_of_jobs") as uow:
            return uow.repo.count_jobs()

    def get_number_of_triggers(self) -> int:
        with self._unit_of_work("get_number_of_triggers") as uow:
            return uow.repo.count_triggers()

    def get_number_of_calendars(self) -> int:
        return len(self.get_calendar_names())

    def clear_all_scheduling_data(self, cancel: threading.Event | None = None) -> None:
        """Delete every trigger, job and calendar of this scheduler."""
        with self._unit_of_work("clear_all_scheduling_data", cancel) as uow:
            repo = uow.repo
            for row in repo.triggers():
                repo.session.delete(row)
            for row in repo.jobs():
                repo.session.delete(row)
            record = repo.record()
            record.clear_calendars()
            record.clear_blocked_jobs()
            record.resume_job_groups(record.paused_job_groups)
        logger.warning("scheduling_data_cleared", scheduler=self.instance_name)


__all__ = ["JobStore"]
