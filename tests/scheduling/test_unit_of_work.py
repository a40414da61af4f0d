"""Tests for transactional behaviour: cancellation, conflicts, failures and signals."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from jobstore.core.errors import (
    ErrorCategory,
    JobPersistenceError,
    OperationCancelledError,
    is_retryable,
)
from jobstore.core.orm.session import (
    create_jobstore_engine,
    create_schema,
    jobstore_session_factory,
)
from jobstore.scheduling import (
    JobStore,
    JobStoreRepository,
    LoggingSignaler,
    PendingSignals,
    TriggerKey,
    TriggerState,
)

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


class CancelAfter(threading.Event):
    """Event that reports itself set after ``checks`` calls to ``is_set``."""

    def __init__(self, checks: int):
        super().__init__()
        self.remaining = checks

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def state_of(session_factory, key: TriggerKey) -> TriggerState:
    with session_factory() as session:
        return TriggerState(JobStoreRepository(session, "test").trigger(key).state)


class TestCancellation:
    def test_cancelled_before_start(self, store, make_job):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError) as exc_info:
            store.store_job(make_job(), cancel=cancel)
        assert exc_info.value.category is ErrorCategory.CANCELLED
        assert not store.check_job_exists(make_job().key)

    def test_cancelled_mid_acquisition_rolls_back(
        self, store, session_factory, make_job, make_trigger
    ):
        job = make_job(durable=True)
        store.store_job(job)
        store.store_trigger(make_trigger("a", job))
        store.store_trigger(make_trigger("b", job, at=T0 + timedelta(seconds=1)))

        with pytest.raises(OperationCancelledError):
            store.acquire_next_triggers(
                T0 + timedelta(seconds=1), max_count=2, cancel=CancelAfter(2)
            )
        assert state_of(session_factory, TriggerKey("a")) is TriggerState.WAITING
        assert state_of(session_factory, TriggerKey("b")) is TriggerState.WAITING

    def test_cancelled_before_commit(self, store, make_job):
        # One check on entry, one before commit.
        with pytest.raises(OperationCancelledError):
            store.store_job(make_job(), cancel=CancelAfter(1))
        assert not store.check_job_exists(make_job().key)

    def test_signals_dropped_on_cancel(self, store, signaler, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        with pytest.raises(OperationCancelledError):
            store.remove_trigger(TriggerKey("t"), cancel=CancelAfter(1))
        assert signaler.of("job_deleted") == []
        assert store.check_job_exists(job.key)

    def test_scheduler_started_cancel_is_not_a_config_error(self, store):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            store.scheduler_started(cancel=cancel)


class TestConflictingWrites:
    def test_stale_row_is_rejected(self, tmp_path, make_job, make_trigger):
        engine = create_jobstore_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
        create_schema(engine)
        factory = jobstore_session_factory(engine)
        store = JobStore(factory, instance_name="test")
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))

        with factory() as session:
            repo = JobStoreRepository(session, "test")
            row = repo.trigger(TriggerKey("t"))
            assert row.state == TriggerState.WAITING.value

            # Another instance pauses the trigger and commits first.
            store.pause_trigger(TriggerKey("t"))

            row.state = TriggerState.ACQUIRED.value
            with pytest.raises(StaleDataError):
                session.flush()
            session.rollback()

        assert state_of(factory, TriggerKey("t")) is TriggerState.PAUSED
        engine.dispose()


class TestPersistenceFailures:
    def test_missing_tables_surface_as_persistence_error(self):
        engine = create_engine(
            "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
        store = JobStore(jobstore_session_factory(engine), instance_name="test")
        with pytest.raises(JobPersistenceError) as exc_info:
            store.get_number_of_jobs()
        error = exc_info.value
        assert is_retryable(error)
        assert error.context.operation == "get_number_of_jobs"
        assert error.cause is not None

    def test_initialize_creates_tables(self):
        engine = create_engine(
            "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
        store = JobStore(jobstore_session_factory(engine), instance_name="test")
        signaler = LoggingSignaler()
        store.initialize(signaler=signaler)
        assert store.signaler is signaler
        assert store.get_number_of_jobs() == 0


class TestSignals:
    def test_signals_are_delivered_after_commit(self, store, signaler, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        store.remove_trigger(TriggerKey("t"))
        assert signaler.names() == ["job_deleted"]

    def test_failing_listener_does_not_undo_the_commit(
        self, session_factory, clock, make_job, make_trigger
    ):
        class ExplodingSignaler(LoggingSignaler):
            def __init__(self):
                self.errors = []

            def job_deleted(self, job_key):
                raise RuntimeError("listener down")

            def listener_error(self, message, error):
                self.errors.append(error)

        signaler = ExplodingSignaler()
        store = JobStore(session_factory, instance_name="test", clock=clock, signaler=signaler)
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        assert store.remove_trigger(TriggerKey("t"))
        assert not store.check_job_exists(job.key)
        assert [str(e) for e in signaler.errors] == ["listener down"]

    def test_pending_signals_route_failures(self):
        class Failing:
            def __init__(self):
                self.errors = []

            def job_deleted(self, job_key):
                raise RuntimeError("boom")

            def listener_error(self, message, error):
                self.errors.append((message, error))

        target = Failing()
        pending = PendingSignals()
        pending.job_deleted("k")
        pending.deliver(target)
        [(message, error)] = target.errors
        assert "job_deleted" in message
        assert isinstance(error, RuntimeError)
        assert len(pending) == 0

    def test_discard(self):
        pending = PendingSignals()
        pending.scheduling_changed(None)
        pending.discard()
        assert len(pending) == 0
