"""Pytest fixtures for job store tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from jobstore.core.orm.session import create_schema, jobstore_session_factory
from jobstore.scheduling import (
    FireInstanceIdGenerator,
    JobDetail,
    JobKey,
    JobStore,
    SimpleSchedule,
    Trigger,
    TriggerKey,
)

# Monday, 2026-01-05 12:00 UTC
T0 = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSignaler:
    """Signaler that records every callback; optionally fails on one of them."""

    def __init__(self, fail_on: str | None = None):
        self.calls: list[tuple[str, object]] = []
        self.fail_on = fail_on

    def _record(self, name: str, arg: object) -> None:
        self.calls.append((name, arg))
        if name == self.fail_on:
            raise RuntimeError(f"{name} listener failed")

    def misfired(self, trigger):
        self._record("misfired", trigger)

    def finalized(self, trigger):
        self._record("finalized", trigger)

    def scheduling_changed(self, candidate_new_next_fire_time):
        self._record("scheduling_changed", candidate_new_next_fire_time)

    def job_deleted(self, job_key):
        self._record("job_deleted", job_key)

    def listener_error(self, message, error):
        self._record("listener_error", error)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def of(self, name: str) -> list[object]:
        return [arg for call, arg in self.calls if call == name]


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return jobstore_session_factory(engine)


@pytest.fixture
def clock():
    """Frozen clock starting at T0."""
    return FrozenClock(T0)


@pytest.fixture
def signaler():
    return RecordingSignaler()


@pytest.fixture
def store(session_factory, clock, signaler):
    """JobStore with a 5 second misfire threshold and a frozen clock."""
    return JobStore(
        session_factory,
        instance_name="test",
        misfire_threshold=timedelta(seconds=5),
        signaler=signaler,
        clock=clock,
        fire_instance_ids=FireInstanceIdGenerator(seed=1000),
    )


@pytest.fixture
def make_job():
    """Factory for JobDetail objects."""

    def _make(name: str = "job", group: str = "DEFAULT", **kwargs) -> JobDetail:
        kwargs.setdefault("job_type", "tests.jobs:NoOpJob")
        return JobDetail(key=JobKey(name, group), **kwargs)

    return _make


@pytest.fixture
def make_trigger():
    """Factory for simple-schedule triggers.

    ``at`` is both the start time and the first fire time.
    """

    def _make(
        name: str,
        job: JobDetail | JobKey,
        *,
        at: datetime = T0,
        group: str = "DEFAULT",
        repeat_count: int = 0,
        interval: timedelta = timedelta(0),
        **kwargs,
    ) -> Trigger:
        job_key = job.key if isinstance(job, JobDetail) else job
        return Trigger(
            key=TriggerKey(name, group),
            job_key=job_key,
            schedule=SimpleSchedule(repeat_count=repeat_count, repeat_interval=interval),
            start_time=at,
            **kwargs,
        )

    return _make
