"""Tests for acquire_next_triggers / release_acquired_trigger."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from jobstore.scheduling import (
    CompletedExecutionInstruction,
    FireInstanceIdGenerator,
    JobStoreRepository,
    MisfireInstruction,
    TriggerKey,
    TriggerState,
)

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


def state_of(session_factory, key: TriggerKey, scheduler: str = "test") -> TriggerState:
    with session_factory() as session:
        return TriggerState(JobStoreRepository(session, scheduler).trigger(key).state)


@pytest.fixture
def non_concurrent_job(store, make_job, make_trigger):
    """Job J1 (non-concurrent) with triggers A (priority 5) and B (priority 1), both at T0+100s."""
    job = make_job("J1", concurrent_execution_disallowed=True)
    at = T0 + timedelta(seconds=100)
    store.store_job_and_trigger(job, make_trigger("A", job, at=at, priority=5))
    store.store_trigger(make_trigger("B", job, at=at, priority=1))
    return job


class TestOrdering:
    def test_ascending_fire_time(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        for name, minutes in (("t3", 3), ("t1", 1), ("t2", 2)):
            store.store_trigger(make_trigger(name, job, at=T0 + timedelta(minutes=minutes)))
        acquired = store.acquire_next_triggers(T0 + timedelta(minutes=5), max_count=3)
        assert [t.key.name for t in acquired] == ["t1", "t2", "t3"]

    def test_priority_breaks_ties(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        at = T0 + timedelta(minutes=1)
        store.store_trigger(make_trigger("low", job, at=at, priority=1))
        store.store_trigger(make_trigger("high", job, at=at, priority=10))
        store.store_trigger(make_trigger("mid", job, at=at, priority=5))
        acquired = store.acquire_next_triggers(at, max_count=3)
        assert [t.key.name for t in acquired] == ["high", "mid", "low"]

    def test_max_count(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        for i in range(4):
            store.store_trigger(make_trigger(f"t{i}", job, at=T0 + timedelta(seconds=i)))
        assert len(store.acquire_next_triggers(T0 + timedelta(minutes=1), max_count=2)) == 2
        assert store.acquire_next_triggers(T0, max_count=0) == []

    def test_time_window(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        store.store_trigger(make_trigger("soon", job, at=T0 + timedelta(minutes=1)))
        store.store_trigger(make_trigger("later", job, at=T0 + timedelta(minutes=3)))
        acquired = store.acquire_next_triggers(
            T0, max_count=5, time_window=timedelta(minutes=2)
        )
        assert [t.key.name for t in acquired] == ["soon"]

    def test_nothing_due(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job, at=T0 + timedelta(hours=1)))
        assert store.acquire_next_triggers(T0, max_count=1) == []


class TestReservation:
    def test_round_trip(self, store, session_factory, make_job, make_trigger):
        job = make_job()
        at = T0 + timedelta(seconds=30)
        store.store_job_and_trigger(job, make_trigger("t", job, at=at))

        [acquired] = store.acquire_next_triggers(at)
        assert state_of(session_factory, acquired.key) is TriggerState.ACQUIRED

        store.release_acquired_trigger(acquired)
        assert state_of(session_factory, acquired.key) is TriggerState.WAITING
        assert store.retrieve_trigger(acquired.key).next_fire_time == at

    def test_acquired_is_not_acquired_again(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        assert len(store.acquire_next_triggers(T0)) == 1
        assert store.acquire_next_triggers(T0) == []

    def test_second_instance_sees_the_reservation(
        self, store, session_factory, clock, make_job, make_trigger
    ):
        from jobstore.scheduling import JobStore

        other = JobStore(session_factory, instance_name="test", clock=clock)
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        assert len(store.acquire_next_triggers(T0)) == 1
        assert other.acquire_next_triggers(T0) == []

    def test_release_ignores_non_acquired(self, store, session_factory, make_job, make_trigger):
        job = make_job()
        trigger = make_trigger("t", job)
        store.store_job_and_trigger(job, trigger)
        store.pause_trigger(trigger.key)
        store.release_acquired_trigger(trigger)
        assert state_of(session_factory, trigger.key) is TriggerState.PAUSED

    def test_fire_instance_ids(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        store.store_trigger(make_trigger("a", job))
        store.store_trigger(make_trigger("b", job, at=T0 + timedelta(seconds=1)))
        acquired = store.acquire_next_triggers(T0 + timedelta(seconds=1), max_count=2)
        assert [t.fire_instance_id for t in acquired] == ["1001", "1002"]

    def test_id_generator_is_monotonic(self):
        ids = FireInstanceIdGenerator()
        first, second = int(ids.next_id()), int(ids.next_id())
        assert second == first + 1


class TestNonConcurrentExclusion:
    def test_only_one_trigger_per_call(self, store, session_factory, non_concurrent_job):
        acquired = store.acquire_next_triggers(T0 + timedelta(seconds=200), max_count=2)
        assert [t.key.name for t in acquired] == ["A"]
        assert state_of(session_factory, TriggerKey("B")) is TriggerState.WAITING

    def test_release_then_acquire_again(self, store, non_concurrent_job):
        """A released trigger keeps its fire time, so the next call returns A again.

        B is not handed out here even though a release frees the job: A is
        still the earliest due trigger. B only follows once A has fired and
        completed (see ``test_b_follows_once_a_has_run``).
        """
        no_later_than = T0 + timedelta(seconds=200)
        [a] = store.acquire_next_triggers(no_later_than, max_count=2)
        store.release_acquired_trigger(a)
        assert [t.key.name for t in store.acquire_next_triggers(no_later_than, max_count=2)] == [
            "A"
        ]

    def test_b_follows_once_a_has_run(self, store, clock, non_concurrent_job):
        no_later_than = T0 + timedelta(seconds=200)
        [a] = store.acquire_next_triggers(no_later_than, max_count=2)

        clock.advance(seconds=100)
        [result] = store.triggers_fired([a])
        bundle = result.bundle
        assert store.acquire_next_triggers(no_later_than, max_count=2) == []

        store.triggered_job_complete(
            bundle.trigger, bundle.job_detail, CompletedExecutionInstruction.NOOP
        )
        assert [t.key.name for t in store.acquire_next_triggers(no_later_than, max_count=2)] == [
            "B"
        ]

    def test_concurrent_job_yields_both(self, store, make_job, make_trigger):
        job = make_job("J2")
        at = T0 + timedelta(seconds=100)
        store.store_job_and_trigger(job, make_trigger("A", job, at=at, priority=5))
        store.store_trigger(make_trigger("B", job, at=at, priority=1))
        acquired = store.acquire_next_triggers(T0 + timedelta(seconds=200), max_count=2)
        assert [t.key.name for t in acquired] == ["A", "B"]


class TestMisfireDuringAcquisition:
    def test_smart_policy_fires_now(self, store, signaler, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("late", job, at=T0 - timedelta(minutes=1)))
        [acquired] = store.acquire_next_triggers(T0)
        assert acquired.next_fire_time == T0
        [missed] = signaler.of("misfired")
        assert missed.next_fire_time == T0 - timedelta(minutes=1)

    def test_within_threshold_is_not_a_misfire(self, store, signaler, make_job, make_trigger):
        job = make_job()
        late = T0 - timedelta(seconds=3)
        store.store_job_and_trigger(job, make_trigger("late", job, at=late))
        [acquired] = store.acquire_next_triggers(T0)
        assert acquired.next_fire_time == late
        assert signaler.of("misfired") == []

    def test_do_nothing_moves_out_of_window(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(
            job,
            make_trigger(
                "late",
                job,
                at=T0 - timedelta(minutes=1),
                repeat_count=-1,
                interval=timedelta(minutes=10),
                misfire_instruction=MisfireInstruction.DO_NOTHING,
            ),
        )
        assert store.acquire_next_triggers(T0) == []
        assert store.retrieve_trigger(TriggerKey("late")).next_fire_time == T0 + timedelta(
            minutes=9
        )

    def test_finalized_trigger_is_dropped(
        self, store, session_factory, signaler, make_job, make_trigger
    ):
        job = make_job()
        store.store_job_and_trigger(
            job,
            make_trigger(
                "once",
                job,
                at=T0 - timedelta(minutes=1),
                misfire_instruction=MisfireInstruction.DO_NOTHING,
            ),
        )
        assert store.acquire_next_triggers(T0) == []
        assert state_of(session_factory, TriggerKey("once")) is TriggerState.COMPLETE
        assert [t.key for t in signaler.of("finalized")] == [TriggerKey("once")]

    def test_ignore_policy_acquires_old_time(self, store, make_job, make_trigger):
        job = make_job()
        late = T0 - timedelta(hours=1)
        store.store_job_and_trigger(
            job,
            make_trigger(
                "late", job, at=late, misfire_instruction=MisfireInstruction.IGNORE_MISFIRE_POLICY
            ),
        )
        [acquired] = store.acquire_next_triggers(T0)
        assert acquired.next_fire_time == late
