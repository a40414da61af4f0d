"""Tests for storing, retrieving and removing jobs, triggers and calendars."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from jobstore.core.errors import (
    DanglingReferenceError,
    ErrorCategory,
    JobStoreError,
    ObjectAlreadyExistsError,
    ScheduleError,
)
from jobstore.scheduling import (
    Calendar,
    CronSchedule,
    GroupMatcher,
    JobKey,
    Trigger,
    TriggerKey,
    TriggerStatus,
)

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


class TestJobs:
    def test_store_and_retrieve(self, store, make_job):
        job = make_job("report", "nightly", durable=True, job_data={"region": "eu"})
        store.store_job(job)
        assert store.retrieve_job(job.key) == job
        assert store.check_job_exists(job.key)

    def test_missing_job_is_none(self, store):
        assert store.retrieve_job(JobKey("nope")) is None
        assert not store.check_job_exists(JobKey("nope"))

    def test_duplicate_job(self, store, make_job):
        store.store_job(make_job())
        with pytest.raises(ObjectAlreadyExistsError) as exc_info:
            store.store_job(make_job())
        assert exc_info.value.category is ErrorCategory.DUPLICATE_KEY
        assert exc_info.value.kind == "job"

    def test_replace_job(self, store, make_job):
        store.store_job(make_job(description="old"))
        store.store_job(make_job(description="new"), replace_existing=True)
        assert store.retrieve_job(JobKey("job")).description == "new"

    def test_remove_job_removes_its_triggers(self, store, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job(job)
        store.store_trigger(make_trigger("t1", job))
        store.store_trigger(make_trigger("t2", job))
        assert store.remove_job(job.key)
        assert store.get_number_of_triggers() == 0
        assert not store.check_job_exists(job.key)
        assert not store.remove_job(job.key)

    def test_remove_jobs_reports_missing(self, store, make_job):
        store.store_job(make_job("a", durable=True))
        assert not store.remove_jobs([JobKey("a"), JobKey("b")])
        assert store.get_number_of_jobs() == 0

    def test_resolve_job_class(self, store, make_job):
        job = make_job(job_type="jobstore.scheduling.calendars:Calendar")
        assert store.resolve_job_class(job) is Calendar


class TestTriggers:
    def test_store_and_retrieve(self, store, make_job, make_trigger):
        job = make_job()
        trigger = make_trigger("t", job, priority=7, description="every day")
        store.store_job_and_trigger(job, trigger)
        stored = store.retrieve_trigger(trigger.key)
        assert stored.key == trigger.key
        assert stored.job_key == job.key
        assert stored.priority == 7
        assert stored.next_fire_time == T0
        assert store.get_trigger_state(trigger.key) is TriggerStatus.NORMAL

    def test_first_fire_time_is_computed(self, store, make_job):
        job = make_job()
        trigger = Trigger(
            key=TriggerKey("hourly"),
            job_key=job.key,
            schedule=CronSchedule("0 * * * *"),
            start_time=T0 + timedelta(minutes=1),
        )
        store.store_job_and_trigger(job, trigger)
        assert trigger.next_fire_time is None
        assert store.retrieve_trigger(trigger.key).next_fire_time == T0 + timedelta(hours=1)

    def test_explicit_next_fire_time_is_kept(self, store, make_job, make_trigger):
        job = make_job()
        trigger = make_trigger("t", job, next_fire_time=T0 + timedelta(days=1))
        store.store_job_and_trigger(job, trigger)
        assert store.retrieve_trigger(trigger.key).next_fire_time == T0 + timedelta(days=1)

    def test_dangling_reference(self, store, make_trigger):
        with pytest.raises(DanglingReferenceError) as exc_info:
            store.store_trigger(make_trigger("t", JobKey("ghost")))
        assert exc_info.value.category is ErrorCategory.REFERENCE
        assert store.get_number_of_triggers() == 0

    def test_duplicate_trigger(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        with pytest.raises(ObjectAlreadyExistsError):
            store.store_trigger(make_trigger("t", job))
        store.store_trigger(make_trigger("t", job, priority=1), replace_existing=True)
        assert store.retrieve_trigger(TriggerKey("t")).priority == 1

    def test_invalid_schedule_is_rejected(self, store, make_job):
        job = make_job()
        store.store_job(job)
        bad = Trigger(key=TriggerKey("bad"), job_key=job.key, schedule=CronSchedule("nope"))
        with pytest.raises(ScheduleError):
            store.store_trigger(bad)

    def test_missing_trigger(self, store):
        assert store.retrieve_trigger(TriggerKey("nope")) is None
        assert store.get_trigger_state(TriggerKey("nope")) is TriggerStatus.NONE
        assert not store.remove_trigger(TriggerKey("nope"))

    def test_triggers_for_job(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("a", job))
        store.store_trigger(make_trigger("b", job))
        keys = [t.key for t in store.get_triggers_for_job(job.key)]
        assert keys == [TriggerKey("a"), TriggerKey("b")]


class TestCascadingDelete:
    def test_last_trigger_takes_non_durable_job(self, store, signaler, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        assert store.remove_trigger(TriggerKey("t"))
        assert not store.check_job_exists(job.key)
        assert signaler.of("job_deleted") == [job.key]

    def test_durable_job_survives(self, store, signaler, make_job, make_trigger):
        job = make_job(durable=True)
        store.store_job_and_trigger(job, make_trigger("t", job))
        store.remove_trigger(TriggerKey("t"))
        assert store.check_job_exists(job.key)
        assert signaler.of("job_deleted") == []

    def test_sibling_keeps_job(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("a", job))
        store.store_trigger(make_trigger("b", job))
        store.remove_trigger(TriggerKey("a"))
        assert store.check_job_exists(job.key)
        store.remove_trigger(TriggerKey("b"))
        assert not store.check_job_exists(job.key)

    def test_remove_triggers_cascades_once(self, store, signaler, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("a", job))
        store.store_trigger(make_trigger("b", job))
        assert store.remove_triggers([TriggerKey("a"), TriggerKey("b")])
        assert not store.check_job_exists(job.key)
        assert signaler.of("job_deleted") == [job.key]

    def test_remove_triggers_keeps_job_with_a_remaining_trigger(
        self, store, signaler, make_job, make_trigger
    ):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("a", job))
        store.store_trigger(make_trigger("b", job))
        store.store_trigger(make_trigger("c", job))
        assert store.remove_triggers([TriggerKey("b"), TriggerKey("a")])
        assert store.check_job_exists(job.key)
        assert signaler.of("job_deleted") == []

    def test_restoring_trigger_on_other_job_takes_orphan(
        self, store, signaler, make_job, make_trigger
    ):
        old, new = make_job("old"), make_job("new", durable=True)
        store.store_job_and_trigger(old, make_trigger("t", old))
        store.store_job(new)
        store.store_trigger(make_trigger("t", new), replace_existing=True)
        assert not store.check_job_exists(old.key)
        assert signaler.of("job_deleted") == [old.key]
        assert store.retrieve_trigger(TriggerKey("t")).job_key == new.key

    def test_restoring_trigger_keeps_job_with_siblings(
        self, store, signaler, make_job, make_trigger
    ):
        old, new = make_job("old"), make_job("new", durable=True)
        store.store_job_and_trigger(old, make_trigger("t", old))
        store.store_trigger(make_trigger("u", old))
        store.store_job(new)
        store.store_trigger(make_trigger("t", new), replace_existing=True)
        assert [t.key for t in store.get_triggers_for_job(old.key)] == [TriggerKey("u")]
        assert signaler.of("job_deleted") == []

    def test_restoring_trigger_keeps_durable_job(self, store, make_job, make_trigger):
        old, new = make_job("old", durable=True), make_job("new")
        store.store_job_and_trigger(old, make_trigger("t", old))
        store.store_job(new)
        store.store_trigger(make_trigger("t", new), replace_existing=True)
        assert store.check_job_exists(old.key)
        assert store.get_triggers_for_job(old.key) == []


class TestReplaceTrigger:
    def test_replace_keeps_non_durable_job(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("old", job))
        assert store.replace_trigger(TriggerKey("old"), make_trigger("new", job, priority=9))
        assert store.check_job_exists(job.key)
        assert store.retrieve_trigger(TriggerKey("old")) is None
        assert store.retrieve_trigger(TriggerKey("new")).priority == 9

    def test_replace_missing(self, store, make_job, make_trigger):
        assert not store.replace_trigger(TriggerKey("old"), make_trigger("new", make_job()))

    def test_replace_with_other_job(self, store, make_job, make_trigger):
        job, other = make_job("a"), make_job("b", durable=True)
        store.store_job_and_trigger(job, make_trigger("old", job))
        store.store_job(other)
        with pytest.raises(ScheduleError):
            store.replace_trigger(TriggerKey("old"), make_trigger("new", other))
        assert store.check_trigger_exists(TriggerKey("old"))


class TestBulkStore:
    def test_store_jobs_and_triggers(self, store, make_job, make_trigger):
        a, b = make_job("a"), make_job("b")
        store.store_jobs_and_triggers(
            [(a, [make_trigger("a1", a), make_trigger("a2", a)]), (b, [make_trigger("b1", b)])]
        )
        assert store.get_number_of_jobs() == 2
        assert store.get_number_of_triggers() == 3

    def test_conflict_writes_nothing(self, store, make_job, make_trigger):
        a, b = make_job("a"), make_job("b", durable=True)
        store.store_job(b)
        with pytest.raises(ObjectAlreadyExistsError):
            store.store_jobs_and_triggers([(a, [make_trigger("a1", a)]), (b, [])])
        assert not store.check_job_exists(a.key)
        assert store.get_number_of_triggers() == 0

    @pytest.mark.parametrize("kind", ["job", "trigger"])
    def test_duplicate_within_batch(self, store, make_job, make_trigger, kind):
        a, b = make_job("a"), make_job("b")
        if kind == "job":
            batch = [(a, [make_trigger("a1", a)]), (a, [make_trigger("a2", a)])]
        else:
            batch = [(a, [make_trigger("t", a)]), (b, [make_trigger("t", b)])]
        with pytest.raises(ObjectAlreadyExistsError) as exc_info:
            store.store_jobs_and_triggers(batch)
        assert exc_info.value.kind == kind
        assert store.get_number_of_jobs() == 0
        assert store.get_number_of_triggers() == 0

    def test_replace_overwrites(self, store, make_job, make_trigger):
        a = make_job("a")
        store.store_job_and_trigger(a, make_trigger("a1", a))
        store.store_jobs_and_triggers(
            [(make_job("a", description="v2"), [make_trigger("a1", a, priority=2)])],
            replace=True,
        )
        assert store.retrieve_job(a.key).description == "v2"
        assert store.retrieve_trigger(TriggerKey("a1")).priority == 2

    def test_job_and_trigger_is_atomic(self, store, make_job, make_trigger):
        job = make_job()
        with pytest.raises(DanglingReferenceError):
            store.store_job_and_trigger(job, make_trigger("t", JobKey("other")))
        assert not store.check_job_exists(job.key)


class TestCalendars:
    def test_crud(self, store):
        cal = Calendar(description="holidays", excluded_dates={date(2026, 12, 25)})
        store.store_calendar("holidays", cal)
        assert store.calendar_exists("holidays")
        assert store.retrieve_calendar("holidays") == cal
        assert store.get_calendar_names() == ["holidays"]
        assert store.get_number_of_calendars() == 1
        assert store.remove_calendar("holidays")
        assert not store.remove_calendar("holidays")
        assert store.retrieve_calendar("holidays") is None

    def test_duplicate_calendar(self, store):
        store.store_calendar("c", Calendar())
        with pytest.raises(ObjectAlreadyExistsError):
            store.store_calendar("c", Calendar())
        store.store_calendar("c", Calendar(description="v2"), replace_existing=True)
        assert store.retrieve_calendar("c").description == "v2"

    def test_stored_calendar_is_a_copy(self, store):
        cal = Calendar(excluded_weekdays={6})
        store.store_calendar("c", cal)
        cal.excluded_weekdays.add(5)
        retrieved = store.retrieve_calendar("c")
        retrieved.excluded_weekdays.add(4)
        assert store.retrieve_calendar("c").excluded_weekdays == {6}

    def test_calendar_in_use_cannot_be_removed(self, store, make_job, make_trigger):
        store.store_calendar("c", Calendar())
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job, calendar_name="c"))
        with pytest.raises(JobStoreError):
            store.remove_calendar("c")
        assert store.calendar_exists("c")

    def test_update_triggers_moves_fire_time(self, store, make_job, make_trigger):
        job = make_job()
        store.store_calendar("c", Calendar())
        store.store_job_and_trigger(
            job,
            make_trigger(
                "t",
                job,
                at=T0 + timedelta(hours=1),
                repeat_count=-1,
                interval=timedelta(hours=6),
                calendar_name="c",
            ),
        )
        store.store_calendar(
            "c",
            Calendar(excluded_dates={date(2026, 1, 5)}),
            replace_existing=True,
            update_triggers=True,
        )
        # 13:00 + 6h steps: 19:00 (excluded), 01:00 on Jan 6
        assert store.retrieve_trigger(TriggerKey("t")).next_fire_time == datetime(
            2026, 1, 6, 1, 0, tzinfo=UTC
        )

    def test_trigger_uses_calendar_for_first_fire_time(self, store, make_job):
        store.store_calendar("no-mondays", Calendar(excluded_weekdays={0}))
        job = make_job()
        trigger = Trigger(
            key=TriggerKey("daily"),
            job_key=job.key,
            schedule=CronSchedule("0 9 * * *"),
            start_time=T0 - timedelta(hours=6),
            calendar_name="no-mondays",
        )
        store.store_job_and_trigger(job, trigger)
        # Monday 09:00 is excluded; the next one is Tuesday.
        assert store.retrieve_trigger(trigger.key).next_fire_time == datetime(
            2026, 1, 6, 9, 0, tzinfo=UTC
        )


class TestLookups:
    def test_keys_groups_counts(self, store, make_job, make_trigger):
        a = make_job("a", "reports")
        b = make_job("b", "etl")
        store.store_job_and_trigger(a, make_trigger("ta", a, group="reports"))
        store.store_job_and_trigger(b, make_trigger("tb", b, group="etl"))
        assert store.get_job_group_names() == ["etl", "reports"]
        assert store.get_trigger_group_names() == ["etl", "reports"]
        assert store.get_job_keys(GroupMatcher.group_equals("etl")) == {JobKey("b", "etl")}
        assert store.get_trigger_keys(GroupMatcher.any_group()) == {
            TriggerKey("ta", "reports"),
            TriggerKey("tb", "etl"),
        }
        assert store.get_number_of_jobs() == 2
        assert store.get_number_of_triggers() == 2

    def test_instances_are_isolated(self, store, session_factory, make_job):
        from jobstore.scheduling import JobStore

        other = JobStore(session_factory, instance_name="other")
        store.store_job(make_job())
        assert other.get_number_of_jobs() == 0
        assert other.retrieve_job(JobKey("job")) is None

    def test_clear_all_scheduling_data(self, store, make_job, make_trigger):
        job = make_job()
        store.store_job_and_trigger(job, make_trigger("t", job))
        store.store_calendar("c", Calendar())
        store.pause_jobs(GroupMatcher.group_equals("paused"))
        store.clear_all_scheduling_data()
        assert store.get_number_of_jobs() == 0
        assert store.get_number_of_triggers() == 0
        assert store.get_calendar_names() == []
        assert not store.is_job_group_paused("paused")
