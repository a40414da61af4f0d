"""Scheduling package: the durable job store.

Manifesto:
    A scheduler that loses its triggers on restart, or that lets two
    instances run the same non-concurrent job at once, is not a scheduler.
    This package keeps job and trigger definitions in a shared database and
    runs every trigger transition inside one database transaction, so the
    scheduler loop above it can be restarted or replicated safely.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB STORE                                                                    │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from jobstore.scheduling import (                                  │   │
│  │       JobStore, JobDetail, JobKey, Trigger, TriggerKey, CronSchedule, │   │
│  │   )                                                                  │   │
│  │                                                                      │   │
│  │   store = JobStore.from_settings()                                   │   │
│  │   store.scheduler_started()          # recovery                      │   │
│  │                                                                      │   │
│  │   job = JobDetail(JobKey("report"), "reports.jobs:DailyReport")      │   │
│  │   trigger = Trigger(TriggerKey("daily"), job.key,                    │   │
│  │                     CronSchedule("0 8 * * *"))                       │   │
│  │   store.store_job_and_trigger(job, trigger)                          │   │
│  │                                                                      │   │
│  │   due = store.acquire_next_triggers(now, max_count=10)               │   │
│  │   for result in store.triggers_fired(due):                           │   │
│  │       ...  # run result.bundle.job_detail                            │   │
│  │       store.triggered_job_complete(result.bundle.trigger,            │   │
│  │                                    result.bundle.job_detail,         │   │
│  │                                    CompletedExecutionInstruction.NOOP)│   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Flow:                                                                        │
│   acquire_next_triggers ──► triggers_fired ──► (host runs job)               │
│          │ misfire                               │                            │
│          ▼                                       ▼                            │
│   MisfireResolver                       triggered_job_complete                │
│                                                                               │
│  Tables: js_jobs · js_triggers · js_schedulers                                │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Mutating trigger state outside a JobStore call
    ✅ One JobStore call = one transaction
    ❌ Sharing a SchedulerRecord between calls
    ✅ Reload the record in every unit of work
"""

from jobstore.scheduling.acquisition import AcquisitionEngine, FireInstanceIdGenerator
from jobstore.scheduling.calendars import Calendar
from jobstore.scheduling.firing import CompletionHandler, FiredTriggerCommitter
from jobstore.scheduling.matchers import GroupMatcher, StringOperator
from jobstore.scheduling.misfire import DEFAULT_MISFIRE_THRESHOLD, MisfireResolver
from jobstore.scheduling.models import (
    DEFAULT_GROUP,
    REPEAT_INDEFINITELY,
    CalendarIntervalSchedule,
    CompletedExecutionInstruction,
    CronSchedule,
    DailyTimeIntervalSchedule,
    IntervalUnit,
    JobDetail,
    JobKey,
    MisfireInstruction,
    Schedule,
    SchedulerState,
    SimpleSchedule,
    Trigger,
    TriggerFiredBundle,
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
    ScheduleCapability,
    SchedulerSignaler,
)
from jobstore.scheduling.recovery import RecoveryProcedure, RecoveryReport
from jobstore.scheduling.repository import JobStoreRepository, SchedulerRecord
from jobstore.scheduling.schedules import (
    BaseScheduleCapability,
    CalendarIntervalCapability,
    CronCapability,
    DailyTimeIntervalCapability,
    ScheduleRegistry,
    SimpleCapability,
)
from jobstore.scheduling.store import JobStore

__all__ = [
    # Store
    "JobStore",
    # Models
    "DEFAULT_GROUP",
    "REPEAT_INDEFINITELY",
    "JobKey",
    "TriggerKey",
    "JobDetail",
    "Trigger",
    "TriggerState",
    "TriggerStatus",
    "SchedulerState",
    "MisfireInstruction",
    "CompletedExecutionInstruction",
    "IntervalUnit",
    "Schedule",
    "CronSchedule",
    "SimpleSchedule",
    "CalendarIntervalSchedule",
    "DailyTimeIntervalSchedule",
    "TriggerFiredBundle",
    "TriggerFiredResult",
    "Calendar",
    "GroupMatcher",
    "StringOperator",
    # Protocols
    "ScheduleCapability",
    "SchedulerSignaler",
    "JobTypeResolver",
    "LoggingSignaler",
    "PendingSignals",
    "ImportJobTypeResolver",
    # Schedules
    "BaseScheduleCapability",
    "CronCapability",
    "SimpleCapability",
    "CalendarIntervalCapability",
    "DailyTimeIntervalCapability",
    "ScheduleRegistry",
    # Components
    "JobStoreRepository",
    "SchedulerRecord",
    "MisfireResolver",
    "DEFAULT_MISFIRE_THRESHOLD",
    "AcquisitionEngine",
    "FireInstanceIdGenerator",
    "FiredTriggerCommitter",
    "CompletionHandler",
    "RecoveryProcedure",
    "RecoveryReport",
    "PauseController",
]
