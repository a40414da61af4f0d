"""Collaborator protocols consumed by the job store.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB STORE COLLABORATORS                                                      │
│                                                                               │
│  The store owns persistence and the trigger state machine.  Everything that  │
│  depends on the host scheduler is reached through a protocol:                │
│                                                                               │
│   ┌──────────────────┐  fire-time math   ┌──────────────────────────┐        │
│   │  JobStore        │ ────────────────► │  ScheduleCapability      │        │
│   │                  │                   │  (one per schedule kind) │        │
│   │  - acquire       │  signals          ├──────────────────────────┤        │
│   │  - fire          │ ────────────────► │  SchedulerSignaler       │        │
│   │  - complete      │                   ├──────────────────────────┤        │
│   │  - recover       │  job classes      │  JobTypeResolver         │        │
│   │                  │ ────────────────► │                          │        │
│   └──────────────────┘                   └──────────────────────────┘        │
│                                                                               │
│  Signals are delivered only after the unit of work that raised them has      │
│  committed.  A failing callback is reported through ``listener_error``.      │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import importlib
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from jobstore.core.logging import get_logger

if TYPE_CHECKING:
    from jobstore.scheduling.calendars import Calendar
    from jobstore.scheduling.models import JobKey, Trigger

logger = get_logger(__name__)


@runtime_checkable
class ScheduleCapability(Protocol):
    """Fire-time arithmetic for one schedule kind.

    Every method mutates the passed trigger in place (``next_fire_time``,
    ``previous_fire_time``, ``times_triggered``) and the store persists the
    result.
    """

    kind: str

    def compute_first_fire_time(
        self, trigger: Trigger, calendar: Calendar | None
    ) -> datetime | None:
        """Set and return the first fire time at or after ``trigger.start_time``."""
        ...

    def update_after_misfire(
        self, trigger: Trigger, calendar: Calendar | None, now: datetime
    ) -> None:
        """Advance a misfired trigger according to its misfire instruction."""
        ...

    def triggered(self, trigger: Trigger, calendar: Calendar | None) -> None:
        """Record one firing: previous <- next, next <- following fire time."""
        ...

    def update_with_new_calendar(
        self,
        trigger: Trigger,
        calendar: Calendar | None,
        misfire_threshold: timedelta,
        now: datetime,
    ) -> None:
        """Recompute the next fire time after the trigger's calendar changed."""
        ...


@runtime_checkable
class SchedulerSignaler(Protocol):
    """Callbacks into the host scheduler."""

    def misfired(self, trigger: Trigger) -> None: ...

    def finalized(self, trigger: Trigger) -> None: ...

    def scheduling_changed(self, candidate_new_next_fire_time: datetime | None) -> None: ...

    def job_deleted(self, job_key: JobKey) -> None: ...

    def listener_error(self, message: str, error: BaseException) -> None: ...


@runtime_checkable
class JobTypeResolver(Protocol):
    """Maps job classes to the strings stored in ``JobDetail.job_type``."""

    def name_of(self, job_type: type) -> str: ...

    def resolve(self, name: str) -> type: ...


class LoggingSignaler:
    """Default signaler: every signal becomes a structured log event."""

    def misfired(self, trigger: Trigger) -> None:
        logger.info("trigger_misfired", trigger_key=str(trigger.key))

    def finalized(self, trigger: Trigger) -> None:
        logger.info("trigger_finalized", trigger_key=str(trigger.key))

    def scheduling_changed(self, candidate_new_next_fire_time: datetime | None) -> None:
        logger.debug(
            "scheduling_changed",
            candidate_next_fire_time=(
                candidate_new_next_fire_time.isoformat() if candidate_new_next_fire_time else None
            ),
        )

    def job_deleted(self, job_key: JobKey) -> None:
        logger.info("job_deleted", job_key=str(job_key))

    def listener_error(self, message: str, error: BaseException) -> None:
        logger.error("listener_error", detail=message, error=str(error), exc_info=error)


class PendingSignals:
    """Signaler that records calls so they can be delivered after commit.

    A unit of work hands this to its components in place of the host's
    signaler; ``deliver`` replays the calls once the transaction commits
    and ``discard`` drops them on rollback.
    """

    def __init__(self) -> None:
        self._calls: list[tuple[str, tuple[Any, ...]]] = []

    def __len__(self) -> int:
        return len(self._calls)

    def misfired(self, trigger: Trigger) -> None:
        self._calls.append(("misfired", (trigger,)))

    def finalized(self, trigger: Trigger) -> None:
        self._calls.append(("finalized", (trigger,)))

    def scheduling_changed(self, candidate_new_next_fire_time: datetime | None) -> None:
        self._calls.append(("scheduling_changed", (candidate_new_next_fire_time,)))

    def job_deleted(self, job_key: JobKey) -> None:
        self._calls.append(("job_deleted", (job_key,)))

    def listener_error(self, message: str, error: BaseException) -> None:
        self._calls.append(("listener_error", (message, error)))

    def discard(self) -> None:
        self._calls.clear()

    def deliver(self, signaler: SchedulerSignaler) -> None:
        calls, self._calls = self._calls, []
        for name, args in calls:
            try:
                getattr(signaler, name)(*args)
            except Exception as exc:
                logger.warning("signal_delivery_failed", signal=name, error=str(exc))
                if name == "listener_error":
                    continue
                try:
                    signaler.listener_error(f"Signal {name!r} raised", exc)
                except Exception:
                    logger.exception("listener_error_failed", signal=name)


class ImportJobTypeResolver:
    """Resolves ``"package.module:QualName"`` strings by importing the module."""

    def name_of(self, job_type: type) -> str:
        return f"{job_type.__module__}:{job_type.__qualname__}"

    def resolve(self, name: str) -> type:
        module_name, _, qualname = name.partition(":")
        if not qualname:
            module_name, _, qualname = name.rpartition(".")
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
        return target


__all__ = [
    "ScheduleCapability",
    "SchedulerSignaler",
    "JobTypeResolver",
    "LoggingSignaler",
    "PendingSignals",
    "ImportJobTypeResolver",
]
