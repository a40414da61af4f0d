"""Acquisition engine: select and reserve the triggers that are due.

┌──────────────────────────────────────────────────────────────────────────────┐
│  acquire(no_later_than, max_count, time_window)                               │
│                                                                               │
│   WAITING rows with ticks <= no_later_than + time_window                      │
│        │                                                                      │
│        ▼                                                                      │
│   heap keyed by (next_fire_time_ticks, -priority, name, group)                │
│        │  pop                                                                 │
│        ├── no fire time ─────────────────────────────► drop                  │
│        ├── misfired, still has a fire time ──────────► push back             │
│        ├── misfired, finalized ──────────────────────► drop                  │
│        ├── beyond the window ────────────────────────► stop                  │
│        ├── non-concurrent job already claimed ───────► skip (stays WAITING)  │
│        └── else ─────────────────────────────────────► ACQUIRED + fire id    │
│                                                                               │
│  All row changes are flushed by the caller's single commit.                   │
└──────────────────────────────────────────────────────────────────────────────┘

Correctness across scheduler instances rests on the state discipline (an
ACQUIRED row is never selected again) and on the row version check: two
instances acquiring the same row race on the UPDATE and the loser's flush
raises ``StaleDataError``.
"""

from __future__ import annotations

import heapq
import threading
import time
from datetime import datetime, timedelta

from jobstore.core.logging import get_logger
from jobstore.core.orm.tables import TriggerTable
from jobstore.core.timestamps import ensure_utc, to_ticks
from jobstore.scheduling.misfire import MisfireResolver
from jobstore.scheduling.models import JobKey, Trigger, TriggerState
from jobstore.scheduling.protocol import SchedulerSignaler
from jobstore.scheduling.repository import JobStoreRepository
from jobstore.scheduling.serialization import trigger_from_row

logger = get_logger(__name__)


class FireInstanceIdGenerator:
    """Monotonically increasing fire-instance ids, safe across threads.

    Seeded from the wall clock so ids keep increasing across restarts.
    """

    def __init__(self, seed: int | None = None):
        self._value = time.time_ns() if seed is None else seed
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            self._value += 1
            return str(self._value)


_default_ids = FireInstanceIdGenerator()


def _entry(row: TriggerTable) -> tuple[int, int, str, str, TriggerTable]:
    return (row.next_fire_time_ticks, -row.priority, row.name, row.group, row)


class AcquisitionEngine:
    def __init__(
        self,
        misfire: MisfireResolver,
        ids: FireInstanceIdGenerator | None = None,
    ):
        self.misfire = misfire
        self.ids = ids or _default_ids

    def acquire(
        self,
        repo: JobStoreRepository,
        signaler: SchedulerSignaler,
        no_later_than: datetime,
        max_count: int,
        time_window: timedelta,
        now: datetime,
        checkpoint=None,
    ) -> list[Trigger]:
        """Transition up to ``max_count`` due triggers to ACQUIRED.

        ``checkpoint`` is called before each candidate; it raises to abort
        the unit of work (cancellation).
        """
        if max_count <= 0:
            return []

        window_end = ensure_utc(no_later_than) + time_window
        max_ticks = to_ticks(window_end)
        heap = [_entry(row) for row in repo.due_triggers(max_ticks)]
        heapq.heapify(heap)

        claimed_jobs: set[JobKey] = set()
        acquired: list[Trigger] = []

        while heap:
            if checkpoint is not None:
                checkpoint()
            row = heapq.heappop(heap)[-1]
            if row.next_fire_time is None:
                continue

            if self.misfire.apply(repo, row, signaler, now):
                if row.next_fire_time is not None:
                    heapq.heappush(heap, _entry(row))
                continue

            if row.next_fire_time_ticks > max_ticks:
                break

            job_key = JobKey(row.job_name, row.job_group)
            job = repo.job(job_key)
            if job is None:
                logger.warning(
                    "trigger_job_missing",
                    scheduler=repo.scheduler_name,
                    trigger_key=f"{row.group}.{row.name}",
                    job_key=str(job_key),
                )
                continue
            if job.concurrent_execution_disallowed:
                if job_key in claimed_jobs:
                    continue
                claimed_jobs.add(job_key)

            row.state = TriggerState.ACQUIRED.value
            row.fire_instance_id = self.ids.next_id()
            acquired.append(trigger_from_row(row))
            logger.debug(
                "trigger_acquired",
                scheduler=repo.scheduler_name,
                trigger_key=f"{row.group}.{row.name}",
                fire_instance_id=row.fire_instance_id,
            )
            if len(acquired) == max_count:
                break

        return acquired


__all__ = ["AcquisitionEngine", "FireInstanceIdGenerator"]
