"""Named calendars that exclude time from trigger schedules.

Calendars live inside the scheduler record as JSON.  Because every write
serializes and every read deserializes, a caller can never alias a stored
calendar; ``clone`` exists for in-process copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from jobstore.core.timestamps import ensure_utc

# A calendar that excludes every day would loop forever; give up after this.
_MAX_LOOKAHEAD_DAYS = 366 * 5


@dataclass
class Calendar:
    """Excludes whole days: specific dates and/or weekdays (0=Monday).

    Days are evaluated in ``timezone``.
    """

    description: str | None = None
    excluded_dates: set[date] = field(default_factory=set)
    excluded_weekdays: set[int] = field(default_factory=set)
    timezone: str = "UTC"

    def _local(self, when: datetime) -> datetime:
        return ensure_utc(when).astimezone(ZoneInfo(self.timezone))

    def is_time_included(self, when: datetime) -> bool:
        local = self._local(when)
        if local.weekday() in self.excluded_weekdays:
            return False
        return local.date() not in self.excluded_dates

    def get_next_included_time(self, when: datetime) -> datetime | None:
        """First instant strictly after ``when`` that this calendar includes."""
        tz = ZoneInfo(self.timezone)
        candidate = ensure_utc(when) + timedelta(microseconds=1)
        for _ in range(_MAX_LOOKAHEAD_DAYS):
            if self.is_time_included(candidate):
                return candidate
            next_day = self._local(candidate).date() + timedelta(days=1)
            candidate = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz).astimezone(
                ensure_utc(when).tzinfo
            )
        return None

    def clone(self) -> Calendar:
        return replace(
            self,
            excluded_dates=set(self.excluded_dates),
            excluded_weekdays=set(self.excluded_weekdays),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "excluded_dates": sorted(d.isoformat() for d in self.excluded_dates),
            "excluded_weekdays": sorted(self.excluded_weekdays),
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Calendar:
        return cls(
            description=data.get("description"),
            excluded_dates={date.fromisoformat(d) for d in data.get("excluded_dates", [])},
            excluded_weekdays=set(data.get("excluded_weekdays", [])),
            timezone=data.get("timezone", "UTC"),
        )
