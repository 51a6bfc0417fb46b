"""Reference-time-zone clock: wall-clock reads and calendar-day truncation.

Every metric is keyed by a calendar day in one reference time zone, so all
date handling goes through a single ``DayClock``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo


class DayClock:
    """Clock bound to a reference time zone.

    Usage::

        clock = DayClock("Europe/Berlin")
        today = clock.today()
        day = clock.day_of(task.timestamp)

    Tests inject ``now`` to pin the wall clock.
    """

    def __init__(
        self,
        time_zone: str = "UTC",
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = ZoneInfo(time_zone)
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        """Current wall-clock time in the reference zone."""
        current = self._now()
        if current.tzinfo is None:
            current = current.replace(tzinfo=self._tz)
        return current.astimezone(self._tz)

    def today(self) -> date:
        return self.now().date()

    def day_of(self, value: date | datetime) -> date:
        """Truncate a date or datetime to its calendar day in the reference zone.

        Naive datetimes are taken as reference-zone local time.
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self._tz).date()
        return value

    def is_today(self, day: date) -> bool:
        return day == self.today()

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Return the (start, end) instants of a calendar day."""
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self._tz)
        return start, end

    def minutes_since_midnight(self) -> int:
        current = self.now()
        return current.hour * 60 + current.minute
