"""Calendar-day arithmetic for the weekly timeline."""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, timedelta

from ..constants import DAYS_PER_WEEK


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def end_of_month(day: date) -> date:
    return day.replace(day=_calendar.monthrange(day.year, day.month)[1])


def add_months(day: date, months: int) -> date:
    """Shift *day* by whole months, clamping to the last day of short months."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = _calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def intervals_intersect(start: date, end: date, range_start: date, range_end: date) -> bool:
    """Inclusive interval overlap test."""
    return start <= range_end and end >= range_start


@dataclass(frozen=True)
class WeekWindow:
    """The seven visible days, anchored on ``start``."""

    start: date

    @classmethod
    def containing(cls, day: date, first_weekday: int = 0) -> "WeekWindow":
        """Week that contains *day*; ``first_weekday`` uses ``date.weekday()`` numbering (0 = Monday)."""
        offset = (day.weekday() - first_weekday) % DAYS_PER_WEEK
        return cls(start=day - timedelta(days=offset))

    @property
    def end(self) -> date:
        return self.start + timedelta(days=DAYS_PER_WEEK - 1)

    @property
    def days(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(DAYS_PER_WEEK)]

    def day_index(self, day: date) -> int:
        """Offset of *day* from the first visible day (negative before, > 6 after)."""
        return (day - self.start).days

    def contains(self, day: date) -> bool:
        return 0 <= self.day_index(day) < DAYS_PER_WEEK

    def shift(self, weeks: int) -> "WeekWindow":
        return WeekWindow(start=self.start + timedelta(weeks=weeks))
