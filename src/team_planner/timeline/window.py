"""Expandable month window that decides which tasks are fetched."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from loguru import logger

from ..constants import DEFAULT_MONTHS_AHEAD, DEFAULT_MONTHS_BACK, EXPANSION_SLACK_MONTHS
from .calendar import add_months, end_of_month, intervals_intersect, start_of_month


@dataclass(frozen=True)
class LoadRange:
    """Inclusive [start, end] day range of fetched data."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"LoadRange end {self.end} is before start {self.start}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def intersects(self, start: date, end: date) -> bool:
        return intervals_intersect(start, end, self.start, self.end)

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class DateWindowManager:
    """Tracks the fetched range and grows it when the view navigates past it.

    The range only ever widens: ``start`` never moves later and ``end`` never
    moves earlier.  Every call that changes the range (or switches to
    "all loaded") invokes ``on_change`` exactly once; collapsing several such
    calls into one fetch is left to the store.
    """

    def __init__(self, load_range: LoadRange, on_change: Optional[Callable[[], Any]] = None) -> None:
        self._range = load_range
        self._all_loaded = False
        self._on_change = on_change

    @classmethod
    def initial(
        cls,
        today: date,
        months_back: int = DEFAULT_MONTHS_BACK,
        months_ahead: int = DEFAULT_MONTHS_AHEAD,
        on_change: Optional[Callable[[], Any]] = None,
    ) -> "DateWindowManager":
        start = add_months(start_of_month(today), -months_back)
        end = end_of_month(add_months(start_of_month(today), months_ahead))
        return cls(LoadRange(start, end), on_change)

    @property
    def range(self) -> LoadRange:
        return self._range

    @property
    def is_all_loaded(self) -> bool:
        return self._all_loaded

    def set_on_change(self, on_change: Optional[Callable[[], Any]]) -> None:
        self._on_change = on_change

    def expand_to_include(self, target: date) -> bool:
        """Widen the range so *target* (plus a month of slack) is fetched.

        Returns:
            True when the range changed.
        """
        if self._all_loaded:
            return False
        start, end = self._range.start, self._range.end
        if target < start:
            start = add_months(start_of_month(target), -EXPANSION_SLACK_MONTHS)
        if target > end:
            end = end_of_month(add_months(start_of_month(target), EXPANSION_SLACK_MONTHS))
        if (start, end) == (self._range.start, self._range.end):
            return False
        logger.debug("Expanding load range {} -> {}..{}", self._range.to_dict(), start, end)
        self._range = LoadRange(min(start, self._range.start), max(end, self._range.end))
        self._notify()
        return True

    def load_all(self) -> bool:
        """Switch to fetching everything; later calls are no-ops."""
        if self._all_loaded:
            return False
        self._all_loaded = True
        logger.info("Load range switched to all records")
        self._notify()
        return True

    def to_dict(self) -> dict[str, Any]:
        return {**self._range.to_dict(), "is_all_loaded": self._all_loaded}

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
