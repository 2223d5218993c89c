"""Row packing for one owner's week.

Given the tasks of a single lane and a :class:`WeekWindow`, :func:`pack`
assigns every visible task a row so that no two tasks share a (day, row) slot
and a multi-day task keeps the same row on every day it covers.

Packing is greedy: tasks are sorted by start date (longer first on ties) and
each takes the lowest row that is free on all of its visible days.  For input
sorted this way the greedy choice already uses the minimum number of rows, so
the ``"interval"`` strategy (a heap of row end columns) produces the same grid
and only exists as the cheaper variant for very dense lanes.

The packer is a pure function.  Tasks with unusable dates are dropped without
raising; reporting them is the caller's job.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Literal, Optional

from ..constants import DAYS_PER_WEEK
from ..utils import parse_day
from .calendar import WeekWindow
from .model import Task

Strategy = Literal["first_fit", "interval"]

SlotGrid = list[list[Optional[Task]]]


@dataclass(frozen=True)
class Placement:
    """Where one task landed in the grid."""

    task: Task
    row: int
    start_col: int
    end_col: int
    continues_before: bool
    continues_after: bool

    @property
    def has_start_cap(self) -> bool:
        return not self.continues_before

    @property
    def has_end_cap(self) -> bool:
        return not self.continues_after

    @property
    def label_day(self) -> int:
        """Column that shows title and icon; never repeated on later days."""
        return self.start_col

    @property
    def days(self) -> range:
        return range(self.start_col, self.end_col + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task.id,
            "row": self.row,
            "start_col": self.start_col,
            "end_col": self.end_col,
            "has_start_cap": self.has_start_cap,
            "has_end_cap": self.has_end_cap,
            "label_day": self.label_day,
        }


@dataclass(frozen=True)
class SlotView:
    """Rendering hints for a single occupied (day, row) cell."""

    task: Task
    day: int
    row: int
    has_start_cap: bool
    has_end_cap: bool
    shows_label: bool


@dataclass
class PackResult:
    week: WeekWindow
    grid: SlotGrid
    row_count: int
    placements: list[Placement] = field(default_factory=list)

    def placement_for(self, task_id: str) -> Optional[Placement]:
        for placement in self.placements:
            if placement.task.id == task_id:
                return placement
        return None

    def slot(self, day: int, row: int) -> Optional[SlotView]:
        if not (0 <= day < DAYS_PER_WEEK) or not (0 <= row < self.row_count):
            return None
        task = self.grid[day][row]
        if task is None:
            return None
        placement = self.placement_for(task.id)
        if placement is None:
            return None
        return SlotView(
            task=task,
            day=day,
            row=row,
            has_start_cap=day == placement.start_col and placement.has_start_cap,
            has_end_cap=day == placement.end_col and placement.has_end_cap,
            shows_label=day == placement.label_day,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_start": self.week.start.isoformat(),
            "row_count": self.row_count,
            "grid": [[task.id if task else None for task in column] for column in self.grid],
            "placements": [p.to_dict() for p in self.placements],
        }


def _usable_interval(task: Any) -> Optional[tuple[date, date]]:
    start = parse_day(getattr(task, "start_date", None))
    end = parse_day(getattr(task, "end_date", None))
    if start is None or end is None or end < start:
        return None
    return start, end


def _clamp(value: int) -> int:
    return max(0, min(DAYS_PER_WEEK - 1, value))


def _first_fit(spans: list[tuple[int, int]]) -> list[int]:
    taken: list[set[int]] = [set() for _ in range(DAYS_PER_WEEK)]
    rows: list[int] = []
    for start_col, end_col in spans:
        row = 0
        while any(row in taken[d] for d in range(start_col, end_col + 1)):
            row += 1
        for d in range(start_col, end_col + 1):
            taken[d].add(row)
        rows.append(row)
    return rows


def _interval(spans: list[tuple[int, int]]) -> list[int]:
    # Spans arrive sorted by start column, so a row is reusable once its last
    # end column lies before the next start.
    active: list[tuple[int, int]] = []
    free: list[int] = []
    next_row = 0
    rows: list[int] = []
    for start_col, end_col in spans:
        while active and active[0][0] < start_col:
            _, released = heapq.heappop(active)
            heapq.heappush(free, released)
        if free:
            row = heapq.heappop(free)
        else:
            row = next_row
            next_row += 1
        heapq.heappush(active, (end_col, row))
        rows.append(row)
    return rows


_STRATEGIES = {"first_fit": _first_fit, "interval": _interval}


def pack(tasks: Iterable[Task], week: WeekWindow, strategy: Strategy = "first_fit") -> PackResult:
    """Lay *tasks* out on a 7-day row grid.

    Args:
        tasks: Tasks of one lane (typically one owner).
        week: The visible week.
        strategy: ``"first_fit"`` or ``"interval"``; both honour the same contract.

    Returns:
        The grid, the number of rows used and one placement per visible task.
    """
    try:
        assign_rows = _STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown packing strategy: {strategy!r}") from None

    candidates: list[tuple[date, date, Task]] = []
    for task in tasks:
        if getattr(task, "is_unscheduled", False):
            continue
        interval = _usable_interval(task)
        if interval is None:
            continue
        start, end = interval
        if start > week.end or end < week.start:
            continue
        candidates.append((start, end, task))

    # Longer tasks first on equal start; id keeps the order input-independent.
    candidates.sort(key=lambda c: (c[0], -((c[1] - c[0]).days), str(c[2].id)))

    spans: list[tuple[int, int]] = []
    visible: list[tuple[date, date, Task]] = []
    for start, end, task in candidates:
        start_col = _clamp(week.day_index(start))
        end_col = _clamp(week.day_index(end))
        if start_col > end_col:
            continue
        spans.append((start_col, end_col))
        visible.append((start, end, task))

    rows = assign_rows(spans)

    row_count = max(rows) + 1 if rows else 0
    grid: SlotGrid = [[None] * row_count for _ in range(DAYS_PER_WEEK)]
    placements: list[Placement] = []
    for (start, end, task), (start_col, end_col), row in zip(visible, spans, rows):
        for d in range(start_col, end_col + 1):
            grid[d][row] = task
        placements.append(
            Placement(
                task=task,
                row=row,
                start_col=start_col,
                end_col=end_col,
                continues_before=start < week.start,
                continues_after=end > week.end,
            )
        )
    return PackResult(week=week, grid=grid, row_count=row_count, placements=placements)
