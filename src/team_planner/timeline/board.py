"""Team board: one packed lane per owner plus the team pool.

A task with several owners is drawn in each owner's lane.  Ownerless team
tasks land in the ``pool`` lane and ownerless individual tasks in
``unassigned``.  Each member lane gets a workload level from the number of
tasks it shows this week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..constants import STATUS_DONE
from .calendar import WeekWindow, intervals_intersect
from .model import Task, TaskKind
from .packer import PackResult, Strategy, pack

POOL_LANE = "pool"
UNASSIGNED_LANE = "unassigned"

DEFAULT_THRESHOLDS = {"chill": 3, "busy": 6}


class LaneKind(str, Enum):
    MEMBER = "member"
    POOL = "pool"
    UNASSIGNED = "unassigned"


class FilterType(str, Enum):
    CHANNEL = "CHANNEL"
    FORMAT = "FORMAT"
    STATUS = "STATUS"
    PILLAR = "PILLAR"
    CATEGORY = "CATEGORY"


class FilterMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


_FILTER_FIELDS = {
    FilterType.CHANNEL: "channel_id",
    FilterType.FORMAT: "content_format",
    FilterType.STATUS: "status",
    FilterType.PILLAR: "pillar",
    FilterType.CATEGORY: "category",
}


@dataclass(frozen=True)
class FilterChip:
    type: FilterType
    value: str
    mode: FilterMode = FilterMode.INCLUDE

    @classmethod
    def parse(cls, text: str) -> "FilterChip":
        """Parse ``TYPE:VALUE`` or ``TYPE:VALUE:exclude``."""
        parts = [p.strip() for p in str(text).split(":")]
        if len(parts) not in (2, 3) or not parts[1]:
            raise ValueError(f"Filter chip must look like TYPE:VALUE[:exclude], got {text!r}")
        try:
            chip_type = FilterType(parts[0].upper())
        except ValueError:
            raise ValueError(f"Unknown filter type {parts[0]!r}") from None
        mode = FilterMode.INCLUDE
        if len(parts) == 3:
            try:
                mode = FilterMode(parts[2].lower())
            except ValueError:
                raise ValueError(f"Unknown filter mode {parts[2]!r}") from None
        return cls(type=chip_type, value=parts[1], mode=mode)

    def matches(self, task: Task) -> bool:
        return getattr(task, _FILTER_FIELDS[self.type]) == self.value

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "value": self.value, "mode": self.mode.value}


def apply_filters(tasks: Iterable[Task], chips: Sequence[FilterChip] = (), kind: Optional[TaskKind] = None) -> list[Task]:
    """Keep tasks matching any include chip and no exclude chip."""
    include = [c for c in chips if c.mode is FilterMode.INCLUDE]
    exclude = [c for c in chips if c.mode is FilterMode.EXCLUDE]
    out: list[Task] = []
    for task in tasks:
        if kind is not None and task.kind is not kind:
            continue
        if include and not any(c.matches(task) for c in include):
            continue
        if any(c.matches(task) for c in exclude):
            continue
        out.append(task)
    return out


def workload_level(count: int, thresholds: Optional[Mapping[str, int]] = None) -> str:
    limits = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
    if count == 0:
        return "free"
    if count <= limits["chill"]:
        return "chill"
    if count <= limits["busy"]:
        return "busy"
    return "on_fire"


@dataclass
class Lane:
    key: str
    kind: LaneKind
    result: PackResult
    workload: Optional[str] = None

    @property
    def task_count(self) -> int:
        return len(self.result.placements)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "workload": self.workload,
            "task_count": self.task_count,
            "row_count": self.result.row_count,
            "grid": self.result.to_dict()["grid"],
            "placements": [p.to_dict() for p in self.result.placements],
        }


@dataclass
class TeamBoard:
    week: WeekWindow
    lanes: list[Lane] = field(default_factory=list)
    tasks: dict[str, Task] = field(default_factory=dict)
    hidden_done: int = 0
    filters: list[FilterChip] = field(default_factory=list)

    def lane(self, key: str) -> Optional[Lane]:
        for lane in self.lanes:
            if lane.key == key:
                return lane
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_start": self.week.start.isoformat(),
            "week_end": self.week.end.isoformat(),
            "days": [d.isoformat() for d in self.week.days],
            "lanes": [lane.to_dict() for lane in self.lanes],
            "tasks": {task_id: task.to_dict() for task_id, task in self.tasks.items()},
            "hidden_done": self.hidden_done,
            "filters": [chip.to_dict() for chip in self.filters],
        }


def _in_week(task: Task, week: WeekWindow) -> bool:
    if task.is_unscheduled or task.start_date is None or task.end_date is None:
        return False
    if task.end_date < task.start_date:
        return False
    return intervals_intersect(task.start_date, task.end_date, week.start, week.end)


def build_board(
    tasks: Iterable[Task],
    week: WeekWindow,
    *,
    members: Optional[Sequence[str]] = None,
    filters: Sequence[FilterChip] = (),
    kind: Optional[TaskKind] = None,
    hide_done: bool = True,
    strategy: Strategy = "first_fit",
    thresholds: Optional[Mapping[str, int]] = None,
) -> TeamBoard:
    visible = [t for t in apply_filters(tasks, filters, kind) if _in_week(t, week)]
    hidden_done = 0
    if hide_done:
        hidden_done = sum(1 for t in visible if t.status == STATUS_DONE)
        visible = [t for t in visible if t.status != STATUS_DONE]

    by_owner: dict[str, list[Task]] = {}
    pool: list[Task] = []
    unassigned: list[Task] = []
    for task in visible:
        owners = task.owners
        if not owners:
            (pool if task.is_pool_task else unassigned).append(task)
            continue
        for owner in owners:
            by_owner.setdefault(owner, []).append(task)

    keys = list(members) if members is not None else sorted(by_owner)
    lanes: list[Lane] = []
    for owner in keys:
        result = pack(by_owner.get(owner, []), week, strategy)
        lanes.append(Lane(owner, LaneKind.MEMBER, result, workload_level(len(result.placements), thresholds)))
    if pool:
        lanes.append(Lane(POOL_LANE, LaneKind.POOL, pack(pool, week, strategy)))
    if unassigned:
        lanes.append(Lane(UNASSIGNED_LANE, LaneKind.UNASSIGNED, pack(unassigned, week, strategy)))

    shown = {p.task.id: p.task for lane in lanes for p in lane.result.placements}
    return TeamBoard(week=week, lanes=lanes, tasks=shown, hidden_done=hidden_done, filters=list(filters))
