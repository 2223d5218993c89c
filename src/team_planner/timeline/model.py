"""Canonical task model consumed by the weekly timeline.

Both backend tables (content items and generic tasks) are mapped onto the one
:class:`Task` shape by :mod:`team_planner.timeline.normalizer`.  The layout
engine only reads tasks; the mutation commands are the single place that
produce modified copies.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Optional

from ..constants import ASSIGNEE_TYPE_INDIVIDUAL, ASSIGNEE_TYPE_TEAM, TABLE_CONTENTS, TABLE_TASKS
from ..utils import parse_day


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskKind(str, Enum):
    """Which backend table a task came from."""

    CONTENT = "CONTENT"
    TASK = "TASK"

    @property
    def table(self) -> str:
        return TABLE_CONTENTS if self is TaskKind.CONTENT else TABLE_TASKS

    @classmethod
    def parse(cls, raw: Any) -> "TaskKind":
        text = str(getattr(raw, "value", raw) or "").strip().upper()
        if text in {"CONTENT", "CONTENTS"}:
            return cls.CONTENT
        if text in {"TASK", "TASKS"}:
            return cls.TASK
        raise ValueError(f"Unknown task kind: {raw!r}")


class OwnerRole(str, Enum):
    """Role bucket an owner id is stored in."""

    ASSIGNEE = "assignee_ids"
    IDEA_OWNER = "idea_owner_ids"
    EDITOR = "editor_ids"


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------

@dataclass
class ReviewSession:
    id: str = ""
    task_id: str = ""
    round: int = 1
    scheduled_at: Optional[str] = None
    reviewer_id: Optional[str] = None
    status: str = "PENDING"
    feedback: Optional[str] = None
    is_completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewSession":
        return cls(
            id=str(data.get("id") or ""),
            task_id=str(data.get("task_id") or ""),
            round=int(data.get("round") or 1),
            scheduled_at=data.get("scheduled_at"),
            reviewer_id=data.get("reviewer_id"),
            status=str(data.get("status") or "PENDING"),
            feedback=data.get("feedback"),
            is_completed=bool(data.get("is_completed", False)),
        )


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """One schedulable item on the weekly timeline."""

    # Identity
    id: str
    kind: TaskKind = TaskKind.TASK
    title: str = ""
    description: str = ""

    # Temporal (inclusive calendar days)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_unscheduled: bool = False

    # Ownership
    assignee_ids: list[str] = field(default_factory=list)
    idea_owner_ids: list[str] = field(default_factory=list)
    editor_ids: list[str] = field(default_factory=list)
    assignee_type: str = ASSIGNEE_TYPE_TEAM

    # Classification
    status: str = "TODO"
    priority: str = "MEDIUM"
    tags: list[str] = field(default_factory=list)
    channel_id: Optional[str] = None
    target_platforms: list[str] = field(default_factory=list)
    pillar: Optional[str] = None
    content_format: Optional[str] = None
    category: Optional[str] = None
    remark: Optional[str] = None

    # Reviews, sub-task linkage
    reviews: list[ReviewSession] = field(default_factory=list)
    content_id: Optional[str] = None
    show_on_board: bool = False
    parent_content_title: Optional[str] = None

    created_at: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------

    @property
    def owners(self) -> list[str]:
        """Flattened owner set across all role buckets, first occurrence wins."""
        seen: dict[str, None] = {}
        for bucket in (self.assignee_ids, self.idea_owner_ids, self.editor_ids):
            for owner in bucket:
                if owner:
                    seen.setdefault(owner, None)
        return list(seen)

    @property
    def is_pool_task(self) -> bool:
        """Team task nobody has picked up yet."""
        return self.assignee_type == ASSIGNEE_TYPE_TEAM and not self.owners

    @property
    def is_single_owner(self) -> bool:
        return len(self.owners) == 1

    @property
    def duration_days(self) -> int:
        """Inclusive length in days; 0 when the dates are unusable."""
        if self.start_date is None or self.end_date is None or self.end_date < self.start_date:
            return 0
        return (self.end_date - self.start_date).days + 1

    def role_of(self, owner_id: str) -> Optional[OwnerRole]:
        for role in OwnerRole:
            if owner_id in getattr(self, role.value):
                return role
        return None

    def evolve(self, **changes: Any) -> "Task":
        """Return a copy with *changes* applied; list fields are copied too."""
        copied = replace(
            self,
            assignee_ids=list(self.assignee_ids),
            idea_owner_ids=list(self.idea_owner_ids),
            editor_ids=list(self.editor_ids),
        )
        return replace(copied, **changes)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict for YAML/JSON persistence."""
        data: dict[str, Any] = {}
        for k, v in asdict(self).items():
            if isinstance(v, Enum):
                data[k] = v.value
            elif isinstance(v, date):
                data[k] = v.isoformat()
            else:
                data[k] = v
        data["owners"] = self.owners
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize the canonical shape produced by :meth:`to_dict`."""
        d = dict(data)
        d.pop("owners", None)
        try:
            kind = TaskKind.parse(d.pop("kind", TaskKind.TASK))
        except ValueError:
            kind = TaskKind.TASK
        reviews = [
            ReviewSession.from_dict(r) for r in list(d.pop("reviews", []) or []) if isinstance(r, dict)
        ]
        return cls(
            id=str(d.pop("id", "")),
            kind=kind,
            title=str(d.pop("title", "") or ""),
            description=str(d.pop("description", "") or ""),
            start_date=parse_day(d.pop("start_date", None)),
            end_date=parse_day(d.pop("end_date", None)),
            is_unscheduled=bool(d.pop("is_unscheduled", False)),
            assignee_ids=list(d.pop("assignee_ids", []) or []),
            idea_owner_ids=list(d.pop("idea_owner_ids", []) or []),
            editor_ids=list(d.pop("editor_ids", []) or []),
            assignee_type=str(d.pop("assignee_type", None) or ASSIGNEE_TYPE_TEAM),
            status=str(d.pop("status", "TODO") or "TODO"),
            priority=str(d.pop("priority", "MEDIUM") or "MEDIUM"),
            tags=list(d.pop("tags", []) or []),
            channel_id=d.pop("channel_id", None),
            target_platforms=list(d.pop("target_platforms", []) or []),
            pillar=d.pop("pillar", None),
            content_format=d.pop("content_format", None),
            category=d.pop("category", None),
            remark=d.pop("remark", None),
            reviews=reviews,
            content_id=d.pop("content_id", None),
            show_on_board=bool(d.pop("show_on_board", False)),
            parent_content_title=d.pop("parent_content_title", None),
            created_at=d.pop("created_at", None),
            metadata=dict(d.pop("metadata", {}) or {}),
        )


__all__ = [
    "ASSIGNEE_TYPE_INDIVIDUAL",
    "ASSIGNEE_TYPE_TEAM",
    "OwnerRole",
    "ReviewSession",
    "Task",
    "TaskKind",
]
