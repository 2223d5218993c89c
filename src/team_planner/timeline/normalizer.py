"""Map raw backend records onto the canonical :class:`Task` shape."""

from __future__ import annotations

from datetime import tzinfo
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from ..constants import ASSIGNEE_TYPE_TEAM
from ..errors import NormalizationError
from ..utils import parse_day
from .model import ReviewSession, Task, TaskKind

# Backend column -> accepted spellings, first non-empty wins.
_ALIASES: dict[str, tuple[str, ...]] = {
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
    "assignee_ids": ("assignee_ids", "assigneeIds"),
    "idea_owner_ids": ("idea_owner_ids", "ideaOwnerIds"),
    "editor_ids": ("editor_ids", "editorIds"),
    "is_unscheduled": ("is_unscheduled", "isUnscheduled"),
    "channel_id": ("channel_id", "channelId"),
    "content_format": ("content_format", "contentFormat"),
    "assignee_type": ("assignee_type", "assigneeType"),
    "content_id": ("content_id", "contentId"),
    "show_on_board": ("show_on_board", "showOnBoard"),
    "created_at": ("created_at", "createdAt"),
}

# Columns kept verbatim in ``Task.metadata``.
_METADATA_KEYS = (
    "difficulty",
    "estimated_hours",
    "target_position",
    "caution",
    "importance",
    "published_links",
    "shoot_date",
    "shoot_location",
    "assets",
    "performance",
)


def record_field(raw: Mapping[str, Any], name: str) -> Any:
    """Value of column *name* under any accepted spelling, or None."""
    for key in _ALIASES.get(name, (name,)):
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _id_list(value: Any, record_id: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if not isinstance(value, (list, tuple)):
        raise NormalizationError(
            f"record {record_id} has an owner list of type {type(value).__name__}", record_id=record_id
        )
    return [str(v) for v in value if v not in (None, "")]


def _platforms(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    if value:
        return [str(value)]
    return []


def _round(item: Mapping[str, Any]) -> Optional[int]:
    try:
        return int(item.get("round") or 1)
    except (TypeError, ValueError):
        return None


def _reviews(raw: Mapping[str, Any], record_id: str) -> list[ReviewSession]:
    sessions: list[ReviewSession] = []
    for item in raw.get("task_reviews") or []:
        if not isinstance(item, Mapping):
            continue
        review_round = _round(item)
        if review_round is None:
            logger.warning("Ignoring review {} of record {}: bad round {!r}", item.get("id"), record_id, item.get("round"))
            continue
        sessions.append(
            ReviewSession(
                id=str(item.get("id") or ""),
                task_id=str(item.get("content_id") or item.get("task_id") or ""),
                round=review_round,
                scheduled_at=item.get("scheduled_at"),
                reviewer_id=item.get("reviewer_id"),
                status=str(item.get("status") or "PENDING"),
                feedback=item.get("feedback"),
                is_completed=bool(item.get("is_completed", False)),
            )
        )
    sessions.sort(key=lambda s: s.round)
    return sessions


def normalize(raw: Mapping[str, Any], source_kind: TaskKind | str, *, tz: Optional[tzinfo] = None) -> Task:
    """Build a :class:`Task` from one backend row.

    Raises:
        NormalizationError: When the record has no usable date interval.
    """
    kind = TaskKind.parse(source_kind)
    record_id = str(raw.get("id") or "")
    if not record_id:
        raise NormalizationError("record has no id")

    raw_start = record_field(raw, "start_date")
    raw_end = record_field(raw, "end_date")
    if raw_start is None and raw_end is None:
        raise NormalizationError(f"record {record_id} has neither start nor end date", record_id=record_id)

    start = parse_day(raw_start, tz) if raw_start is not None else None
    end = parse_day(raw_end, tz) if raw_end is not None else None
    if (raw_start is not None and start is None) or (raw_end is not None and end is None):
        raise NormalizationError(
            f"record {record_id} has an unparseable date ({raw_start!r}, {raw_end!r})", record_id=record_id
        )
    start = start or end
    end = end or start
    if end < start:
        raise NormalizationError(f"record {record_id} ends before it starts", record_id=record_id)

    parent = raw.get("contents")
    parent_title = parent.get("title") if isinstance(parent, Mapping) else raw.get("parent_content_title")

    return Task(
        id=record_id,
        kind=kind,
        title=str(raw.get("title") or ""),
        description=str(raw.get("description") or ""),
        start_date=start,
        end_date=end,
        is_unscheduled=bool(record_field(raw, "is_unscheduled")),
        assignee_ids=_id_list(record_field(raw, "assignee_ids"), record_id),
        idea_owner_ids=_id_list(record_field(raw, "idea_owner_ids"), record_id),
        editor_ids=_id_list(record_field(raw, "editor_ids"), record_id),
        assignee_type=str(record_field(raw, "assignee_type") or ASSIGNEE_TYPE_TEAM),
        status=str(raw.get("status") or "TODO"),
        priority=str(raw.get("priority") or "MEDIUM"),
        tags=[str(t) for t in raw.get("tags") or []],
        channel_id=record_field(raw, "channel_id"),
        target_platforms=_platforms(raw.get("target_platform", raw.get("target_platforms"))),
        pillar=raw.get("pillar"),
        content_format=record_field(raw, "content_format"),
        category=raw.get("category"),
        remark=raw.get("remark"),
        reviews=_reviews(raw, record_id),
        content_id=record_field(raw, "content_id"),
        show_on_board=bool(record_field(raw, "show_on_board")),
        parent_content_title=parent_title,
        created_at=str(record_field(raw, "created_at")) if record_field(raw, "created_at") else None,
        metadata={k: raw[k] for k in _METADATA_KEYS if raw.get(k) is not None},
    )


def normalize_many(
    records: Iterable[Mapping[str, Any]], source_kind: TaskKind | str, *, tz: Optional[tzinfo] = None
) -> list[Task]:
    """Normalize *records*, dropping (and logging) the ones that fail."""
    kind = TaskKind.parse(source_kind)
    tasks: list[Task] = []
    for raw in records:
        try:
            tasks.append(normalize(raw, kind, tz=tz))
        except NormalizationError as exc:
            logger.warning("Skipping {} record {}: {}", kind.value, exc.record_id or "<no id>", exc)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping {} record {}: {}", kind.value, raw.get("id") or "<no id>", exc)
    return tasks
