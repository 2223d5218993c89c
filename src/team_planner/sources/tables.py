"""Query semantics shared by the backends that hold the raw tables.

A concrete backend only supplies table reads and writes plus a lock; this
base class joins review rows and parent titles onto the records and applies
the board's range query:

* content items are returned when unscheduled or when their interval
  intersects the load range;
* generic tasks are returned when their interval intersects the range and
  they are either top-level or flagged ``show_on_board``.
"""

from __future__ import annotations

import uuid
from abc import abstractmethod
from collections import defaultdict
from datetime import date
from typing import Any, Callable, ContextManager, Iterable, Mapping, Optional

from loguru import logger

from ..constants import TABLE_CONTENTS, TABLE_TASK_REVIEWS, TABLE_TASKS
from ..errors import TaskNotFoundError
from ..events.hub import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, ChangeEvent, ChangeHub
from ..timeline.model import TaskKind
from ..timeline.normalizer import record_field
from ..timeline.window import LoadRange
from ..utils import _now_iso, parse_day
from .interfaces import RawRecord, TaskSource


def _record_interval(data: Mapping[str, Any]) -> Optional[tuple[date, date]]:
    start = parse_day(record_field(data, "start_date"))
    end = parse_day(record_field(data, "end_date"))
    if start is None and end is None:
        return None
    start = start or end
    end = end or start
    return start, end


def _on_board(data: Mapping[str, Any]) -> bool:
    return not record_field(data, "content_id") or bool(record_field(data, "show_on_board"))


def _is_unscheduled(data: Mapping[str, Any]) -> bool:
    return bool(record_field(data, "is_unscheduled"))


def _serialize_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, date):
            out[key] = value.isoformat()
        elif isinstance(value, (list, tuple)):
            out[key] = list(value)
        else:
            out[key] = value
    return out


def matches_range(record: RawRecord, load_range: LoadRange) -> bool:
    interval = _record_interval(record.data)
    hit = interval is not None and load_range.intersects(*interval)
    if record.kind is TaskKind.CONTENT:
        return hit or _is_unscheduled(record.data)
    return hit and _on_board(record.data)


class TableTaskSource(TaskSource):
    def __init__(self, hub: Optional[ChangeHub] = None) -> None:
        self.hub = hub or ChangeHub()

    # -- storage primitives ---------------------------------------------

    @abstractmethod
    def _read_table(self, table: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def _write_table(self, table: str, rows: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    @abstractmethod
    def _transaction(self) -> ContextManager[Any]:
        raise NotImplementedError

    @abstractmethod
    def _append_log_line(self, entry: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def _read_log_lines(self, limit: int) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return fn(*args)

    # -- reads ------------------------------------------------------------

    def _joined_records(self) -> list[RawRecord]:
        with self._transaction():
            contents = self._read_table(TABLE_CONTENTS)
            tasks = self._read_table(TABLE_TASKS)
            reviews = self._read_table(TABLE_TASK_REVIEWS)

        by_parent: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for review in reviews:
            parent = review.get("content_id") or review.get("task_id")
            if parent:
                by_parent[str(parent)].append(review)
        titles = {str(row.get("id")): row.get("title") for row in contents}

        records: list[RawRecord] = []
        for row in contents:
            data = dict(row)
            data["task_reviews"] = list(by_parent.get(str(row.get("id")), []))
            records.append(RawRecord(TaskKind.CONTENT, data))
        for row in tasks:
            data = dict(row)
            data["task_reviews"] = list(by_parent.get(str(row.get("id")), []))
            parent_id = record_field(row, "content_id")
            if parent_id:
                data["contents"] = {"title": titles.get(str(parent_id))}
            records.append(RawRecord(TaskKind.TASK, data))
        return records

    async def fetch_tasks_in_range(self, load_range: LoadRange) -> list[RawRecord]:
        records = await self._run(self._joined_records)
        return [r for r in records if matches_range(r, load_range)]

    async def fetch_all_tasks(self) -> list[RawRecord]:
        records = await self._run(self._joined_records)
        return [r for r in records if r.kind is TaskKind.CONTENT or _on_board(r.data)]

    async def fetch_unscheduled_tasks(self) -> list[RawRecord]:
        records = await self._run(self._joined_records)
        return [
            r
            for r in records
            if _is_unscheduled(r.data) and (r.kind is TaskKind.CONTENT or _on_board(r.data))
        ]

    # -- writes -----------------------------------------------------------

    def _update_row(self, table: str, task_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._transaction():
            rows = self._read_table(table)
            for row in rows:
                if str(row.get("id")) == task_id:
                    row.update(fields)
                    row["updated_at"] = _now_iso()
                    self._write_table(table, rows)
                    return dict(row)
        raise TaskNotFoundError(task_id)

    async def update_task(self, task_id: str, fields: Mapping[str, Any], *, kind: TaskKind) -> None:
        table = kind.table
        row = await self._run(self._update_row, table, task_id, _serialize_fields(fields))
        logger.debug("Updated {} {} fields={}", table, task_id, sorted(fields))
        self._publish(table, EVENT_UPDATE, task_id, row)

    def _insert_row(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        with self._transaction():
            rows = self._read_table(table)
            rows.append(row)
            self._write_table(table, rows)
        return row

    async def _insert(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        row = _serialize_fields(data)
        row["id"] = str(row.get("id") or uuid.uuid4().hex[:12])
        row.setdefault("created_at", _now_iso())
        await self._run(self._insert_row, table, row)
        self._publish(table, EVENT_INSERT, row["id"], row)
        return row

    async def insert_record(self, kind: TaskKind, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._insert(kind.table, data)

    async def insert_review(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._insert(TABLE_TASK_REVIEWS, data)

    def _delete_row(self, table: str, record_id: str) -> bool:
        with self._transaction():
            rows = self._read_table(table)
            keep = [row for row in rows if str(row.get("id")) != record_id]
            if len(keep) == len(rows):
                return False
            self._write_table(table, keep)
        return True

    async def delete_record(self, kind: TaskKind, record_id: str) -> bool:
        deleted = await self._run(self._delete_row, kind.table, record_id)
        if deleted:
            self._publish(kind.table, EVENT_DELETE, record_id, {})
        return deleted

    # -- audit log ----------------------------------------------------------

    async def append_log(self, task_id: str, kind: TaskKind, entry: Mapping[str, Any]) -> None:
        line = {"task_id": task_id, "kind": kind.value, **_serialize_fields(entry)}
        await self._run(self._append_log_line, line)

    async def list_logs(self, task_id: str, *, limit: int = 100) -> list[dict[str, Any]]:
        lines = await self._run(self._read_log_lines, 10_000)
        return [line for line in lines if line.get("task_id") == task_id][-limit:]

    # -- change feed --------------------------------------------------------

    def subscribe_to_changes(
        self, tables: Iterable[str], on_event: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        return self.hub.subscribe(tables, on_event)

    def _publish(self, table: str, event_type: str, record_id: str, payload: dict[str, Any]) -> None:
        self.hub.publish(ChangeEvent(table=table, event_type=event_type, record_id=record_id, payload=payload))
