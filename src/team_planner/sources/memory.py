"""Dict-backed task source for tests and demos."""

from __future__ import annotations

import copy
import threading
from typing import Any, ContextManager, Iterable, Mapping, Optional

from ..constants import TABLE_TASK_REVIEWS, WATCHED_TABLES
from ..events.hub import ChangeHub
from ..timeline.model import TaskKind
from ..timeline.window import LoadRange
from .interfaces import RawRecord
from .tables import TableTaskSource


class InMemoryTaskSource(TableTaskSource):
    """Keeps the three tables in memory.

    ``fetch_error`` and ``update_error`` make the next calls fail with the
    given exception until they are reset to None.
    """

    def __init__(
        self,
        *,
        contents: Iterable[Mapping[str, Any]] = (),
        tasks: Iterable[Mapping[str, Any]] = (),
        reviews: Iterable[Mapping[str, Any]] = (),
        hub: Optional[ChangeHub] = None,
    ) -> None:
        super().__init__(hub)
        self._tables: dict[str, list[dict[str, Any]]] = {table: [] for table in WATCHED_TABLES}
        self._tables[TaskKind.CONTENT.table] = [dict(row) for row in contents]
        self._tables[TaskKind.TASK.table] = [dict(row) for row in tasks]
        self._tables[TABLE_TASK_REVIEWS] = [dict(row) for row in reviews]
        self._logs: list[dict[str, Any]] = []
        self._lock = threading.RLock()
        self.fetch_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.fetch_count = 0
        self.update_count = 0

    def _read_table(self, table: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._tables.get(table, []))

    def _write_table(self, table: str, rows: list[dict[str, Any]]) -> None:
        self._tables[table] = copy.deepcopy(rows)

    def _transaction(self) -> ContextManager[Any]:
        return self._lock

    def _append_log_line(self, entry: dict[str, Any]) -> None:
        with self._lock:
            self._logs.append(dict(entry))

    def _read_log_lines(self, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(line) for line in self._logs[-limit:]]

    def _check_fetch(self) -> None:
        self.fetch_count += 1
        if self.fetch_error is not None:
            raise self.fetch_error

    async def fetch_tasks_in_range(self, load_range: LoadRange) -> list[RawRecord]:
        self._check_fetch()
        return await super().fetch_tasks_in_range(load_range)

    async def fetch_all_tasks(self) -> list[RawRecord]:
        self._check_fetch()
        return await super().fetch_all_tasks()

    async def update_task(self, task_id: str, fields: Mapping[str, Any], *, kind: TaskKind) -> None:
        self.update_count += 1
        if self.update_error is not None:
            raise self.update_error
        await super().update_task(task_id, fields, kind=kind)

    def rows(self, kind: TaskKind) -> list[dict[str, Any]]:
        """Copy of the stored rows of one table."""
        return self._read_table(kind.table)


__all__ = ["InMemoryTaskSource"]
