"""YAML-file task source under ``<project>/.team_planner/``."""

from __future__ import annotations

import asyncio
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from filelock import FileLock
from loguru import logger

from ..constants import (
    CONTENTS_FILE,
    LOCK_FILE,
    REVIEWS_FILE,
    STATE_DIR_NAME,
    TABLE_TASK_REVIEWS,
    TASK_LOGS_FILE,
    TASKS_FILE,
)
from ..errors import SourceError
from ..events.hub import ChangeHub
from ..io_utils import _append_jsonl, _atomic_write_yaml, _load_data_with_error, _read_jsonl
from ..timeline.model import TaskKind
from .tables import TableTaskSource

TABLE_FILES = {
    TaskKind.CONTENT.table: CONTENTS_FILE,
    TaskKind.TASK.table: TASKS_FILE,
    TABLE_TASK_REVIEWS: REVIEWS_FILE,
}


class FileTaskSource(TableTaskSource):
    def __init__(self, project_dir: Path, hub: Optional[ChangeHub] = None) -> None:
        super().__init__(hub)
        self.state_dir = project_dir.resolve() / STATE_DIR_NAME
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(self.state_dir / LOCK_FILE)
        self._thread_lock = threading.RLock()

    def _path(self, table: str) -> Path:
        try:
            return self.state_dir / TABLE_FILES[table]
        except KeyError:
            raise SourceError(f"Unknown table: {table}") from None

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._thread_lock:
            with self._lock:
                yield

    def _read_table(self, table: str) -> list[dict[str, Any]]:
        path = self._path(table)
        data, err = _load_data_with_error(path, {})
        if err:
            raise SourceError(err)
        rows = data.get(table, [])
        if not isinstance(rows, list):
            raise SourceError(f"{path.name}: '{table}' must be a list")
        return [dict(row) for row in rows if isinstance(row, dict)]

    def _write_table(self, table: str, rows: list[dict[str, Any]]) -> None:
        _atomic_write_yaml(self._path(table), {"version": 1, table: rows})

    def _append_log_line(self, entry: dict[str, Any]) -> None:
        with self._transaction():
            _append_jsonl(self.state_dir / TASK_LOGS_FILE, entry)

    def _read_log_lines(self, limit: int) -> list[dict[str, Any]]:
        return _read_jsonl(self.state_dir / TASK_LOGS_FILE, limit)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as exc:
            logger.error("Task file access failed in {}: {}", self.state_dir, exc)
            raise SourceError(str(exc)) from exc
