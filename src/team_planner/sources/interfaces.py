from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from ..events.hub import ChangeEvent
from ..timeline.model import TaskKind
from ..timeline.window import LoadRange


@dataclass(frozen=True)
class RawRecord:
    """A backend row tagged with the table it came from."""

    kind: TaskKind
    data: dict[str, Any]


class TaskSource(ABC):
    """Backend the timeline reads from and persists to."""

    @abstractmethod
    async def fetch_tasks_in_range(self, load_range: LoadRange) -> list[RawRecord]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_all_tasks(self) -> list[RawRecord]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_unscheduled_tasks(self) -> list[RawRecord]:
        raise NotImplementedError

    @abstractmethod
    async def update_task(self, task_id: str, fields: Mapping[str, Any], *, kind: TaskKind) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe_to_changes(
        self, tables: Iterable[str], on_event: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        raise NotImplementedError

    @abstractmethod
    async def append_log(self, task_id: str, kind: TaskKind, entry: Mapping[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def insert_record(self, kind: TaskKind, data: Mapping[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def list_logs(self, task_id: str, *, limit: int = 100) -> list[dict[str, Any]]:
        raise NotImplementedError
