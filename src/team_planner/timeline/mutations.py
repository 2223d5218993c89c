"""Commands that move tasks on the timeline.

Each command is computed purely against the current task, applied to the
store optimistically, then persisted.  If persisting fails the handler
applies the inverse (a :class:`RestoreCommand` holding the pre-change
snapshot) and asks the store for a re-fetch, so the returned
:class:`MutationResult` always says whether the change stuck.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional, Union

from loguru import logger

from ..errors import TaskNotFoundError
from ..sources.interfaces import TaskSource
from .model import OwnerRole, Task
from .store import TaskStore

MUTABLE_FIELDS = ("start_date", "end_date", "assignee_ids", "idea_owner_ids", "editor_ids", "is_unscheduled")


@dataclass(frozen=True)
class RescheduleCommand:
    """Drag-and-drop move onto ``new_date`` (and possibly another owner's lane)."""

    task_id: str
    new_owner_id: Optional[str]
    new_date: date


@dataclass(frozen=True)
class DelayCommand:
    task_id: str
    new_date: date
    reason: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ScheduleCommand:
    """Drop a backlog task onto a single day."""

    task_id: str
    new_date: date


@dataclass(frozen=True)
class RestoreCommand:
    task_id: str
    snapshot: Task


Command = Union[RescheduleCommand, DelayCommand, ScheduleCommand, RestoreCommand]


@dataclass
class MutationResult:
    ok: bool
    command: Command
    task: Task
    previous: Task
    inverse: RestoreCommand
    error: Optional[str] = None
    changed: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "task": self.task.to_dict(),
            "previous": self.previous.to_dict(),
            "error": self.error,
            "changed": sorted(self.changed),
        }


# ---------------------------------------------------------------------------
# Pure computations
# ---------------------------------------------------------------------------

def reschedule(task: Task, new_owner_id: Optional[str], new_date: date) -> Task:
    """Move *task* so it starts on *new_date*, keeping its length.

    A task with exactly one owner is handed to *new_owner_id* inside the role
    bucket(s) that held the old owner.  Pool and multi-owner tasks only move
    in time.
    """
    length = max(task.duration_days, 1)
    changes: dict[str, Any] = {
        "start_date": new_date,
        "end_date": new_date + timedelta(days=length - 1),
        "is_unscheduled": False,
    }
    if new_owner_id and task.is_single_owner:
        current = task.owners[0]
        if current != new_owner_id:
            for role in OwnerRole:
                bucket = getattr(task, role.value)
                if current in bucket:
                    replaced = [new_owner_id if owner == current else owner for owner in bucket]
                    changes[role.value] = list(dict.fromkeys(replaced))
    return task.evolve(**changes)


def delay(task: Task, new_date: date) -> Task:
    return task.evolve(start_date=new_date, end_date=new_date)


def schedule(task: Task, new_date: date) -> Task:
    return task.evolve(start_date=new_date, end_date=new_date, is_unscheduled=False)


def restore(task: Task, snapshot: Task) -> Task:
    return task.evolve(**{name: getattr(snapshot, name) for name in MUTABLE_FIELDS})


def apply_command(command: Command, task: Task) -> Task:
    if isinstance(command, RescheduleCommand):
        return reschedule(task, command.new_owner_id, command.new_date)
    if isinstance(command, DelayCommand):
        return delay(task, command.new_date)
    if isinstance(command, ScheduleCommand):
        return schedule(task, command.new_date)
    if isinstance(command, RestoreCommand):
        return restore(task, command.snapshot)
    raise TypeError(f"Unsupported command: {command!r}")


def changed_fields(before: Task, after: Task) -> dict[str, Any]:
    return {
        name: getattr(after, name)
        for name in MUTABLE_FIELDS
        if getattr(before, name) != getattr(after, name)
    }


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------

class MutationHandler:
    def __init__(self, store: TaskStore, source: TaskSource) -> None:
        self._store = store
        self._source = source

    async def execute(self, command: Command) -> MutationResult:
        """Apply *command* optimistically and persist it.

        Raises:
            TaskNotFoundError: If the store holds no task with that id.
            ValueError: If a delay is requested without a reason.
        """
        current = self._store.get(command.task_id)
        if current is None:
            raise TaskNotFoundError(command.task_id)
        if isinstance(command, DelayCommand) and not command.reason.strip():
            raise ValueError("A delay needs a reason")

        updated = apply_command(command, current)
        inverse = RestoreCommand(task_id=current.id, snapshot=current)
        fields = changed_fields(current, updated)
        self._store.apply_local(updated)

        try:
            if fields:
                await self._source.update_task(current.id, fields, kind=current.kind)
            if isinstance(command, DelayCommand):
                await self._source.append_log(
                    current.id,
                    current.kind,
                    {
                        "action": "DELAYED",
                        "user_id": command.user_id,
                        "reason": command.reason,
                        "details": f"Deadline moved to {command.new_date.isoformat()}",
                        "from_date": current.end_date,
                        "to_date": command.new_date,
                    },
                )
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning("Persisting {} for task {} failed, rolling back: {}", type(command).__name__, current.id, error)
            rolled_back = apply_command(inverse, updated)
            self._store.apply_local(rolled_back)
            self._store.request_refresh()
            return MutationResult(
                ok=False, command=command, task=rolled_back, previous=current, inverse=inverse, error=error
            )

        logger.info("{} applied to task {} ({})", type(command).__name__, current.id, ", ".join(sorted(fields)) or "no change")
        return MutationResult(ok=True, command=command, task=updated, previous=current, inverse=inverse, changed=fields)

    async def undo(self, result: MutationResult) -> MutationResult:
        return await self.execute(result.inverse)
