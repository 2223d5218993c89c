"""The shared in-memory task set and its refresh sequencing.

Every re-fetch request (window expansion, change notification, failed
mutation) goes through :meth:`TaskStore.request_refresh`.  Requests made in
the same event-loop tick are folded into one fetch.  Each fetch takes a
sequence number and a response older than the last applied one is dropped,
so the most recently requested data always wins.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import tzinfo
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from ..sources.interfaces import RawRecord, TaskSource
from .model import Task, TaskKind
from .normalizer import normalize_many
from .window import DateWindowManager


class RefreshStatus(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    FAILED = "failed"
    LOCAL = "local"


@dataclass(frozen=True)
class RefreshOutcome:
    seq: int
    status: RefreshStatus
    task_count: int
    error: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"seq": self.seq, "status": self.status.value, "task_count": self.task_count, "error": self.error}


StoreObserver = Callable[[RefreshOutcome], None]


def _visible(task: Task, window: DateWindowManager) -> bool:
    if task.kind is TaskKind.TASK and task.content_id and not task.show_on_board:
        return False
    if window.is_all_loaded:
        return True
    in_range = window.range.intersects(task.start_date, task.end_date)
    if task.kind is TaskKind.CONTENT:
        return in_range or task.is_unscheduled
    return in_range


class TaskStore:
    def __init__(self, source: TaskSource, window: DateWindowManager, *, tz: Optional[tzinfo] = None) -> None:
        self._source = source
        self._window = window
        self._tz = tz
        self._tasks: list[Task] = []
        self._requested_seq = 0
        self._applied_seq = 0
        self._pending: Optional[asyncio.Handle] = None
        self._inflight: set[asyncio.Task[RefreshOutcome]] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observers: dict[int, StoreObserver] = {}
        self._observer_counter = 0
        self.last_error: Optional[str] = None
        window.set_on_change(self.request_refresh)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def window(self) -> DateWindowManager:
        return self._window

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def applied_seq(self) -> int:
        return self._applied_seq

    def get(self, task_id: str) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def scheduled(self) -> list[Task]:
        return [t for t in self._tasks if not t.is_unscheduled]

    def unscheduled(self) -> list[Task]:
        """Backlog of tasks without a slot on the timeline, by title."""
        return sorted((t for t in self._tasks if t.is_unscheduled), key=lambda t: (t.title.lower(), t.id))

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: StoreObserver) -> Callable[[], None]:
        self._observer_counter += 1
        token = self._observer_counter
        self._observers[token] = callback

        def unsubscribe() -> None:
            self._observers.pop(token, None)

        return unsubscribe

    def _notify(self, outcome: RefreshOutcome) -> None:
        for callback in list(self._observers.values()):
            try:
                callback(outcome)
            except Exception:
                logger.exception("Store observer failed for refresh seq={}", outcome.seq)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_local(self, task: Task) -> Optional[Task]:
        """Replace (or add) *task* in place; returns the entry it replaced."""
        for idx, existing in enumerate(self._tasks):
            if existing.id == task.id:
                self._tasks[idx] = task
                break
        else:
            existing = None
            self._tasks.append(task)
        self._notify(RefreshOutcome(self._applied_seq, RefreshStatus.LOCAL, len(self._tasks)))
        return existing

    def request_refresh(self) -> None:
        """Schedule a re-fetch of the loaded range on the next loop tick."""
        try:
            running: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is None:
            if self._loop is None or not self._loop.is_running():
                raise RuntimeError("TaskStore.request_refresh needs a running event loop")
            self._loop.call_soon_threadsafe(self.request_refresh)
            return
        self._loop = running
        if self._pending is not None:
            logger.debug("Refresh already scheduled for this tick; coalescing")
            return
        self._pending = running.call_soon(self._start_refresh)

    def _start_refresh(self) -> None:
        self._pending = None
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def refresh(self) -> RefreshOutcome:
        """Fetch the current window now and apply it unless a newer fetch already landed."""
        self._loop = asyncio.get_running_loop()
        self._requested_seq += 1
        seq = self._requested_seq
        load_all = self._window.is_all_loaded
        load_range = self._window.range
        try:
            if load_all:
                records = await self._source.fetch_all_tasks()
            else:
                records = await self._source.fetch_tasks_in_range(load_range)
        except Exception as exc:
            if seq < self._applied_seq:
                logger.debug("Ignoring failure of superseded fetch seq={} (applied={}): {}", seq, self._applied_seq, exc)
                outcome = RefreshOutcome(seq, RefreshStatus.STALE, len(self._tasks))
                self._notify(outcome)
                return outcome
            logger.exception("Task fetch seq={} failed; keeping {} tasks", seq, len(self._tasks))
            self.last_error = str(exc) or exc.__class__.__name__
            outcome = RefreshOutcome(seq, RefreshStatus.FAILED, len(self._tasks), error=self.last_error)
            self._notify(outcome)
            return outcome

        if seq < self._applied_seq:
            logger.debug("Discarding stale fetch seq={} (applied={})", seq, self._applied_seq)
            outcome = RefreshOutcome(seq, RefreshStatus.STALE, len(self._tasks))
            self._notify(outcome)
            return outcome

        tasks = self._normalize(records)
        self._tasks = [t for t in tasks if _visible(t, self._window)]
        self._applied_seq = seq
        self.last_error = None
        logger.info(
            "Loaded {} tasks (seq={}, range={})",
            len(self._tasks),
            seq,
            "all" if load_all else f"{load_range.start}..{load_range.end}",
        )
        outcome = RefreshOutcome(seq, RefreshStatus.APPLIED, len(self._tasks))
        self._notify(outcome)
        return outcome

    def _normalize(self, records: list[RawRecord]) -> list[Task]:
        tasks: list[Task] = []
        for kind in (TaskKind.CONTENT, TaskKind.TASK):
            tasks.extend(normalize_many([r.data for r in records if r.kind is kind], kind, tz=self._tz))
        return tasks

    async def settle(self) -> None:
        """Wait until no refresh is scheduled or running."""
        while self._pending is not None or self._inflight:
            if self._inflight:
                await asyncio.gather(*list(self._inflight))
            else:
                await asyncio.sleep(0)
