"""Wire the source, window, store, feed and mutation handler together."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from loguru import logger

from .config import PlannerConfig, load_planner_config
from .errors import TaskNotFoundError
from .events.ws import TimelineWebSocketHub
from .logging_utils import pretty, summarize_board
from .sources.file_source import FileTaskSource
from .sources.interfaces import TaskSource
from .timeline.board import FilterChip, TeamBoard, build_board
from .timeline.calendar import WeekWindow
from .timeline.feed import ChangeFeedListener
from .timeline.model import Task, TaskKind
from .timeline.mutations import (
    Command,
    DelayCommand,
    MutationHandler,
    MutationResult,
    RescheduleCommand,
    ScheduleCommand,
)
from .timeline.normalizer import normalize_many
from .timeline.store import RefreshOutcome, RefreshStatus, TaskStore
from .timeline.window import DateWindowManager


class PlannerService:
    def __init__(
        self,
        project_dir: Path,
        *,
        source: Optional[TaskSource] = None,
        config: Optional[PlannerConfig] = None,
        today: Optional[date] = None,
    ) -> None:
        self.project_dir = project_dir.resolve()
        self.config = config or load_planner_config(self.project_dir)
        self.source = source or FileTaskSource(self.project_dir)
        self.window = DateWindowManager.initial(
            today or self.today(),
            self.config.initial_months_back,
            self.config.initial_months_ahead,
        )
        self.store = TaskStore(self.source, self.window, tz=self.config.tzinfo)
        self.mutations = MutationHandler(self.store, self.source)
        self.feed = ChangeFeedListener(self.source, self.store)
        self.ws = TimelineWebSocketHub()
        self.store.subscribe(self._broadcast)

    def today(self) -> date:
        return datetime.now(self.config.tzinfo).date()

    def week_for(self, day: date) -> WeekWindow:
        return WeekWindow.containing(day, self.config.first_weekday)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> RefreshOutcome:
        self.feed.start()
        return await self.store.refresh()

    async def stop(self) -> None:
        self.feed.stop()
        await self.store.settle()

    def _broadcast(self, outcome: RefreshOutcome) -> None:
        if outcome.status is RefreshStatus.STALE:
            return
        self.ws.publish_sync({"channel": "tasks", "type": "invalidated", "payload": outcome.to_dict()})

    # ------------------------------------------------------------------
    # Window
    # ------------------------------------------------------------------

    async def expand(self, target: date) -> bool:
        changed = self.window.expand_to_include(target)
        if changed:
            self.ws.publish_sync({"channel": "window", "type": "changed", "payload": self.window.to_dict()})
        await self.store.settle()
        return changed

    async def load_all(self) -> bool:
        changed = self.window.load_all()
        if changed:
            self.ws.publish_sync({"channel": "window", "type": "changed", "payload": self.window.to_dict()})
        await self.store.settle()
        return changed

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def board_for(
        self,
        day: date,
        *,
        members: Optional[Sequence[str]] = None,
        filters: Sequence[FilterChip] = (),
        kind: Optional[TaskKind] = None,
    ) -> TeamBoard:
        """Pack the week containing *day*, widening the load range first if needed."""
        week = self.week_for(day)
        self.window.expand_to_include(week.start)
        self.window.expand_to_include(week.end)
        await self.store.settle()
        board = build_board(
            self.store.tasks,
            week,
            members=members,
            filters=filters,
            kind=kind,
            hide_done=self.config.hide_done,
            strategy=self.config.packing_strategy,  # type: ignore[arg-type]
            thresholds=self.config.workload_thresholds,
        )
        logger.debug("Board summary:\n{}", pretty(summarize_board(board)))
        return board

    def unscheduled(self) -> list[Task]:
        return self.store.unscheduled()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _locate(self, task_id: str) -> None:
        """Widen the window to a task that lies outside the loaded months."""
        for record in await self.source.fetch_all_tasks():
            if str(record.data.get("id")) != task_id:
                continue
            for task in normalize_many([record.data], record.kind, tz=self.config.tzinfo):
                await self.expand(task.start_date)
                await self.expand(task.end_date)

    async def _execute(self, command: Command) -> MutationResult:
        if self.store.get(command.task_id) is None and not self.window.is_all_loaded:
            await self._locate(command.task_id)
        if self.store.get(command.task_id) is None:
            raise TaskNotFoundError(command.task_id)
        return await self.mutations.execute(command)

    async def reschedule(self, task_id: str, owner_id: Optional[str], new_date: date) -> MutationResult:
        return await self._execute(RescheduleCommand(task_id, owner_id, new_date))

    async def delay(self, task_id: str, new_date: date, reason: str, user_id: Optional[str] = None) -> MutationResult:
        return await self._execute(DelayCommand(task_id, new_date, reason, user_id))

    async def schedule(self, task_id: str, new_date: date) -> MutationResult:
        return await self._execute(ScheduleCommand(task_id, new_date))

    async def insert_record(self, kind: TaskKind, data: Mapping[str, Any]) -> dict[str, Any]:
        row = await self.source.insert_record(kind, data)
        await self.store.settle()
        return row

    async def import_records(self, kind: TaskKind, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        inserted = [await self.source.insert_record(kind, row) for row in rows]
        logger.info("Imported {} {} records", len(inserted), kind.value)
        await self.store.settle()
        return inserted
