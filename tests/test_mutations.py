from __future__ import annotations

import asyncio
from datetime import date

import pytest

from team_planner.errors import SourceError, TaskNotFoundError
from team_planner.sources.memory import InMemoryTaskSource
from team_planner.timeline.model import Task, TaskKind
from team_planner.timeline.mutations import (
    DelayCommand,
    MutationHandler,
    RescheduleCommand,
    ScheduleCommand,
    reschedule,
)
from team_planner.timeline.store import TaskStore
from team_planner.timeline.window import DateWindowManager

MON, WED, FRI = date(2024, 5, 6), date(2024, 5, 8), date(2024, 5, 10)


class TestRescheduleComputation:
    def test_three_day_task_keeps_its_length(self) -> None:
        task = Task(id="t", start_date=MON, end_date=WED, assignee_ids=["u1"])

        moved = reschedule(task, "u1", WED)

        assert (moved.start_date, moved.end_date) == (WED, FRI)
        assert moved.duration_days == 3
        assert task.start_date == MON

    def test_single_owner_is_replaced_in_its_bucket(self) -> None:
        task = Task(id="t", start_date=MON, end_date=MON, editor_ids=["u1"])

        moved = reschedule(task, "u2", MON)

        assert moved.editor_ids == ["u2"]
        assert moved.assignee_ids == []
        assert moved.owners == ["u2"]

    def test_multi_owner_task_only_moves_in_time(self) -> None:
        task = Task(id="t", start_date=MON, end_date=MON, assignee_ids=["u1"], editor_ids=["u3"])
        moved = reschedule(task, "u2", FRI)
        assert moved.owners == ["u1", "u3"]
        assert moved.start_date == FRI

    def test_pool_task_stays_in_pool(self) -> None:
        task = Task(id="t", start_date=MON, end_date=MON)
        moved = reschedule(task, "u2", WED)
        assert moved.owners == []
        assert moved.is_pool_task


def _setup(**kw) -> tuple[InMemoryTaskSource, TaskStore, MutationHandler]:
    source = InMemoryTaskSource(**kw)
    store = TaskStore(source, DateWindowManager.initial(MON))
    return source, store, MutationHandler(store, source)


def test_execute_persists_changed_fields() -> None:
    async def _run() -> None:
        source, store, handler = _setup(
            tasks=[{"id": "t1", "start_date": "2024-05-06", "end_date": "2024-05-08", "assignee_ids": ["u1"]}]
        )
        await store.refresh()

        result = await handler.execute(RescheduleCommand("t1", "u2", WED))

        assert result.ok is True
        assert set(result.changed) == {"start_date", "end_date", "assignee_ids"}
        assert store.get("t1").end_date == FRI
        row = source.rows(TaskKind.TASK)[0]
        assert (row["start_date"], row["end_date"], row["assignee_ids"]) == ("2024-05-08", "2024-05-10", ["u2"])

    asyncio.run(_run())


def test_failed_persist_rolls_back_and_refetches() -> None:
    async def _run() -> None:
        source, store, handler = _setup(
            tasks=[{"id": "t1", "start_date": "2024-05-06", "end_date": "2024-05-08", "assignee_ids": ["u1"]}]
        )
        await store.refresh()
        fetches_before = source.fetch_count
        source.update_error = SourceError("write refused")

        result = await handler.execute(RescheduleCommand("t1", "u1", FRI))

        assert result.ok is False
        assert result.error == "write refused"
        assert store.get("t1").start_date == MON
        assert result.inverse.snapshot.start_date == MON
        await store.settle()
        assert source.fetch_count == fetches_before + 1

    asyncio.run(_run())


def test_unknown_task_raises() -> None:
    async def _run() -> None:
        _, store, handler = _setup()
        await store.refresh()
        with pytest.raises(TaskNotFoundError):
            await handler.execute(RescheduleCommand("missing", None, MON))

    asyncio.run(_run())


def test_delay_collapses_dates_and_logs_reason() -> None:
    async def _run() -> None:
        source, store, handler = _setup(
            contents=[{"id": "c1", "start_date": "2024-05-06", "end_date": "2024-05-08"}]
        )
        await store.refresh()

        result = await handler.execute(DelayCommand("c1", FRI, reason="client feedback", user_id="u9"))

        assert result.ok
        assert (result.task.start_date, result.task.end_date) == (FRI, FRI)
        logs = await source.list_logs("c1")
        assert logs[-1]["action"] == "DELAYED"
        assert logs[-1]["reason"] == "client feedback"
        assert logs[-1]["kind"] == "CONTENT"

    asyncio.run(_run())


def test_delay_requires_reason() -> None:
    async def _run() -> None:
        _, store, handler = _setup(tasks=[{"id": "t1", "start_date": "2024-05-06"}])
        await store.refresh()
        with pytest.raises(ValueError):
            await handler.execute(DelayCommand("t1", FRI, reason="  "))

    asyncio.run(_run())


def test_schedule_places_backlog_item_on_one_day() -> None:
    async def _run() -> None:
        source, store, handler = _setup(
            contents=[{"id": "c1", "start_date": "2024-04-01", "end_date": "2024-04-03", "is_unscheduled": True}]
        )
        await store.refresh()

        result = await handler.execute(ScheduleCommand("c1", WED))

        assert result.ok
        assert result.task.is_unscheduled is False
        assert (result.task.start_date, result.task.end_date) == (WED, WED)
        assert store.unscheduled() == []
        assert source.rows(TaskKind.CONTENT)[0]["is_unscheduled"] is False

    asyncio.run(_run())


def test_undo_restores_previous_slot() -> None:
    async def _run() -> None:
        _, store, handler = _setup(tasks=[{"id": "t1", "start_date": "2024-05-06", "assignee_ids": ["u1"]}])
        await store.refresh()

        result = await handler.execute(RescheduleCommand("t1", "u2", FRI))
        undone = await handler.undo(result)

        assert undone.ok
        assert store.get("t1").start_date == MON
        assert store.get("t1").owners == ["u1"]

    asyncio.run(_run())
