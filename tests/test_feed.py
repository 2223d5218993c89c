from __future__ import annotations

import asyncio
import threading
from datetime import date

from team_planner.events.hub import ChangeEvent, ChangeHub
from team_planner.sources.memory import InMemoryTaskSource
from team_planner.timeline.feed import ChangeFeedListener
from team_planner.timeline.model import TaskKind
from team_planner.timeline.store import TaskStore
from team_planner.timeline.window import DateWindowManager

TODAY = date(2024, 5, 6)


def _wire() -> tuple[InMemoryTaskSource, TaskStore, ChangeFeedListener]:
    source = InMemoryTaskSource(tasks=[{"id": "a", "start_date": "2024-05-06"}])
    store = TaskStore(source, DateWindowManager.initial(TODAY))
    return source, store, ChangeFeedListener(source, store)


def test_insert_triggers_refetch() -> None:
    async def _run() -> None:
        source, store, feed = _wire()
        feed.start()
        await store.refresh()

        await source.insert_record(TaskKind.CONTENT, {"id": "c", "start_date": "2024-05-07"})
        await store.settle()

        assert {t.id for t in store.tasks} == {"a", "c"}
        assert feed.events_seen == 1
        feed.stop()

    asyncio.run(_run())


def test_review_changes_also_refetch() -> None:
    async def _run() -> None:
        source, store, feed = _wire()
        feed.start()
        await store.refresh()

        await source.insert_review({"id": "r1", "task_id": "a", "round": 1})
        await store.settle()

        assert [r.id for r in store.get("a").reviews] == ["r1"]
        feed.stop()

    asyncio.run(_run())


def test_burst_of_events_is_one_fetch() -> None:
    async def _run() -> None:
        source, store, feed = _wire()
        feed.start()
        await store.refresh()
        before = source.fetch_count

        for i in range(5):
            source.hub.publish(ChangeEvent(table="tasks", event_type="UPDATE", record_id=f"x{i}"))
        await store.settle()

        assert source.fetch_count == before + 1
        feed.stop()

    asyncio.run(_run())


def test_events_from_other_threads_are_marshalled_to_the_loop() -> None:
    async def _run() -> None:
        source, store, feed = _wire()
        feed.start()
        await store.refresh()
        before = source.fetch_count

        worker = threading.Thread(
            target=lambda: source.hub.publish(ChangeEvent(table="contents", event_type="DELETE", record_id="gone"))
        )
        worker.start()
        worker.join(timeout=2)
        for _ in range(50):
            await asyncio.sleep(0.01)
            if source.fetch_count > before:
                break
        await store.settle()

        assert source.fetch_count == before + 1
        feed.stop()

    asyncio.run(_run())


def test_stopped_listener_ignores_events() -> None:
    async def _run() -> None:
        source, store, feed = _wire()
        feed.start()
        await store.refresh()
        feed.stop()
        before = source.fetch_count

        await source.insert_record(TaskKind.TASK, {"id": "b", "start_date": "2024-05-06"})
        await store.settle()

        assert source.fetch_count == before
        assert source.hub.subscriber_count == 0

    asyncio.run(_run())


def test_hub_only_delivers_watched_tables() -> None:
    hub = ChangeHub()
    seen: list[str] = []
    unsubscribe = hub.subscribe(["tasks"], lambda event: seen.append(event.table))

    assert hub.publish(ChangeEvent(table="profiles", event_type="UPDATE", record_id="p")) == 0
    assert hub.publish(ChangeEvent(table="tasks", event_type="UPDATE", record_id="t")) == 1
    unsubscribe()
    hub.publish(ChangeEvent(table="tasks", event_type="UPDATE", record_id="t"))

    assert seen == ["tasks"]
