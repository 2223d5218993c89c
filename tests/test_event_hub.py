from __future__ import annotations

import asyncio
import threading

from team_planner.events.ws import TimelineWebSocketHub


def test_publish_sync_from_background_thread_uses_attached_loop() -> None:
    async def _run() -> None:
        hub = TimelineWebSocketHub()
        received: list[dict[str, object]] = []
        done = asyncio.Event()

        async def _fake_publish(event: dict[str, object]) -> None:
            received.append(event)
            done.set()

        hub.publish = _fake_publish  # type: ignore[method-assign]
        hub.attach_loop(asyncio.get_running_loop())

        worker = threading.Thread(target=lambda: hub.publish_sync({"channel": "tasks", "type": "invalidated"}))
        worker.start()
        worker.join(timeout=2)

        await asyncio.wait_for(done.wait(), timeout=2)
        assert received == [{"channel": "tasks", "type": "invalidated"}]

    asyncio.run(_run())


def test_publish_sync_without_loop_is_dropped() -> None:
    hub = TimelineWebSocketHub()
    hub.publish_sync({"channel": "tasks", "type": "invalidated"})
    assert hub.client_count == 0
