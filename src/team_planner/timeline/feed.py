from __future__ import annotations

import asyncio
from typing import Callable, Iterable, Optional

from loguru import logger

from ..constants import WATCHED_TABLES
from ..events.hub import ChangeEvent
from ..sources.interfaces import TaskSource
from .store import TaskStore


class ChangeFeedListener:
    """Turns backend change notifications into store re-fetches.

    Every event, whatever the table or row, triggers a re-fetch of the loaded
    range; there is no incremental patching. Events may arrive on any thread
    and are handed to the loop that called :meth:`start`.
    """

    def __init__(self, source: TaskSource, store: TaskStore, tables: Iterable[str] = WATCHED_TABLES) -> None:
        self._source = source
        self._store = store
        self._tables = tuple(tables)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.events_seen = 0

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._unsubscribe is not None:
            return
        self._loop = loop or asyncio.get_running_loop()
        self._unsubscribe = self._source.subscribe_to_changes(self._tables, self._on_event)
        logger.info("Listening for changes on {}", ", ".join(self._tables))

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.info("Stopped listening for changes")

    def _on_event(self, event: ChangeEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._handle(event)
        else:
            loop.call_soon_threadsafe(self._handle, event)

    def _handle(self, event: ChangeEvent) -> None:
        if self._unsubscribe is None:
            return
        self.events_seen += 1
        logger.debug("Change {} on {} row {}; refreshing", event.event_type, event.table, event.record_id)
        self._store.request_refresh()
