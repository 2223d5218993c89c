"""In-process change notifications for the backend tables."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from loguru import logger

from ..utils import _now_iso

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"

ChangeCallback = Callable[["ChangeEvent"], None]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    record_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "type": self.event_type,
            "id": self.record_id,
            "payload": dict(self.payload),
            "at": self.at,
        }


class ChangeHub:
    """Fan change events out to per-table subscribers.

    ``publish`` runs callbacks on the publishing thread. Subscribers that
    live on an event loop are expected to hop onto it themselves.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, tuple[frozenset[str], ChangeCallback]] = {}
        self._counter = 0
        self._lock = threading.Lock()

    def subscribe(self, tables: Iterable[str], callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._counter += 1
            token = self._counter
            self._subscribers[token] = (frozenset(tables), callback)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event*; returns how many subscribers received it."""
        with self._lock:
            targets = [cb for tables, cb in self._subscribers.values() if event.table in tables]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Change subscriber failed for {} {}", event.table, event.record_id)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
