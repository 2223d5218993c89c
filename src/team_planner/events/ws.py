from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger


CHANNELS = {"tasks", "window", "system"}
DEFAULT_CHANNELS = frozenset({"tasks", "window"})


@dataclass
class _WsClient:
    ws: WebSocket
    channels: set[str] = field(default_factory=lambda: set(DEFAULT_CHANNELS))


class TimelineWebSocketHub:
    """Pushes invalidation notices to connected timeline viewers."""

    def __init__(self) -> None:
        self._clients: dict[int, _WsClient] = {}
        self._counter = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._loop = loop

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def _send(self, websocket: WebSocket, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        await websocket.send_text(json.dumps({"channel": channel, "type": event_type, "payload": payload}))

    async def handle_connection(self, websocket: WebSocket) -> None:
        self.attach_loop(asyncio.get_running_loop())
        await websocket.accept()
        client = _WsClient(ws=websocket)
        cid = id(websocket)
        self._clients[cid] = client
        try:
            await self._send(websocket, "system", "connected", {"channels": sorted(client.channels)})
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    await self._send(websocket, "system", "error", {"detail": "invalid JSON"})
                    continue
                action = message.get("action")
                channels = set(message.get("channels", []))
                if action == "subscribe":
                    client.channels |= channels & CHANNELS
                    await self._send(websocket, "system", "subscribed", {"channels": sorted(client.channels)})
                elif action == "unsubscribe":
                    client.channels -= channels
                    await self._send(websocket, "system", "unsubscribed", {"channels": sorted(client.channels)})
                elif action == "ping":
                    await self._send(websocket, "system", "pong", {})
        except WebSocketDisconnect:
            logger.debug("Websocket client {} disconnected", cid)
        finally:
            self._clients.pop(cid, None)

    async def publish(self, event: dict[str, Any]) -> None:
        self._counter += 1
        payload = json.dumps({**event, "seq": self._counter}, default=str)
        stale: list[int] = []
        for cid, client in list(self._clients.items()):
            if event.get("channel") not in client.channels and event.get("channel") != "system":
                continue
            try:
                await client.ws.send_text(payload)
            except (RuntimeError, OSError, WebSocketDisconnect):
                stale.append(cid)
        for cid in stale:
            self._clients.pop(cid, None)

    def publish_sync(self, event: dict[str, Any]) -> None:
        """Schedule :meth:`publish` from any thread."""
        with self._lock:
            loop = self._loop
        if loop and loop.is_running():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                loop.create_task(self.publish(event))
            else:
                asyncio.run_coroutine_threadsafe(self.publish(event), loop)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop attached; dropping {} event", event.get("channel"))
            return
        self.attach_loop(loop)
        loop.create_task(self.publish(event))
