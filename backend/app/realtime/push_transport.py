"""WebSocket push transport."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import websockets

from .interface import PushConnection, PushHandler
from .models import Channel

logger = logging.getLogger(__name__)

# Frame types that carry no data and are dropped on receipt
CONTROL_FRAMES = frozenset({"heartbeat", "status", "pong"})


class WebSocketConnection(PushConnection):
    """One WebSocket per channel.

    Parses JSON frames, drops heartbeat/status frames, forwards
    ``<channel>_update`` frames to the handler and reports the connection's
    end exactly once. Reconnect policy lives in the orchestrator, never here.
    """

    def __init__(
        self,
        channel: Channel,
        url: str,
        handler: PushHandler,
        keepalive_interval: float = 60.0,
        open_timeout: float = 10.0,
    ) -> None:
        self.channel = channel
        self._url = url
        self._handler = handler
        self._keepalive_interval = keepalive_interval
        self._open_timeout = open_timeout
        self._update_type = channel.update_event
        self._task: asyncio.Task | None = None
        self._closed = False
        self.frames_received = 0

    @property
    def url(self) -> str:
        return self._url

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name=f"push-{self.channel.value}")

    def close(self) -> None:
        self._closed = True
        if self._task and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    # --- Internals ---

    async def _run(self) -> None:
        keepalive: asyncio.Task | None = None
        try:
            async with websockets.connect(
                self._url,
                open_timeout=self._open_timeout,
                ping_interval=None,  # Application-level keepalive below
                close_timeout=5,
            ) as ws:
                if self._closed:
                    return
                logger.info("Push connection open: %s -> %s", self.channel.value, self._url)
                self._handler.on_open(self)
                keepalive = asyncio.create_task(self._keepalive(ws))

                try:
                    async for raw in ws:
                        if self._closed:
                            return
                        self._dispatch(raw)
                except websockets.ConnectionClosed:
                    pass  # Reported below from the close code
                code, reason = ws.close_code, ws.close_reason or ""
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._closed:
                logger.warning("Push connection failed: %s: %s", self.channel.value, e)
                self._handler.on_error(self, e)
            return
        finally:
            if keepalive is not None:
                keepalive.cancel()

        if not self._closed:
            logger.info("Push connection closed: %s (code=%s %s)", self.channel.value, code, reason)
            self._handler.on_close(self, code, reason)

    async def _keepalive(self, ws: Any) -> None:
        ping = json.dumps({"type": "ping"})
        while True:
            await asyncio.sleep(self._keepalive_interval)
            try:
                await ws.send(ping)
            except websockets.ConnectionClosed:
                return  # The receive loop reports the close

    def _dispatch(self, raw: str | bytes) -> None:
        """Route one frame. Never raises for bad input."""
        self.frames_received += 1
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Dropping malformed %s frame: %s", self.channel.value, e)
            self._handler.on_frame_error(self, f"Malformed frame: {e}")
            return
        if not isinstance(frame, dict):
            self._handler.on_frame_error(self, f"Unexpected frame of type {type(frame).__name__}")
            return

        frame_type = frame.get("type")
        if frame_type in CONTROL_FRAMES or (frame_type != self._update_type and "status" in frame):
            logger.debug("%s control frame: %s", self.channel.value, frame_type)
            return

        if frame_type != self._update_type:
            logger.info("Ignoring unknown %s frame type: %r", self.channel.value, frame_type)
            return

        data = frame.get("data")
        if data is None:
            self._handler.on_frame_error(self, f"{frame_type} frame without data")
            return
        self._handler.on_update(self, data, frame.get("timestamp"))


def websocket_factory(keepalive_interval: float = 60.0, open_timeout: float = 10.0):
    """Build a PushConnectionFactory producing WebSocketConnection instances."""

    def create(channel: Channel, url: str, handler: PushHandler) -> WebSocketConnection:
        return WebSocketConnection(
            channel,
            url,
            handler,
            keepalive_interval=keepalive_interval,
            open_timeout=open_timeout,
        )

    return create
