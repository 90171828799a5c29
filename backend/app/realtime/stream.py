"""SSE streaming endpoint relaying engine events to browsers."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from . import events
from .models import Channel
from .orchestrator import SyncService

logger = logging.getLogger(__name__)

QUEUE_SIZE = 256


def stream_event_names() -> list[str]:
    """Every event name the bridge relays."""
    names = [events.CONNECTION_CHANGE, events.ERROR, events.MARKET_STATUS_CHANGE]
    names.extend(ch.update_event for ch in Channel)
    names.append(Channel.MOVERS.category_event)
    return names


def create_stream_router(service: SyncService) -> APIRouter:
    """Create the SSE streaming router bound to one SyncService."""
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/events")
    async def stream_events(request: Request) -> StreamingResponse:
        """SSE endpoint for engine events.

        Each bus event becomes one SSE message:

            event: crypto_update
            data: [{"symbol": "KRW-BTC", "price": 95000000.0, ...}, ...]

        Includes a retry directive so the browser auto-reconnects on
        disconnection (EventSource built-in behavior).
        """
        return StreamingResponse(
            _generate_events(service, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.get("/status")
    async def stream_status() -> dict[str, Any]:
        return service.get_status()

    return router


class _BusBridge:
    """Bus subscriber that queues formatted SSE messages for one client."""

    def __init__(self, service: SyncService, maxsize: int = QUEUE_SIZE) -> None:
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._unsubscribers = [
            service.subscribe(name, self._make_callback(name)) for name in stream_event_names()
        ]

    def _make_callback(self, name: str):
        def callback(payload: Any) -> None:
            self.push(format_sse(name, payload))

        return callback

    def push(self, message: str) -> None:
        # Slow client: discard the oldest message rather than block the bus
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(message)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []


def format_sse(event: str, payload: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(_jsonable(payload))}\n\n"


def _jsonable(payload: Any) -> Any:
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    if isinstance(payload, (list, tuple)):
        return [_jsonable(item) for item in payload]
    return payload


async def _generate_events(
    service: SyncService,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted engine events.

    Waits up to `interval` seconds for the next event, then checks whether
    the client disconnected (request.is_disconnected()).
    """
    bridge = _BusBridge(service)
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        # Tell the client to retry after 1 second if the connection drops
        yield "retry: 1000\n\n"

        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break
            try:
                message = await asyncio.wait_for(bridge.queue.get(), timeout=interval)
            except asyncio.TimeoutError:
                continue
            yield message
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
    finally:
        bridge.close()
        if bridge.dropped:
            logger.warning("SSE client %s missed %d events", client_ip, bridge.dropped)
