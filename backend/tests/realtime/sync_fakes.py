"""Fakes and helpers shared by the sync engine tests.

The fakes stand in for the network: FakePullSource answers fetches from a
per-channel table, FakePushConnection never opens a socket and lets the test
(or an automatic behavior) drive the handler callbacks.
"""

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

from app.realtime.config import SyncConfig
from app.realtime.interface import PullSource, PushConnection
from app.realtime.models import Channel
from app.realtime.orchestrator import SyncService
from app.realtime.session_clock import SessionClock

NEW_YORK = ZoneInfo("America/New_York")

# Wednesday 2025-03-12 11:00 New York: regular session
OPEN_TIME = datetime(2025, 3, 12, 11, 0, tzinfo=NEW_YORK)
# Saturday 2025-03-15 11:00 New York
WEEKEND_TIME = datetime(2025, 3, 15, 11, 0, tzinfo=NEW_YORK)


def crypto_payload(price: float = 95_000_000.0, count: int = 1) -> list:
    return [{"market": f"KRW-C{i}", "trade_price": price + i} for i in range(count)]


def equity_payload(price: float = 190.0) -> dict:
    return {"items": [{"symbol": "AAPL", "price": price}, {"symbol": "MSFT", "current_price": 420.0}]}


def movers_payload(price: float = 24.0) -> dict:
    return {
        "data": [
            {"symbol": "PLTR", "price": price, "change_percentage": "+12.5%", "category": "top_gainers", "rank_position": 1},
            {"symbol": "NIO", "price": 5.1, "change_percentage": "-8.0%", "category": "top_losers", "rank_position": 1},
            {"symbol": "SOFI", "price": 8.5, "change_percentage": "0.4%", "category": "most_actively_traded", "rank_position": 1},
        ]
    }


class FixedClock(SessionClock):
    """SessionClock whose notion of 'now' is set by the test."""

    def __init__(self, now: datetime = WEEKEND_TIME) -> None:
        super().__init__()
        self.now = now

    def localize(self, now=None):
        return super().localize(self.now if now is None else now)


class FakePullSource(PullSource):
    """Serves payloads from ``self.payloads``; an Exception value is raised."""

    def __init__(self, payloads: dict | None = None) -> None:
        self.payloads = {
            Channel.CRYPTO: crypto_payload(),
            Channel.EQUITY_INDEX: equity_payload(),
            Channel.MOVERS: movers_payload(),
        }
        self.payloads.update(payloads or {})
        self.fetches: dict[Channel, int] = {ch: 0 for ch in Channel}
        self.closed = False

    async def fetch(self, channel):
        self.fetches[channel] += 1
        payload = self.payloads[channel]
        if isinstance(payload, Exception):
            raise payload
        return payload

    async def close(self):
        self.closed = True


class FakePushConnection(PushConnection):
    """Push connection driven by the test through its handler."""

    def __init__(self, channel, url, handler, behavior: str | None = None) -> None:
        self.channel = channel
        self.url = url
        self.handler = handler
        self.behavior = behavior
        self.started = False
        self.closed = False

    def start(self):
        self.started = True
        loop = asyncio.get_running_loop()
        if self.behavior == "open":
            loop.call_soon(self.handler.on_open, self)
        elif self.behavior == "fail":
            loop.call_soon(self.handler.on_error, self, ConnectionError("connection refused"))
        elif self.behavior == "raise":
            raise OSError("cannot start")

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None

    # Helpers for tests
    def open(self):
        self.handler.on_open(self)

    def send(self, data, timestamp=None):
        self.handler.on_update(self, data, timestamp)

    def drop(self, code=1006, reason="abnormal closure"):
        self.handler.on_close(self, code, reason)


class FakePushFactory:
    """PushConnectionFactory that records every connection it creates."""

    def __init__(self, behavior: str | None = None) -> None:
        self.behavior = behavior
        self.connections: list[FakePushConnection] = []

    def __call__(self, channel, url, handler):
        conn = FakePushConnection(channel, url, handler, behavior=self.behavior)
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakePushConnection:
        return self.connections[-1]


def fast_config(**overrides) -> SyncConfig:
    """Tiny delays so backoff and polling run within a test's lifetime."""
    values = dict(
        base_reconnect_delay=0.01,
        max_reconnect_attempts=3,
        max_reconnect_delay=0.05,
        open_period=60.0,
        closed_period=60.0,
        error_backoff=60.0,
        health_interval=60.0,
        phase_tick=60.0,
    )
    values.update(overrides)
    return SyncConfig(**values)


def make_service(source=None, factory=None, clock=None, config=None) -> SyncService:
    return SyncService(
        pull_source=source or FakePullSource(),
        push_factory=factory,
        push_urls={Channel.CRYPTO: "ws://test/crypto"} if factory is not None else None,
        config=config or fast_config(),
        clock=clock or FixedClock(),
    )


async def settle(seconds: float = 0.05) -> None:
    """Let scheduled callbacks and polling tasks run."""
    await asyncio.sleep(seconds)
