"""Offline feeds: GBM-driven pull source and push connection.

Used when no API endpoint is configured, so the whole engine (push, pull,
fallback, categorization) can run without network access.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import numpy as np

from .interface import PullSource, PushConnection, PushHandler
from .models import Channel
from .seed_prices import (
    CHANNEL_SIGMA,
    COMPANY_NAMES,
    CRYPTO_SEEDS,
    DEFAULT_MU,
    EQUITY_SEEDS,
    MOVER_SEEDS,
    MOVERS_PER_CATEGORY,
)

logger = logging.getLogger(__name__)

SEEDS: dict[Channel, dict[str, float]] = {
    Channel.CRYPTO: CRYPTO_SEEDS,
    Channel.EQUITY_INDEX: EQUITY_SEEDS,
    Channel.MOVERS: MOVER_SEEDS,
}


class MarketSimulator:
    """Geometric Brownian Motion over every simulated symbol, per channel.

        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Prices of one channel advance together in a single vectorized step.
    ``dt`` is one tick as a fraction of a trading year; the default is scaled
    up so that moves are visible at polling cadence.
    """

    TRADING_SECONDS_PER_YEAR = 252 * 6.5 * 3600
    DEFAULT_DT = 60.0 / TRADING_SECONDS_PER_YEAR  # One minute of drift per tick

    def __init__(self, dt: float = DEFAULT_DT, seed: int | None = None) -> None:
        self._dt = dt
        self._rng = np.random.default_rng(seed)
        self._symbols: dict[Channel, list[str]] = {ch: list(SEEDS[ch]) for ch in Channel}
        self._open: dict[Channel, np.ndarray] = {ch: np.array(list(SEEDS[ch].values()), dtype=float) for ch in Channel}
        self._prices: dict[Channel, np.ndarray] = {ch: prices.copy() for ch, prices in self._open.items()}
        self._volumes: dict[Channel, np.ndarray] = {ch: np.zeros(len(self._symbols[ch])) for ch in Channel}

    def symbols(self, channel: Channel) -> list[str]:
        return list(self._symbols[channel])

    def step(self, channel: Channel) -> dict[str, float]:
        """Advance one channel by one tick. Returns {symbol: price}."""
        sigma = CHANNEL_SIGMA[channel.value]
        prices = self._prices[channel]
        z = self._rng.standard_normal(prices.shape[0])
        drift = (DEFAULT_MU - 0.5 * sigma**2) * self._dt
        diffusion = sigma * np.sqrt(self._dt) * z
        prices *= np.exp(drift + diffusion)
        self._volumes[channel] += self._rng.integers(100, 10_000, size=prices.shape[0])
        return {symbol: float(price) for symbol, price in zip(self._symbols[channel], prices)}

    def change_percent(self, channel: Channel) -> np.ndarray:
        """Percent change of every symbol since the session open."""
        return (self._prices[channel] / self._open[channel] - 1.0) * 100.0

    # --- Raw payloads, shaped like the real REST/WebSocket bodies ---

    def crypto_payload(self) -> list[dict]:
        self.step(Channel.CRYPTO)
        prices = self._prices[Channel.CRYPTO]
        opens = self._open[Channel.CRYPTO]
        volumes = self._volumes[Channel.CRYPTO]
        rows = []
        for i, market in enumerate(self._symbols[Channel.CRYPTO]):
            change = prices[i] - opens[i]
            rows.append(
                {
                    "market": market,
                    "trade_price": round(float(prices[i]), 2),
                    "signed_change_price": round(float(change), 2),
                    "signed_change_rate": round(float(change / opens[i]), 6),
                    "trade_volume": float(self._rng.random()),
                    "acc_trade_volume_24h": float(volumes[i]),
                    "change": "RISE" if change > 0 else "FALL" if change < 0 else "EVEN",
                    "source": "simulator",
                }
            )
        return rows

    def equity_payload(self) -> dict:
        self.step(Channel.EQUITY_INDEX)
        prices = self._prices[Channel.EQUITY_INDEX]
        opens = self._open[Channel.EQUITY_INDEX]
        pct = self.change_percent(Channel.EQUITY_INDEX)
        now_ms = int(time.time() * 1000)
        items = [
            {
                "symbol": symbol,
                "current_price": round(float(prices[i]), 2),
                "volume": int(self._volumes[Channel.EQUITY_INDEX][i]),
                "change_amount": round(float(prices[i] - opens[i]), 2),
                "change_percentage": round(float(pct[i]), 2),
                "company_name": COMPANY_NAMES.get(symbol, ""),
                "timestamp_ms": now_ms,
            }
            for i, symbol in enumerate(self._symbols[Channel.EQUITY_INDEX])
        ]
        return {"items": items}

    def movers_payload(self) -> dict:
        """Rank the movers universe into the three categories, like the real feed."""
        self.step(Channel.MOVERS)
        symbols = self._symbols[Channel.MOVERS]
        prices = self._prices[Channel.MOVERS]
        volumes = self._volumes[Channel.MOVERS]
        pct = self.change_percent(Channel.MOVERS)

        order_up = np.argsort(-pct)[:MOVERS_PER_CATEGORY]
        order_down = np.argsort(pct)[:MOVERS_PER_CATEGORY]
        order_volume = np.argsort(-volumes)[:MOVERS_PER_CATEGORY]

        rows = []
        for category, order in (
            ("top_gainers", order_up),
            ("top_losers", order_down),
            ("most_actively_traded", order_volume),
        ):
            for rank, i in enumerate(order, start=1):
                rows.append(
                    {
                        "symbol": symbols[i],
                        "category": category,
                        "rank_position": rank,
                        "price": round(float(prices[i]), 2),
                        "change_amount": round(float(prices[i] - self._open[Channel.MOVERS][i]), 2),
                        "change_percentage": f"{pct[i]:.2f}%",
                        "volume": int(volumes[i]),
                        "company_name": COMPANY_NAMES.get(symbols[i]),
                    }
                )
        return {"data": rows}

    def payload(self, channel: Channel) -> Any:
        if channel is Channel.CRYPTO:
            return self.crypto_payload()
        if channel is Channel.EQUITY_INDEX:
            return self.equity_payload()
        return self.movers_payload()


class SimulatedPullSource(PullSource):
    """PullSource that answers every fetch from the simulator."""

    def __init__(self, simulator: MarketSimulator | None = None) -> None:
        self._sim = simulator or MarketSimulator()
        self.fetches = 0

    async def fetch(self, channel: Channel) -> Any:
        self.fetches += 1
        return self._sim.payload(channel)

    async def close(self) -> None:
        logger.debug("Simulated pull source closed after %d fetches", self.fetches)


class SimulatedPushConnection(PushConnection):
    """PushConnection that streams simulator frames every ``interval`` seconds.

    Frames go through the same handler callbacks a WebSocket would use.
    """

    def __init__(
        self,
        channel: Channel,
        url: str,
        handler: PushHandler,
        simulator: MarketSimulator,
        interval: float = 1.0,
    ) -> None:
        self.channel = channel
        self.url = url
        self._handler = handler
        self._sim = simulator
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._closed = False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"sim-push-{self.channel.value}")

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

    async def _run(self) -> None:
        await asyncio.sleep(0)  # Open asynchronously, like a real socket
        if self._closed:
            return
        self._handler.on_open(self)
        while not self._closed:
            timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
            self._handler.on_update(self, self._sim.payload(self.channel), timestamp)
            await asyncio.sleep(self._interval)


def simulated_push_factory(simulator: MarketSimulator, interval: float = 1.0):
    """Build a PushConnectionFactory producing SimulatedPushConnection instances."""

    def create(channel: Channel, url: str, handler: PushHandler) -> SimulatedPushConnection:
        return SimulatedPushConnection(channel, url, handler, simulator, interval=interval)

    return create
