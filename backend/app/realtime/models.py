"""Data models for the market-data sync engine."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Channel(str, Enum):
    """Closed set of independently synchronized data feeds."""

    CRYPTO = "crypto"
    EQUITY_INDEX = "equity-index"
    MOVERS = "movers"

    @property
    def update_event(self) -> str:
        """Bus event name carrying this channel's normalized records."""
        return f"{self.value}_update"

    @property
    def category_event(self) -> str:
        return f"{self.value}_category_stats"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    PULL_MODE = "pull-mode"

    @property
    def serving(self) -> bool:
        """True for the two states in which data is actually flowing."""
        return self in (ConnectionStatus.CONNECTED, ConnectionStatus.PULL_MODE)


class TransportMode(str, Enum):
    PUSH = "push"
    PULL = "pull"


class SessionPhase(str, Enum):
    OPEN = "open"
    PRE_MARKET = "pre-market"
    AFTER_HOURS = "after-hours"
    CLOSED = "closed"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"


class MoverCategory(str, Enum):
    GAINERS = "top_gainers"
    LOSERS = "top_losers"
    MOST_ACTIVE = "most_actively_traded"


@dataclass
class ConnectionRecord:
    """Per-channel connection state. Mutated only by SyncService."""

    channel: Channel
    mode: TransportMode
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    reconnect_attempts: int = 0
    transport: Any = None  # Live PushConnection handle, or None
    fallback_locked: bool = False  # Push abandoned for the process lifetime

    # Counters for get_status()
    messages: int = 0
    errors: int = 0
    reconnects: int = 0
    connected_at: float | None = None
    last_message_at: float | None = None

    def reset(self, mode: TransportMode) -> None:
        """Return to the freshly constructed state (used on shutdown)."""
        self.mode = mode
        self.status = ConnectionStatus.DISCONNECTED
        self.reconnect_attempts = 0
        self.transport = None
        self.fallback_locked = False
        self.messages = 0
        self.errors = 0
        self.reconnects = 0
        self.connected_at = None
        self.last_message_at = None

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "mode": self.mode.value,
            "reconnect_attempts": self.reconnect_attempts,
            "fallback_locked": self.fallback_locked,
            "messages": self.messages,
            "errors": self.errors,
            "reconnects": self.reconnects,
            "connected_at": self.connected_at,
            "last_message_at": self.last_message_at,
        }


# --- Normalized records ---


@dataclass(frozen=True, slots=True)
class CryptoQuote:
    """Latest trade for one crypto market (e.g. KRW-BTC)."""

    symbol: str
    price: float
    change_rate: float = 0.0
    change_price: float = 0.0
    volume: float = 0.0
    volume_24h: float = 0.0
    source: str = ""

    @property
    def direction(self) -> str:
        if self.change_price > 0:
            return "up"
        elif self.change_price < 0:
            return "down"
        return "flat"

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change_rate": self.change_rate,
            "change_price": self.change_price,
            "volume": self.volume,
            "volume_24h": self.volume_24h,
            "direction": self.direction,
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class EquityQuote:
    """Latest price for one index constituent."""

    symbol: str
    price: float
    volume: float = 0.0
    change_amount: float = 0.0
    change_percent: float = 0.0
    name: str = ""
    timestamp: float = field(default_factory=time.time)  # Unix seconds

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "volume": self.volume,
            "change_amount": self.change_amount,
            "change_percent": self.change_percent,
            "name": self.name,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class MoverQuote:
    """One entry of the movers/rankings feed."""

    symbol: str
    price: float
    change_percent: float
    category: MoverCategory | None = None
    rank: int | None = None
    change_amount: float = 0.0
    volume: float = 0.0
    name: str = ""

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change_percent": self.change_percent,
            "category": self.category.value if self.category else None,
            "rank": self.rank,
            "change_amount": self.change_amount,
            "volume": self.volume,
            "name": self.name,
        }


# --- Snapshots ---


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """Cheap change detector: record count plus the first record's price."""

    count: int
    first_price: float | None

    @classmethod
    def of(cls, records: tuple) -> Fingerprint:
        if not records:
            return cls(count=0, first_price=None)
        return cls(count=len(records), first_price=records[0].price)


@dataclass(frozen=True, slots=True)
class CategorizedSnapshot:
    """Movers records partitioned into the three fixed categories."""

    gainers: tuple[MoverQuote, ...] = ()
    losers: tuple[MoverQuote, ...] = ()
    most_active: tuple[MoverQuote, ...] = ()

    def get(self, category: MoverCategory) -> tuple[MoverQuote, ...]:
        if category is MoverCategory.GAINERS:
            return self.gainers
        if category is MoverCategory.LOSERS:
            return self.losers
        return self.most_active

    def __len__(self) -> int:
        return len(self.gainers) + len(self.losers) + len(self.most_active)

    def to_dict(self) -> dict:
        return {
            category.value: [r.to_dict() for r in self.get(category)]
            for category in MoverCategory
        }


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Last delivered data set for a channel. Replaced whole, never patched."""

    channel: Channel
    records: tuple
    fingerprint: Fingerprint
    timestamp: float = field(default_factory=time.time)
    categories: CategorizedSnapshot | None = None


# --- Event payloads ---


@dataclass(frozen=True, slots=True)
class ConnectionChange:
    channel: Channel
    status: ConnectionStatus
    mode: TransportMode

    def to_dict(self) -> dict:
        return {"channel": self.channel.value, "status": self.status.value, "mode": self.mode.value}


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    channel: Channel
    message: str

    def to_dict(self) -> dict:
        return {"channel": self.channel.value, "message": self.message}


@dataclass(frozen=True, slots=True)
class MarketStatusChange:
    is_open: bool
    phase: SessionPhase

    def to_dict(self) -> dict:
        return {"is_open": self.is_open, "phase": self.phase.value}


@dataclass(frozen=True, slots=True)
class CategoryStats:
    """Per-category counts plus the categorized records for one update."""

    channel: Channel
    categories: CategorizedSnapshot

    @property
    def counts(self) -> dict[str, int]:
        return {category.value: len(self.categories.get(category)) for category in MoverCategory}

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "counts": self.counts,
            "categories": self.categories.to_dict(),
        }
