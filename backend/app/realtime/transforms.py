"""Payload normalization and movers categorization."""

from __future__ import annotations

import logging
import re
from typing import Any

from .errors import PayloadError
from .models import (
    CategorizedSnapshot,
    Channel,
    CryptoQuote,
    EquityQuote,
    MoverCategory,
    MoverQuote,
)

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def extract_items(payload: Any) -> list:
    """Accept a bare array or an object wrapping one under ``items`` / ``data``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("items", "data"):
            items = payload.get(key)
            if isinstance(items, list):
                return items
    raise PayloadError(f"Expected a list or an object with 'items'/'data', got {type(payload).__name__}")


def normalize(channel: Channel, payload: Any) -> tuple:
    """Turn a raw REST body or push ``data`` array into the channel's records.

    Individual malformed items are skipped; a payload of the wrong shape
    raises PayloadError.
    """
    parse = _PARSERS[channel]
    records = []
    for item in extract_items(payload):
        if not isinstance(item, dict):
            logger.warning("Skipping %s record: expected an object, got %s", channel.value, type(item).__name__)
            continue
        try:
            records.append(parse(item))
        except (KeyError, TypeError, ValueError) as e:
            symbol = item.get("symbol") or item.get("market")
            logger.warning("Skipping %s record %s: %s", channel.value, symbol or "???", e)
    return tuple(records)


def parse_percent(value: Any) -> float:
    """12.5, "12.5", "+12.5%", "(-3.1%)" -> float. Unparseable -> 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER.search(str(value))
    return float(match.group(0)) if match else 0.0


def _number(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


def _parse_crypto(item: dict) -> CryptoQuote:
    return CryptoQuote(
        symbol=item["market"],
        price=float(item["trade_price"]),
        change_rate=_number(item.get("signed_change_rate")),
        change_price=_number(item.get("signed_change_price")),
        volume=_number(item.get("trade_volume")),
        volume_24h=_number(item.get("acc_trade_volume_24h")),
        source=item.get("source", ""),
    )


def _parse_equity(item: dict) -> EquityQuote:
    price = item.get("price")
    if price is None:
        price = item["current_price"]
    timestamp_ms = item.get("timestamp_ms")
    kwargs = {}
    if timestamp_ms is not None:
        kwargs["timestamp"] = float(timestamp_ms) / 1000.0
    return EquityQuote(
        symbol=item["symbol"],
        price=float(price),
        volume=_number(item.get("volume")),
        change_amount=_number(item.get("change_amount")),
        change_percent=parse_percent(item.get("change_percentage")),
        name=item.get("company_name") or "",
        **kwargs,
    )


def _parse_mover(item: dict) -> MoverQuote:
    symbol = item["symbol"]
    price = item.get("price")
    if price is None:
        price = item["current_price"]
    change = item.get("change_percentage", item.get("change_percent"))
    rank = item.get("rank_position")
    try:
        category = MoverCategory(item.get("category"))
    except ValueError:
        category = None
    return MoverQuote(
        symbol=symbol,
        price=float(price),
        change_percent=parse_percent(change),
        category=category,
        rank=int(rank) if rank is not None else None,
        change_amount=_number(item.get("change_amount")),
        volume=_number(item.get("volume")),
        name=item.get("company_name") or item.get("name") or f"{symbol} Inc.",
    )


_PARSERS = {
    Channel.CRYPTO: _parse_crypto,
    Channel.EQUITY_INDEX: _parse_equity,
    Channel.MOVERS: _parse_mover,
}


# --- Movers categorization ---


def categorize(records: tuple[MoverQuote, ...] | list[MoverQuote]) -> CategorizedSnapshot:
    """Partition movers into the three fixed categories and order each one.

    Every record lands in exactly one category. Records without a recognized
    category are placed by the sign of their change percent.
    """
    buckets: dict[MoverCategory, list[MoverQuote]] = {c: [] for c in MoverCategory}
    for record in records:
        buckets[_category_of(record)].append(record)

    return CategorizedSnapshot(
        gainers=tuple(sorted(buckets[MoverCategory.GAINERS], key=_rank_key)),
        losers=tuple(sorted(buckets[MoverCategory.LOSERS], key=_rank_key)),
        most_active=tuple(sorted(buckets[MoverCategory.MOST_ACTIVE], key=_rank_key)),
    )


def _category_of(record: MoverQuote) -> MoverCategory:
    if record.category is not None:
        return record.category
    if record.change_percent > 0:
        return MoverCategory.GAINERS
    if record.change_percent < 0:
        return MoverCategory.LOSERS
    return MoverCategory.MOST_ACTIVE


def _rank_key(record: MoverQuote) -> tuple:
    # Ranked entries first (rank 1 on top), then biggest |move| first
    if record.rank is not None:
        return (0, record.rank, -abs(record.change_percent), record.symbol)
    return (1, 0, -abs(record.change_percent), record.symbol)
