"""Synchronous publish/subscribe registry for engine events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Event names. Per-channel update events are Channel.update_event.
CONNECTION_CHANGE = "connection_change"
ERROR = "error"
MARKET_STATUS_CHANGE = "market_status_change"

EventCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class _Registration:
    """One subscribe() call. The same callback may hold several."""

    __slots__ = ("callback",)

    def __init__(self, callback: EventCallback) -> None:
        self.callback = callback


class EventBus:
    """Maps event names to ordered subscriber lists.

    emit() is synchronous and fire-and-forget: callbacks run in registration
    order, each isolated so one failure cannot starve the others, and nothing
    is queued for events without subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[_Registration]] = {}

    def subscribe(self, event: str, callback: EventCallback) -> Unsubscribe:
        """Register ``callback`` for ``event``. Returns an idempotent unsubscribe handle.

        The handle removes only its own registration.
        """
        registration = _Registration(callback)
        self._subscribers.setdefault(event, []).append(registration)

        def unsubscribe() -> None:
            self._remove(event, lambda entry: entry is registration)

        return unsubscribe

    def unsubscribe(self, event: str, callback: EventCallback) -> None:
        """Remove one registration of ``callback``. No-op if absent."""
        self._remove(event, lambda entry: entry.callback == callback)

    def emit(self, event: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every subscriber of ``event``. Returns the delivery count."""
        registrations = self._subscribers.get(event)
        if not registrations:
            return 0

        delivered = 0
        # Copy: a callback may unsubscribe itself mid-emit
        for registration in list(registrations):
            try:
                registration.callback(payload)
                delivered += 1
            except Exception:
                logger.exception("Subscriber for %r raised", event)
        return delivered

    def clear(self) -> None:
        self._subscribers.clear()

    def subscriber_counts(self) -> dict[str, int]:
        return {event: len(registrations) for event, registrations in self._subscribers.items()}

    def __len__(self) -> int:
        return sum(len(registrations) for registrations in self._subscribers.values())

    def _remove(self, event: str, match: Callable[[_Registration], bool]) -> None:
        registrations = self._subscribers.get(event)
        if not registrations:
            return
        for i, entry in enumerate(registrations):
            if match(entry):
                del registrations[i]
                break
        else:
            return
        if not registrations:
            del self._subscribers[event]
