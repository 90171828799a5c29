"""Exceptions raised inside the sync engine.

None of these escape a timer or transport callback; SyncService converts
them into ``error`` events.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync engine errors."""


class FetchError(SyncError):
    """A pull cycle could not retrieve a payload (network, HTTP status)."""


class PayloadError(SyncError):
    """A payload or frame could not be parsed into records."""


class InvalidTransition(SyncError):
    """No transition is defined for this (status, trigger) pair."""

    def __init__(self, status, trigger) -> None:
        super().__init__(f"No transition from {status.value!r} on {trigger.value!r}")
        self.status = status
        self.trigger = trigger
