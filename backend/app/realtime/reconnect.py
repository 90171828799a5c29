"""Exponential backoff schedule for push reconnects."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """delay(n) = base_delay * 2**n, capped at max_delay.

    Attempts are counted by the caller (ConnectionRecord.reconnect_attempts).
    Once ``should_retry`` returns False the caller gives up on push.
    """

    base_delay: float = 5.0
    max_attempts: int = 3
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** max(attempt, 0)), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts
