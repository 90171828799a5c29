"""Connection state machine: (status, trigger) -> (status, mode)."""

from __future__ import annotations

from enum import Enum

from .errors import InvalidTransition
from .models import ConnectionStatus, TransportMode


class Trigger(str, Enum):
    CONNECT = "connect"  # Open (or re-open) a push connection
    OPENED = "opened"  # Push transport reported open
    RETRY = "retry"  # Push failed, backoff timer scheduled
    FALLBACK = "fallback"  # Retries exhausted or operator forced pull
    POLL = "poll"  # Pull-only channel starts or resumes polling
    STOP = "stop"  # Shutdown


S = ConnectionStatus
PUSH = TransportMode.PUSH
PULL = TransportMode.PULL

# None as the mode means "keep the record's current mode"
TRANSITIONS: dict[tuple[ConnectionStatus, Trigger], tuple[ConnectionStatus, TransportMode | None]] = {
    (S.DISCONNECTED, Trigger.CONNECT): (S.CONNECTING, PUSH),
    (S.RECONNECTING, Trigger.CONNECT): (S.CONNECTING, PUSH),
    (S.CONNECTED, Trigger.CONNECT): (S.CONNECTING, PUSH),
    (S.CONNECTING, Trigger.CONNECT): (S.CONNECTING, PUSH),
    (S.PULL_MODE, Trigger.CONNECT): (S.CONNECTING, PUSH),
    (S.CONNECTING, Trigger.OPENED): (S.CONNECTED, PUSH),
    (S.CONNECTING, Trigger.RETRY): (S.RECONNECTING, PUSH),
    (S.CONNECTED, Trigger.RETRY): (S.RECONNECTING, PUSH),
    (S.DISCONNECTED, Trigger.FALLBACK): (S.PULL_MODE, PULL),
    (S.CONNECTING, Trigger.FALLBACK): (S.PULL_MODE, PULL),
    (S.CONNECTED, Trigger.FALLBACK): (S.PULL_MODE, PULL),
    (S.RECONNECTING, Trigger.FALLBACK): (S.PULL_MODE, PULL),
    (S.PULL_MODE, Trigger.FALLBACK): (S.PULL_MODE, PULL),
    (S.DISCONNECTED, Trigger.POLL): (S.PULL_MODE, PULL),
    (S.CONNECTING, Trigger.POLL): (S.PULL_MODE, PULL),
    (S.RECONNECTING, Trigger.POLL): (S.PULL_MODE, PULL),
    (S.PULL_MODE, Trigger.POLL): (S.PULL_MODE, PULL),
}

# STOP is valid from every state
for _status in ConnectionStatus:
    TRANSITIONS[(_status, Trigger.STOP)] = (S.DISCONNECTED, None)


def next_state(
    status: ConnectionStatus, mode: TransportMode, trigger: Trigger
) -> tuple[ConnectionStatus, TransportMode]:
    """Look up the transition. Raises InvalidTransition for undefined pairs."""
    try:
        new_status, new_mode = TRANSITIONS[(status, trigger)]
    except KeyError:
        raise InvalidTransition(status, trigger) from None
    return new_status, new_mode or mode
