"""Abstract contracts between the orchestrator and its I/O collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol

from .models import Channel


class PullSource(ABC):
    """Contract for pull (polling) data providers.

    A source only fetches; it never touches the cache or the event bus.
    PullScheduler decides when to call it and what to do with the result.

    Lifecycle:
        source = HttpPullSource(base_url)
        payload = await source.fetch(Channel.MOVERS)
        # ... app shutting down ...
        await source.close()
    """

    @abstractmethod
    async def fetch(self, channel: Channel) -> Any:
        """Fetch one raw payload for ``channel``.

        Returns the decoded body (a list, or a dict wrapping ``items``/``data``)
        or None when the upstream asked us to skip this cycle. Raises FetchError
        on transport or HTTP failures.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release network resources. Safe to call multiple times."""


class PushHandler(Protocol):
    """Receiver of push connection lifecycle reports.

    Exactly one of on_close / on_error is reported per connection, and only
    after on_open if the connection was established at all.
    """

    def on_open(self, conn: PushConnection) -> None: ...

    def on_update(self, conn: PushConnection, data: Any, timestamp: Any) -> None: ...

    def on_frame_error(self, conn: PushConnection, message: str) -> None: ...

    def on_close(self, conn: PushConnection, code: int | None, reason: str) -> None: ...

    def on_error(self, conn: PushConnection, exc: BaseException) -> None: ...


class PushConnection(ABC):
    """One streaming connection for one channel. Never reconnects by itself."""

    channel: Channel

    @abstractmethod
    def start(self) -> None:
        """Begin connecting in the background. Returns immediately."""

    @abstractmethod
    def close(self) -> None:
        """Tear the connection down without reporting on_close/on_error. Idempotent."""

    @abstractmethod
    async def wait_closed(self) -> None:
        """Wait until the background task has fully unwound."""


# (channel, url, handler) -> unstarted PushConnection
PushConnectionFactory = Callable[[Channel, str, PushHandler], PushConnection]
