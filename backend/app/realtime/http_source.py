"""HTTP pull source backed by httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import FetchError
from .interface import PullSource
from .models import Channel

logger = logging.getLogger(__name__)

# REST path per channel, relative to the API base URL
DEFAULT_PATHS: dict[Channel, str] = {
    Channel.CRYPTO: "/crypto/polling",
    Channel.EQUITY_INDEX: "/stocks/sp500/polling",
    Channel.MOVERS: "/stocks/topgainers/polling?limit=50",
}

# Cloudflare origin timeout: upstream is slow, not broken
SOFT_SKIP_STATUSES = frozenset({524})


class HttpPullSource(PullSource):
    """PullSource that GETs a fixed REST path per channel.

    One shared AsyncClient is created lazily on the first fetch so the
    source can be constructed outside a running event loop.
    """

    def __init__(
        self,
        base_url: str,
        paths: dict[Channel, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._paths = dict(DEFAULT_PATHS)
        if paths:
            self._paths.update(paths)
        self._timeout = timeout
        self._transport = transport  # Injected in tests (httpx.MockTransport)
        self._client: httpx.AsyncClient | None = None

    def url_for(self, channel: Channel) -> str:
        return f"{self._base_url}{self._paths[channel]}"

    async def fetch(self, channel: Channel) -> Any:
        client = self._ensure_client()
        url = self.url_for(channel)
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise FetchError(f"GET {url} failed: {e}") from e

        if response.status_code in SOFT_SKIP_STATUSES:
            logger.warning("%s upstream timeout (HTTP %d), retrying next cycle", channel.value, response.status_code)
            return None
        if response.is_error:
            raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP pull source closed")

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client
