"""Factory for building a fully wired SyncService."""

from __future__ import annotations

import logging

from .config import SyncConfig
from .models import Channel
from .orchestrator import SyncService

logger = logging.getLogger(__name__)


def create_sync_service(config: SyncConfig | None = None) -> SyncService:
    """Create the sync service with sources chosen from the configuration.

    - MARKET_SYNC_API_URL set and non-empty → HttpPullSource, plus WebSocket
      push for crypto when MARKET_SYNC_WS_URL is also set
    - Otherwise → simulated pull and push feeds (GBM simulation)

    Returns an uninitialized service. Caller must await service.initialize().
    """
    config = config or SyncConfig.from_env()
    api_url = config.api_url.strip()

    if api_url:
        from .http_source import HttpPullSource
        from .push_transport import websocket_factory

        source = HttpPullSource(api_url, timeout=config.request_timeout)
        ws_url = config.ws_url.strip().rstrip("/")
        if ws_url:
            logger.info("Market sync: live API at %s, push via %s", api_url, ws_url)
            return SyncService(
                pull_source=source,
                push_factory=websocket_factory(keepalive_interval=config.keepalive_interval),
                push_urls={Channel.CRYPTO: f"{ws_url}/crypto"},
                config=config,
            )
        logger.info("Market sync: live API at %s, pull only", api_url)
        return SyncService(pull_source=source, config=config)

    from .simulator import MarketSimulator, SimulatedPullSource, simulated_push_factory

    logger.info("Market sync: GBM simulator")
    simulator = MarketSimulator()
    return SyncService(
        pull_source=SimulatedPullSource(simulator),
        push_factory=simulated_push_factory(simulator),
        push_urls={Channel.CRYPTO: "simulator://crypto"},
        config=config,
    )
