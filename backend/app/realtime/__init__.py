"""Hybrid push/pull market data synchronization.

Public API:
    SyncService         - Orchestrator keeping every channel supplied with data
    create_sync_service - Factory that selects live sources or the simulator
    SyncConfig          - Tunables, overridable from MARKET_SYNC_* variables
    Channel             - Data channels (crypto, equity-index, movers)
    ConnectionStatus    - Per-channel connection status
    TransportMode       - push or pull
    SessionClock        - US equity session phase calculator
    EventBus            - Synchronous publish/subscribe registry
    create_stream_router - FastAPI router factory for the SSE endpoint
"""

from .config import SyncConfig
from .events import EventBus
from .factory import create_sync_service
from .models import Channel, ConnectionStatus, TransportMode
from .orchestrator import SyncService
from .session_clock import SessionClock
from .stream import create_stream_router

__all__ = [
    "SyncService",
    "create_sync_service",
    "SyncConfig",
    "Channel",
    "ConnectionStatus",
    "TransportMode",
    "SessionClock",
    "EventBus",
    "create_stream_router",
]
