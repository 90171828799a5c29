"""Runtime configuration for the sync engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

ENV_PREFIX = "MARKET_SYNC_"


@dataclass(frozen=True)
class SyncConfig:
    """All tunables, in seconds unless noted.

    Every field can be overridden from the environment as
    ``MARKET_SYNC_<FIELD_NAME_UPPER>``, e.g. ``MARKET_SYNC_OPEN_PERIOD=2``.
    """

    # Endpoints. Empty api_url selects the offline simulator.
    api_url: str = ""
    ws_url: str = ""

    # Reconnect policy (push)
    base_reconnect_delay: float = 5.0
    max_reconnect_attempts: int = 3
    max_reconnect_delay: float = 30.0

    # Pull cadence
    open_period: float = 5.0
    closed_period: float = 30.0
    max_consecutive_errors: int = 3
    error_backoff: float = 60.0
    request_timeout: float = 30.0

    # Background loops
    health_interval: float = 15.0
    phase_tick: float = 60.0
    keepalive_interval: float = 60.0

    # A snapshot older than this is reported as stale in get_status()
    cache_max_age: float = 180.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SyncConfig:
        """Build a config from ``MARKET_SYNC_*`` variables, ignoring blanks."""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper(), "").strip()
            if not raw:
                continue
            try:
                overrides[f.name] = _coerce(f.type, raw)
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, f.name.upper(), raw)
        return cls(**overrides)


def _coerce(type_name: str, raw: str):
    # Annotations are strings under `from __future__ import annotations`
    if type_name == "int":
        return int(raw)
    if type_name == "float":
        return float(raw)
    return raw
