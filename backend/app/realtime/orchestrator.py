"""Connection orchestrator: one state machine per channel, push/pull policy."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from . import events
from .cache import SnapshotCache
from .config import SyncConfig
from .errors import InvalidTransition, PayloadError
from .events import EventBus, EventCallback, Unsubscribe
from .interface import PullSource, PushConnection, PushConnectionFactory
from .models import (
    CategorizedSnapshot,
    CategoryStats,
    Channel,
    ConnectionChange,
    ConnectionRecord,
    ConnectionStatus,
    ErrorEvent,
    MarketStatusChange,
    SessionPhase,
    TransportMode,
)
from .reconnect import ReconnectPolicy
from .scheduler import PullScheduler
from .session_clock import SessionClock
from .state_machine import Trigger, next_state
from .supervisor import HealthSupervisor
from .transforms import normalize

logger = logging.getLogger(__name__)

# Push infrastructure only exists for crypto; the others run on pulls.
PUSH_ELIGIBLE: frozenset[Channel] = frozenset({Channel.CRYPTO})


class SyncService:
    """Keeps every channel supplied with data over push or pull.

    Policy:
      - Push-eligible channels start on the WebSocket. On failure they retry
        with exponential backoff; once ReconnectPolicy gives up they fall back
        to pull for the rest of the process lifetime. Only force_push_mode()
        brings them back.
      - Pull-only channels go straight to pull-mode and stay there. The
        session phase changes their polling period, never their mode.

    Every mutation of a ConnectionRecord goes through _transition(), which
    consults the state table and emits ``connection_change`` when the
    (status, mode) pair actually changes.

    Lifecycle:
        service = create_sync_service()
        unsubscribe = service.subscribe("movers_update", on_movers)
        await service.initialize()
        # ... app runs ...
        await service.shutdown()
    """

    def __init__(
        self,
        pull_source: PullSource,
        push_factory: PushConnectionFactory | None = None,
        push_urls: dict[Channel, str] | None = None,
        config: SyncConfig | None = None,
        clock: SessionClock | None = None,
        bus: EventBus | None = None,
        cache: SnapshotCache | None = None,
        push_channels: frozenset[Channel] = PUSH_ELIGIBLE,
    ) -> None:
        self._config = config or SyncConfig()
        self.clock = clock or SessionClock()
        self.bus = bus or EventBus()
        self.cache = cache or SnapshotCache()
        self.policy = ReconnectPolicy(
            base_delay=self._config.base_reconnect_delay,
            max_attempts=self._config.max_reconnect_attempts,
            max_delay=self._config.max_reconnect_delay,
        )

        self._pull_source = pull_source
        self._push_factory = push_factory
        self._push_urls = dict(push_urls or {})
        # A channel can only use push if we also know how and where to connect
        self._push_channels = frozenset(
            ch for ch in push_channels if push_factory is not None and ch in self._push_urls
        )

        self._scheduler = PullScheduler(
            source=pull_source,
            clock=self.clock,
            deliver=self._deliver_pulled,
            report_error=self._report_error,
            open_period=self._config.open_period,
            closed_period=self._config.closed_period,
            max_consecutive_errors=self._config.max_consecutive_errors,
            error_backoff=self._config.error_backoff,
        )
        self._supervisor = HealthSupervisor(self, interval=self._config.health_interval)

        self._records: dict[Channel, ConnectionRecord] = {
            ch: ConnectionRecord(channel=ch, mode=self._default_mode(ch)) for ch in Channel
        }
        self._retry_timers: dict[Channel, asyncio.TimerHandle] = {}
        self._phase_task: asyncio.Task | None = None
        self._phase: SessionPhase | None = None
        self._initialized = False
        self._shutdown = False

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Assign each channel its initial mode and start the background loops."""
        if self._initialized:
            logger.info("SyncService already initialized")
            return
        if self._shutdown:
            logger.warning("SyncService was shut down; construct a new one to restart")
            return

        self._initialized = True
        self.check_phase()

        for channel in Channel:
            if self.is_push_eligible(channel):
                self._connect(channel)
            else:
                self._enter_pull(channel, Trigger.POLL)

        self._phase_task = asyncio.create_task(self._phase_loop(), name="session-phase")
        self._supervisor.start()
        logger.info(
            "SyncService initialized: push=%s pull=%s phase=%s",
            sorted(ch.value for ch in self._push_channels),
            sorted(ch.value for ch in Channel if ch not in self._push_channels),
            self._phase.value if self._phase else None,
        )

    async def shutdown(self) -> None:
        """Close every transport, cancel every timer, drop every subscriber.

        Safe to call multiple times. Callbacks arriving afterwards are no-ops.
        """
        if self._shutdown:
            return
        self._shutdown = True
        logger.info("SyncService shutting down")

        self._supervisor.stop()
        if self._phase_task and not self._phase_task.done():
            self._phase_task.cancel()
        self._phase_task = None
        self._clear_timers()

        transports = [r.transport for r in self._records.values() if r.transport is not None]
        for conn in transports:
            conn.close()
        for conn in transports:
            await conn.wait_closed()

        await self._scheduler.stop_all()
        await self._pull_source.close()

        self.bus.clear()
        for channel, record in self._records.items():
            self._transition(channel, Trigger.STOP)
            record.reset(self._default_mode(channel))
        self.cache.clear()
        self._initialized = False
        logger.info("SyncService stopped")

    async def __aenter__(self) -> SyncService:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()

    # --- Commands ---

    def reconnect(self, channel: Channel) -> bool:
        """Manual reconnect. Cancels any pending backoff and retries now.

        A channel that is pull-only or has permanently fallen back restarts its
        poller instead; push is never re-attempted from here.
        """
        if not self._accepting_commands():
            return False
        record = self._records[channel]
        if not self.is_push_eligible(channel) or record.fallback_locked:
            logger.info("Reconnect %s: restarting poller (pull)", channel.value)
            self._scheduler.stop_polling(channel)
            self._enter_pull(channel, Trigger.FALLBACK if self.is_push_eligible(channel) else Trigger.POLL)
            return True

        logger.info("Reconnect %s: new push attempt", channel.value)
        record.reconnect_attempts = 0
        self._connect(channel)
        return True

    def reconnect_all(self) -> list[Channel]:
        """Reconnect every channel that is sitting in ``disconnected``."""
        reconnected = []
        for channel, record in self._records.items():
            if record.status is ConnectionStatus.DISCONNECTED and self.reconnect(channel):
                reconnected.append(channel)
            else:
                logger.debug("Reconnect-all: %s is %s, leaving it", channel.value, record.status.value)
        return reconnected

    def force_push_mode(self, channel: Channel) -> bool:
        """Lift a permanent fallback and attempt push again from attempt 0."""
        if not self._accepting_commands():
            return False
        if not self.is_push_eligible(channel):
            logger.warning("force_push_mode(%s) ignored: channel is pull-only", channel.value)
            return False
        record = self._records[channel]
        record.fallback_locked = False
        record.reconnect_attempts = 0
        logger.info("Forcing %s to push", channel.value)
        self._connect(channel)
        return True

    def force_pull_mode(self, channel: Channel) -> bool:
        """Move a channel to pull. For push channels this is sticky like a fallback."""
        if not self._accepting_commands():
            return False
        record = self._records[channel]
        if self.is_push_eligible(channel):
            record.fallback_locked = True
        logger.info("Forcing %s to pull", channel.value)
        self._enter_pull(channel, Trigger.FALLBACK)
        return True

    async def refresh(self, channel: Channel) -> bool:
        """Run one pull cycle now. Returns True if new data was delivered."""
        if not self._accepting_commands():
            return False
        if self._records[channel].mode is not TransportMode.PULL:
            logger.debug("Refresh %s skipped: channel is on push", channel.value)
            return False
        return await self._scheduler.poll_once(channel)

    def check_phase(self, now=None) -> bool:
        """Recompute the session phase; on change emit and re-time the pollers."""
        phase = self.clock.phase(now)
        if phase is self._phase:
            return False
        previous, self._phase = self._phase, phase
        logger.info("Session phase: %s -> %s", previous.value if previous else None, phase.value)
        self.bus.emit(events.MARKET_STATUS_CHANGE, MarketStatusChange(is_open=phase is SessionPhase.OPEN, phase=phase))
        self._scheduler.notify_phase_change()
        return True

    # --- Queries ---

    def subscribe(self, event: str, callback: EventCallback) -> Unsubscribe:
        return self.bus.subscribe(event, callback)

    def get_last_cached_data(self, channel: Channel) -> list | None:
        return self.cache.records(channel)

    def get_categories(self, channel: Channel = Channel.MOVERS) -> CategorizedSnapshot | None:
        return self.cache.categories(channel)

    def get_record(self, channel: Channel) -> ConnectionRecord | None:
        return self._records.get(channel)

    def records(self) -> list[ConnectionRecord]:
        return list(self._records.values())

    def is_push_eligible(self, channel: Channel) -> bool:
        return channel in self._push_channels

    def is_polling(self, channel: Channel) -> bool:
        return self._scheduler.is_polling(channel)

    @property
    def phase(self) -> SessionPhase | None:
        return self._phase

    @property
    def scheduler(self) -> PullScheduler:
        return self._scheduler

    @property
    def supervisor(self) -> HealthSupervisor:
        return self._supervisor

    def get_status(self) -> dict[str, Any]:
        """Introspection snapshot for dashboards and health endpoints."""
        channels = {}
        for channel, record in self._records.items():
            snapshot = self.cache.get(channel)
            info = record.to_dict()
            info["push_eligible"] = self.is_push_eligible(channel)
            info["polling"] = self._scheduler.is_polling(channel)
            info["retry_pending"] = channel in self._retry_timers
            info["consecutive_errors"] = self._scheduler.consecutive_errors(channel)
            info["cache_size"] = len(snapshot.records) if snapshot else 0
            info["cache_age"] = self.cache.age(channel)
            info["stale"] = snapshot is not None and not self.cache.is_fresh(channel, self._config.cache_max_age)
            channels[channel.value] = info

        return {
            "initialized": self._initialized,
            "shutdown": self._shutdown,
            "market": self.clock.status().to_dict(),
            "polling_period": self._scheduler.period(),
            "polling_channels": [ch.value for ch in self._scheduler.polling_channels()],
            "channels": channels,
            "subscribers": self.bus.subscriber_counts(),
            "health_corrections": self._supervisor.corrections,
        }

    # --- State machine ---

    def _transition(self, channel: Channel, trigger: Trigger) -> bool:
        record = self._records[channel]
        try:
            status, mode = next_state(record.status, record.mode, trigger)
        except InvalidTransition as e:
            logger.warning("%s: %s", channel.value, e)
            return False

        changed = (status, mode) != (record.status, record.mode)
        if changed:
            logger.info(
                "%s: %s/%s -> %s/%s (%s)",
                channel.value, record.status.value, record.mode.value, status.value, mode.value, trigger.value,
            )
        record.status, record.mode = status, mode
        if changed and not self._shutdown:
            self.bus.emit(events.CONNECTION_CHANGE, ConnectionChange(channel=channel, status=status, mode=mode))
        return True

    def _connect(self, channel: Channel) -> None:
        record = self._records[channel]
        self._cancel_retry(channel)
        self._close_transport(record)
        self._scheduler.stop_polling(channel)
        if not self._transition(channel, Trigger.CONNECT):
            return

        url = self._push_urls[channel]
        logger.info("Connecting %s (attempt %d) -> %s", channel.value, record.reconnect_attempts + 1, url)
        conn = self._push_factory(channel, url, _ChannelHandler(self))
        record.transport = conn
        try:
            conn.start()
        except Exception as e:
            logger.warning("Could not start push connection for %s: %s", channel.value, e)
            self._report_error(channel, str(e))
            self._push_failed(channel)

    def _enter_pull(self, channel: Channel, trigger: Trigger) -> None:
        record = self._records[channel]
        self._cancel_retry(channel)
        self._close_transport(record)
        # Poller first: pull-mode must never be observable without one
        self._scheduler.start_polling(channel)
        if not self._transition(channel, trigger):
            self._scheduler.stop_polling(channel)

    def _push_failed(self, channel: Channel) -> None:
        """Decide between another backoff round and permanent fallback."""
        record = self._records[channel]
        record.transport = None
        record.connected_at = None

        if self.policy.should_retry(record.reconnect_attempts):
            delay = self.policy.delay(record.reconnect_attempts)
            record.reconnect_attempts += 1
            self._transition(channel, Trigger.RETRY)
            logger.info(
                "%s: retry %d/%d in %.1fs",
                channel.value, record.reconnect_attempts, self.policy.max_attempts, delay,
            )
            loop = asyncio.get_running_loop()
            self._retry_timers[channel] = loop.call_later(delay, self._retry, channel)
            return

        logger.warning(
            "%s: push failed %d times, falling back to pull permanently",
            channel.value, record.reconnect_attempts + 1,
        )
        record.fallback_locked = True
        self._enter_pull(channel, Trigger.FALLBACK)

    def _retry(self, channel: Channel) -> None:
        """Backoff timer callback."""
        self._retry_timers.pop(channel, None)
        if self._shutdown:
            return
        try:
            if self._records[channel].status is not ConnectionStatus.RECONNECTING:
                logger.debug("%s: retry cancelled, state moved on", channel.value)
                return
            self._records[channel].reconnects += 1
            self._connect(channel)
        except Exception:
            logger.exception("Retry for %s failed", channel.value)

    def _cancel_retry(self, channel: Channel) -> None:
        handle = self._retry_timers.pop(channel, None)
        if handle is not None:
            handle.cancel()

    def _clear_timers(self) -> None:
        for handle in self._retry_timers.values():
            handle.cancel()
        self._retry_timers.clear()

    def _close_transport(self, record: ConnectionRecord) -> None:
        conn, record.transport = record.transport, None
        if conn is not None:
            conn.close()

    # --- Push callbacks (via _ChannelHandler) ---

    def _is_current(self, conn: PushConnection) -> bool:
        """False for callbacks from superseded connections or after shutdown."""
        return not self._shutdown and self._records[conn.channel].transport is conn

    def _on_open(self, conn: PushConnection) -> None:
        if not self._is_current(conn):
            return
        record = self._records[conn.channel]
        record.reconnect_attempts = 0
        record.connected_at = time.time()
        self._transition(conn.channel, Trigger.OPENED)

    def _on_update(self, conn: PushConnection, data: Any, timestamp: Any) -> None:
        if not self._is_current(conn):
            return
        channel = conn.channel
        record = self._records[channel]
        record.messages += 1
        record.last_message_at = time.time()
        try:
            records = normalize(channel, data)
        except PayloadError as e:
            logger.warning("Dropping %s update: %s", channel.value, e)
            self._report_error(channel, str(e))
            return
        self._deliver(channel, records)

    def _on_frame_error(self, conn: PushConnection, message: str) -> None:
        if self._is_current(conn):
            self._report_error(conn.channel, message)

    def _on_close(self, conn: PushConnection, code: int | None, reason: str) -> None:
        if not self._is_current(conn):
            return
        logger.info("%s push closed (code=%s %s)", conn.channel.value, code, reason)
        self._push_failed(conn.channel)

    def _on_error(self, conn: PushConnection, exc: BaseException) -> None:
        if not self._is_current(conn):
            return
        self._report_error(conn.channel, str(exc) or type(exc).__name__)
        self._push_failed(conn.channel)

    # --- Data path ---

    def _deliver(self, channel: Channel, records: tuple) -> bool:
        """Diff against the cache; emit only when the fingerprint changed."""
        if self._shutdown:
            return False
        snapshot = self.cache.accept(channel, records)
        if snapshot is None:
            return False
        self.bus.emit(channel.update_event, list(snapshot.records))
        if snapshot.categories is not None:
            self.bus.emit(channel.category_event, CategoryStats(channel=channel, categories=snapshot.categories))
        return True

    def _deliver_pulled(self, channel: Channel, records: tuple) -> bool:
        # The mode may have switched to push while the fetch was in flight
        if self._records[channel].mode is not TransportMode.PULL:
            logger.debug("Dropping %s pull result: channel is on push", channel.value)
            return False
        return self._deliver(channel, records)

    def _report_error(self, channel: Channel, message: str) -> None:
        if self._shutdown:
            return
        self._records[channel].errors += 1
        self.bus.emit(events.ERROR, ErrorEvent(channel=channel, message=message))

    # --- Internal ---

    def _default_mode(self, channel: Channel) -> TransportMode:
        return TransportMode.PUSH if self.is_push_eligible(channel) else TransportMode.PULL

    def _accepting_commands(self) -> bool:
        if self._shutdown or not self._initialized:
            logger.warning("Command ignored: SyncService is not running")
            return False
        return True

    async def _phase_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.phase_tick)
            try:
                self.check_phase()
            except Exception:
                logger.exception("Session phase check failed")


class _ChannelHandler:
    """PushHandler adapter; every callback is isolated from the transport."""

    def __init__(self, service: SyncService) -> None:
        self._service = service

    def on_open(self, conn: PushConnection) -> None:
        self._guard("open", self._service._on_open, conn)

    def on_update(self, conn: PushConnection, data: Any, timestamp: Any) -> None:
        self._guard("update", self._service._on_update, conn, data, timestamp)

    def on_frame_error(self, conn: PushConnection, message: str) -> None:
        self._guard("frame error", self._service._on_frame_error, conn, message)

    def on_close(self, conn: PushConnection, code: int | None, reason: str) -> None:
        self._guard("close", self._service._on_close, conn, code, reason)

    def on_error(self, conn: PushConnection, exc: BaseException) -> None:
        self._guard("error", self._service._on_error, conn, exc)

    @staticmethod
    def _guard(what: str, fn, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Push %s callback failed for %s", what, args[0].channel.value)
