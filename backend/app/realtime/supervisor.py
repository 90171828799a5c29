"""Periodic self-healing sweep over connection records."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .models import Channel, ConnectionStatus, TransportMode

if TYPE_CHECKING:
    from .orchestrator import SyncService

logger = logging.getLogger(__name__)


class HealthSupervisor:
    """Backstop that corrects channels whose state drifted from policy.

    - Pull-only channel not in (pull, pull-mode) with a live poller: re-enter pull.
    - Push channel in (push, disconnected) with attempts left: reconnect.
    - Any channel in pull-mode whose poller died: restart polling.

    sweep() touches nothing when every channel is consistent.
    """

    def __init__(self, service: SyncService, interval: float = 15.0) -> None:
        self._service = service
        self._interval = interval
        self._task: asyncio.Task | None = None
        self.corrections = 0

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_loop(), name="health-supervisor")

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> list[Channel]:
        """Check every channel once. Returns the channels that were corrected."""
        service = self._service
        corrected: list[Channel] = []

        for record in service.records():
            channel = record.channel
            polling = service.is_polling(channel)

            if not service.is_push_eligible(channel):
                if record.mode is not TransportMode.PULL or record.status is not ConnectionStatus.PULL_MODE or not polling:
                    logger.warning(
                        "Health: %s drifted to %s/%s (polling=%s), forcing pull",
                        channel.value, record.status.value, record.mode.value, polling,
                    )
                    service.force_pull_mode(channel)
                    corrected.append(channel)
                continue

            if (
                record.mode is TransportMode.PUSH
                and record.status is ConnectionStatus.DISCONNECTED
                and service.policy.should_retry(record.reconnect_attempts)
            ):
                logger.warning("Health: %s push channel is disconnected, reconnecting", channel.value)
                service.reconnect(channel)
                corrected.append(channel)
            elif record.status is ConnectionStatus.PULL_MODE and not polling:
                logger.warning("Health: %s in pull-mode without a poller, restarting", channel.value)
                service.force_pull_mode(channel)
                corrected.append(channel)

        self.corrections += len(corrected)
        return corrected

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Health sweep failed")
