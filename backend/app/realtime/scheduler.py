"""Session-aware pull scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .interface import PullSource
from .models import Channel
from .session_clock import SessionClock
from .transforms import normalize

logger = logging.getLogger(__name__)

# (channel, records) -> True if the update was accepted (fingerprint changed)
Deliver = Callable[[Channel, tuple], bool]
ReportError = Callable[[Channel, str], None]


class PullScheduler:
    """Runs one polling task per channel.

    Cycle: fetch -> normalize -> deliver (cache diff + emit). The period is
    ``open_period`` while the session clock says the market is open and
    ``closed_period`` otherwise, recomputed before every sleep. A phase change
    wakes every loop so the new cadence applies immediately.

    A failing cycle is reported and skipped; the loop always continues. After
    ``max_consecutive_errors`` failures in a row the channel waits
    ``error_backoff`` seconds before trying again.
    """

    def __init__(
        self,
        source: PullSource,
        clock: SessionClock,
        deliver: Deliver,
        report_error: ReportError,
        open_period: float = 5.0,
        closed_period: float = 30.0,
        max_consecutive_errors: int = 3,
        error_backoff: float = 60.0,
    ) -> None:
        self._source = source
        self._clock = clock
        self._deliver = deliver
        self._report_error = report_error
        self._open_period = open_period
        self._closed_period = closed_period
        self._max_errors = max_consecutive_errors
        self._error_backoff = error_backoff

        self._tasks: dict[Channel, asyncio.Task] = {}
        self._wakeups: dict[Channel, asyncio.Event] = {}
        self._locks: dict[Channel, asyncio.Lock] = {}
        self._consecutive_errors: dict[Channel, int] = {}
        self.cycles: dict[Channel, int] = {}

    # --- Public API ---

    def period(self) -> float:
        """Polling period for the current session phase."""
        return self._open_period if self._clock.is_open() else self._closed_period

    def start_polling(self, channel: Channel) -> None:
        """Start the repeating cycle for ``channel``. No-op if already running.

        The first fetch happens right away so a fresh pull channel has data
        without waiting a full period.
        """
        if self.is_polling(channel):
            return
        self._consecutive_errors[channel] = 0
        self._wakeups[channel] = asyncio.Event()
        self._tasks[channel] = asyncio.create_task(self._run(channel), name=f"poll-{channel.value}")
        logger.info("Polling started: %s every %.1fs", channel.value, self.period())

    def stop_polling(self, channel: Channel) -> None:
        task = self._tasks.pop(channel, None)
        self._wakeups.pop(channel, None)
        if task and not task.done():
            task.cancel()
            logger.info("Polling stopped: %s", channel.value)

    def is_polling(self, channel: Channel) -> bool:
        task = self._tasks.get(channel)
        return task is not None and not task.done()

    def polling_channels(self) -> list[Channel]:
        return [channel for channel in self._tasks if self.is_polling(channel)]

    def notify_phase_change(self) -> None:
        """Wake all loops so the next sleep uses the new period."""
        for event in self._wakeups.values():
            event.set()

    def consecutive_errors(self, channel: Channel) -> int:
        return self._consecutive_errors.get(channel, 0)

    async def poll_once(self, channel: Channel) -> bool:
        """Run one fetch-and-diff cycle. Returns True if new data was delivered.

        Cycles for the same channel never interleave.
        """
        lock = self._locks.setdefault(channel, asyncio.Lock())
        async with lock:
            self.cycles[channel] = self.cycles.get(channel, 0) + 1
            try:
                payload = await self._source.fetch(channel)
                if payload is None:
                    return False  # Upstream asked to skip this cycle
                records = normalize(channel, payload)
                accepted = self._deliver(channel, records)
            except Exception as e:
                errors = self._consecutive_errors.get(channel, 0) + 1
                self._consecutive_errors[channel] = errors
                logger.warning("Poll failed for %s (%d in a row): %s", channel.value, errors, e)
                self._report_error(channel, str(e) or type(e).__name__)
                return False

            self._consecutive_errors[channel] = 0
            logger.debug("Poll %s: %d records, %s", channel.value, len(records), "changed" if accepted else "unchanged")
            return accepted

    async def stop_all(self) -> None:
        """Cancel every polling task and wait for them to unwind."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._wakeups.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Internal ---

    def _owns(self, channel: Channel, task: asyncio.Task | None) -> bool:
        return self._tasks.get(channel) is task

    async def _run(self, channel: Channel) -> None:
        task = asyncio.current_task()
        # A stopped task is no longer registered; it exits even if a cancel was lost
        while self._owns(channel, task):
            await self.poll_once(channel)
            if not self._owns(channel, task):
                break
            await self._sleep(channel)

    async def _sleep(self, channel: Channel) -> None:
        errors = self._consecutive_errors.get(channel, 0)
        if errors >= self._max_errors:
            delay = self._error_backoff
            logger.warning("%s: %d consecutive errors, backing off %.0fs", channel.value, errors, delay)
        else:
            delay = self.period()

        wake = self._wakeups.get(channel)
        if wake is None:
            return
        # A wake-up set during the last cycle ends this sleep right away.
        # asyncio.wait never swallows a cancel of the calling task.
        waiter = asyncio.ensure_future(wake.wait())
        try:
            await asyncio.wait({waiter}, timeout=delay)
        finally:
            waiter.cancel()
        wake.clear()
