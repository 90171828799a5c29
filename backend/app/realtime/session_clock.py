"""US equity trading-session clock."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .models import SessionPhase

VENUE_TIMEZONE = "America/New_York"

# NYSE full-day closures
US_MARKET_HOLIDAYS: frozenset[str] = frozenset(
    {
        "2024-01-01", "2024-01-15", "2024-02-19", "2024-03-29", "2024-05-27",
        "2024-06-19", "2024-07-04", "2024-09-02", "2024-11-28", "2024-12-25",
        "2025-01-01", "2025-01-09", "2025-01-20", "2025-02-17", "2025-04-18",
        "2025-05-26", "2025-06-19", "2025-07-04", "2025-09-01", "2025-11-27",
        "2025-12-25",
        "2026-01-01", "2026-01-19", "2026-02-16", "2026-04-03", "2026-05-25",
        "2026-06-19", "2026-07-03", "2026-09-07", "2026-11-26", "2026-12-25",
    }
)


@dataclass(frozen=True, slots=True)
class MarketSession:
    """Phase plus derived timing information for one instant."""

    phase: SessionPhase
    local_time: datetime
    next_boundary: datetime
    next_open: datetime

    @property
    def is_open(self) -> bool:
        return self.phase is SessionPhase.OPEN

    @property
    def time_until_next(self) -> timedelta:
        return self.next_boundary - self.local_time

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "is_open": self.is_open,
            "local_time": self.local_time.isoformat(),
            "next_boundary": self.next_boundary.isoformat(),
            "next_open": self.next_open.isoformat(),
            "seconds_until_next": self.time_until_next.total_seconds(),
        }


class SessionClock:
    """Maps wall-clock time to a SessionPhase. Pure: no I/O, no state.

    Boundaries (venue local time):
        04:00 <= t < 09:30  pre-market
        09:30 <= t < 16:00  open
        16:00 <= t < 20:00  after-hours
        otherwise           closed
    Weekends and listed holidays override the intraday phases.
    """

    def __init__(
        self,
        tz: str = VENUE_TIMEZONE,
        holidays: frozenset[str] | set[str] = US_MARKET_HOLIDAYS,
        open_time: time = time(9, 30),
        close_time: time = time(16, 0),
        extended_open: time = time(4, 0),
        extended_close: time = time(20, 0),
    ) -> None:
        self._tz = ZoneInfo(tz)
        self._holidays = frozenset(holidays)
        self._open = open_time
        self._close = close_time
        self._ext_open = extended_open
        self._ext_close = extended_close

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def localize(self, now: datetime | None = None) -> datetime:
        """Convert ``now`` to venue time. Naive datetimes are taken as UTC."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self._tz)

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() < 5 and day.isoformat() not in self._holidays

    def phase(self, now: datetime | None = None) -> SessionPhase:
        local = self.localize(now)
        if local.weekday() >= 5:
            return SessionPhase.WEEKEND
        if local.date().isoformat() in self._holidays:
            return SessionPhase.HOLIDAY

        minutes = local.hour * 60 + local.minute
        if _minutes(self._open) <= minutes < _minutes(self._close):
            return SessionPhase.OPEN
        if _minutes(self._ext_open) <= minutes < _minutes(self._open):
            return SessionPhase.PRE_MARKET
        if _minutes(self._close) <= minutes < _minutes(self._ext_close):
            return SessionPhase.AFTER_HOURS
        return SessionPhase.CLOSED

    def is_open(self, now: datetime | None = None) -> bool:
        return self.phase(now) is SessionPhase.OPEN

    def status(self, now: datetime | None = None) -> MarketSession:
        local = self.localize(now)
        return MarketSession(
            phase=self.phase(local),
            local_time=local,
            next_boundary=self.next_boundary(local),
            next_open=self.next_open(local),
        )

    def next_open(self, now: datetime | None = None) -> datetime:
        """Start of the next regular session strictly after ``now``."""
        local = self.localize(now)
        day = local.date()
        if self.is_trading_day(day) and local < self._at(day, self._open):
            return self._at(day, self._open)
        return self._at(self._next_trading_day(day), self._open)

    def next_boundary(self, now: datetime | None = None) -> datetime:
        """Earliest phase boundary strictly after ``now``."""
        local = self.localize(now)
        day = local.date()
        if self.is_trading_day(day):
            for boundary in (self._ext_open, self._open, self._close, self._ext_close):
                at = self._at(day, boundary)
                if at > local:
                    return at
        return self._at(self._next_trading_day(day), self._ext_open)

    # --- Internals ---

    def _next_trading_day(self, day: date) -> date:
        day += timedelta(days=1)
        while not self.is_trading_day(day):
            day += timedelta(days=1)
        return day

    def _at(self, day: date, t: time) -> datetime:
        return datetime.combine(day, t, tzinfo=self._tz)


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute
