"""Per-channel snapshot cache with fingerprint-based change detection."""

from __future__ import annotations

import time

from .models import CategorizedSnapshot, Channel, Fingerprint, Snapshot
from .transforms import categorize


class SnapshotCache:
    """Latest accepted data set for each channel.

    Writers: SyncService only (push frames and pull cycles), all on the
    event loop thread, so no locking is needed.
    Readers: get_last_cached_data(), status queries, late subscribers.
    """

    def __init__(self) -> None:
        self._snapshots: dict[Channel, Snapshot] = {}
        self._version: int = 0  # Bumped on every accepted update

    def accept(self, channel: Channel, records: tuple | list, timestamp: float | None = None) -> Snapshot | None:
        """Store ``records`` if their fingerprint differs from the cached one.

        Returns the new Snapshot, or None when the update is a duplicate and
        nothing should be emitted. Movers snapshots carry a freshly built
        CategorizedSnapshot.
        """
        records = tuple(records)
        fingerprint = Fingerprint.of(records)
        previous = self._snapshots.get(channel)
        if previous is not None and previous.fingerprint == fingerprint:
            return None

        categories = categorize(records) if channel is Channel.MOVERS else None
        snapshot = Snapshot(
            channel=channel,
            records=records,
            fingerprint=fingerprint,
            timestamp=timestamp or time.time(),
            categories=categories,
        )
        self._snapshots[channel] = snapshot
        self._version += 1
        return snapshot

    def get(self, channel: Channel) -> Snapshot | None:
        return self._snapshots.get(channel)

    def records(self, channel: Channel) -> list | None:
        """Cached records as a new list, or None if nothing was ever accepted."""
        snapshot = self._snapshots.get(channel)
        if snapshot is None or not snapshot.records:
            return None
        return list(snapshot.records)

    def categories(self, channel: Channel) -> CategorizedSnapshot | None:
        snapshot = self._snapshots.get(channel)
        return snapshot.categories if snapshot else None

    def age(self, channel: Channel, now: float | None = None) -> float | None:
        """Seconds since the last accepted update, or None."""
        snapshot = self._snapshots.get(channel)
        if snapshot is None:
            return None
        return (now or time.time()) - snapshot.timestamp

    def is_fresh(self, channel: Channel, max_age: float) -> bool:
        age = self.age(channel)
        return age is not None and age < max_age

    def remove(self, channel: Channel) -> None:
        self._snapshots.pop(channel, None)

    def clear(self) -> None:
        self._snapshots.clear()

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, channel: Channel) -> bool:
        return channel in self._snapshots
