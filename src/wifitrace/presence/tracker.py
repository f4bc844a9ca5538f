"""Presence interval tracker.

Turns a stream of snapshots into merged, non-overlapping presence
intervals per device. A device's open span ends when it reappears after
a silence longer than the threshold, or when the tracker is finalized.
Closed spans always end at the last sighting, never at the time the
silence was noticed.

The tracker is not thread-safe: ``ingest`` calls must be serialized by
the caller, in non-decreasing timestamp order.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace

from wifitrace.errors import ConfigInvalid, NonMonotonicTimestamp
from wifitrace.presence.models import PresenceInterval, SnapshotDiff
from wifitrace.scanner.base import Sighting, Snapshot
from wifitrace.vendor import normalize_mac

logger = logging.getLogger(__name__)


def _check_threshold(threshold: float) -> float:
    if threshold <= 0:
        raise ConfigInvalid(f"Silence threshold must be positive, got {threshold!r}")
    return threshold


class PresenceTracker:
    """Per-run presence state for every device observed."""

    def __init__(self, threshold: float = 5) -> None:
        self.threshold = _check_threshold(threshold)
        self._last_seen: dict[str, float] = {}
        self._open_start: dict[str, float] = {}
        self._closed: list[PresenceInterval] = []
        self._attributes: dict[str, Sighting] = {}
        self._visible: frozenset[str] = frozenset()
        self._last_snapshot_at: float | None = None
        self.last_diff = SnapshotDiff()

    def ingest(self, snapshot: Snapshot, threshold: float | None = None) -> None:
        """Apply one snapshot.

        Raises:
            ConfigInvalid: If ``threshold`` is not positive.
            NonMonotonicTimestamp: If the snapshot is older than the previous one.
        """
        limit = self.threshold if threshold is None else _check_threshold(threshold)
        t = snapshot.timestamp
        if self._last_snapshot_at is not None and t < self._last_snapshot_at:
            raise NonMonotonicTimestamp(
                f"Snapshot at {t} is earlier than previous snapshot at {self._last_snapshot_at}"
            )

        # Duplicates within one snapshot: last attributes win, timing is unaffected
        seen: dict[str, Sighting] = {}
        for sighting in snapshot.sightings:
            seen[normalize_mac(sighting.mac_address)] = sighting

        for mac, sighting in seen.items():
            self._observe(mac, t, limit)
            self._attributes[mac] = sighting

        self._record_diff(frozenset(seen))
        self._last_snapshot_at = t

    def _observe(self, mac: str, t: float, limit: float) -> None:
        if mac not in self._open_start:
            self._open_start[mac] = t
            self._last_seen[mac] = t
            return

        last = self._last_seen[mac]
        if t - last > limit:
            self._close(mac)
            logger.debug("%s returned after %.1fs of silence", mac, t - last)
            self._open_start[mac] = t
        self._last_seen[mac] = t

    def _close(self, mac: str) -> None:
        interval = PresenceInterval(mac, self._open_start.pop(mac), self._last_seen[mac])
        self._closed.append(interval)

    def _record_diff(self, present: frozenset[str]) -> None:
        self.last_diff = SnapshotDiff(
            appeared=present - self._visible,
            vanished=self._visible - present,
            present=present,
        )
        if self.last_diff.changed:
            logger.debug(
                "Snapshot diff: %d appeared, %d vanished, %d visible",
                len(self.last_diff.appeared),
                len(self.last_diff.vanished),
                len(present),
            )
        self._visible = present

    def finalize(self, now: float | None = None) -> list[PresenceInterval]:
        """Close every open span and return all closed intervals.

        Trailing spans end at the device's last sighting, so ``now`` only
        serves as a sanity check. Calling again without further ingest adds
        nothing.
        """
        if now is not None and self._last_snapshot_at is not None and now < self._last_snapshot_at:
            raise NonMonotonicTimestamp(
                f"Finalize time {now} is earlier than last snapshot at {self._last_snapshot_at}"
            )
        for mac in list(self._open_start):
            self._close(mac)
        if self._closed:
            logger.debug("Finalized %d interval(s)", len(self._closed))
        return [replace(i, attributes=self._attributes.get(i.mac_address)) for i in self._closed]

    # --- Queries ---

    def devices(self) -> list[str]:
        """Identifiers seen so far, in first-sighting order."""
        return list(self._last_seen)

    def intervals_for(self, mac: str) -> list[PresenceInterval]:
        """Closed intervals for one device, ordered by start."""
        key = normalize_mac(mac)
        return [i for i in self._closed if i.mac_address == key]

    def open_spans(self) -> dict[str, tuple[float, float]]:
        """Open spans as ``mac -> (start, last_seen)``."""
        return {mac: (start, self._last_seen[mac]) for mac, start in self._open_start.items()}

    def is_present(self, mac: str, now: float) -> bool:
        key = normalize_mac(mac)
        if key not in self._open_start:
            return False
        return now - self._last_seen[key] <= self.threshold

    def total_presence(self, mac: str) -> float:
        """Seconds of presence, counting closed intervals and any open span."""
        key = normalize_mac(mac)
        total = sum(i.duration for i in self.intervals_for(key))
        if key in self._open_start:
            total += self._last_seen[key] - self._open_start[key]
        return total

    def attributes_for(self, mac: str) -> Sighting | None:
        return self._attributes.get(normalize_mac(mac))


def group_by_device(intervals: Iterable[PresenceInterval]) -> dict[str, list[PresenceInterval]]:
    """Group intervals per device, devices in first-appearance order, spans by start."""
    grouped: dict[str, list[PresenceInterval]] = {}
    for interval in intervals:
        grouped.setdefault(interval.mac_address, []).append(interval)
    for spans in grouped.values():
        spans.sort(key=lambda i: i.start)
    return grouped
