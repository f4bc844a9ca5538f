"""Presence interval value types."""

from dataclasses import dataclass, field

from wifitrace.scanner.base import Sighting


@dataclass(frozen=True)
class PresenceInterval:
    """A maximal span during which a device was seen with no gap above the threshold."""

    mac_address: str
    start: float
    end: float
    attributes: Sighting | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    def overlaps(self, other: "PresenceInterval") -> bool:
        return self.start <= other.end and other.start <= self.end


@dataclass(frozen=True)
class SnapshotDiff:
    """Visibility change between two consecutive snapshots."""

    appeared: frozenset[str] = field(default_factory=frozenset)
    vanished: frozenset[str] = field(default_factory=frozenset)
    present: frozenset[str] = field(default_factory=frozenset)

    @property
    def changed(self) -> bool:
        return bool(self.appeared or self.vanished)
