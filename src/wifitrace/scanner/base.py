"""Base interface for WiFi scan sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Sighting:
    """One network observed in a single scan."""

    mac_address: str
    ssid: str | None
    signal_strength: int  # dBm (negative, e.g. -45)
    channel: int | None
    security: str  # raw security descriptor; empty string means open
    source: str  # "nmcli", "glinet", "monitor" or "mock"

    @property
    def is_secured(self) -> bool:
        return bool(self.security.strip())


@dataclass
class Snapshot:
    """All sightings from one sampling tick, stamped with a monotonic time."""

    timestamp: float
    sightings: list[Sighting] = field(default_factory=list)


class BaseScanner(ABC):
    """Abstract base for all scan backends."""

    name: str = "base"

    @abstractmethod
    async def scan(self) -> list[Sighting]:
        """Return the networks currently visible.

        Raises:
            ScanUnavailable: If the backend cannot produce a scan.
        """
