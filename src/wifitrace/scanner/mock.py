"""Mock scanner for development and testing.

Produces fake scans with a mix of realistic network behaviors: stable
access points, intermittent hotspots, and randomized-MAC passersby.
"""

import logging
import random

from wifitrace.scanner.base import BaseScanner, Sighting

logger = logging.getLogger(__name__)

# Stable networks (mac, ssid, channel, base dBm, security)
_RESIDENT_NETWORKS = [
    ("AA:BB:CC:11:22:33", "HomeNetwork", 6, -42, "WPA2"),
    ("AA:BB:CC:44:55:66", "HomeNetwork-5G", 36, -48, "WPA2 WPA3"),
    ("AA:BB:CC:77:88:99", "Printer-Direct", 11, -60, ""),
]

_VISITOR_NETWORKS = [
    ("DD:EE:FF:11:22:33", "Pixel-Hotspot", 1, -65, "WPA2"),
    ("DD:EE:FF:44:55:66", "Neighbor-Guest", 11, -78, ""),
]

# Locally administered MACs (randomized: bit 1 of first octet set)
_RANDOM_MACS = [
    "FA:12:34:56:78:9A",
    "F2:AB:CD:EF:01:23",
    "FE:99:88:77:66:55",
]


class MockScanner(BaseScanner):
    """Generates fake scans for development."""

    name = "mock"

    def __init__(self, seed: int | None = None, visitor_rate: float = 0.4) -> None:
        self._random = random.Random(seed)
        self.visitor_rate = visitor_rate
        self._tick = 0

    async def scan(self) -> list[Sighting]:
        sightings = self._generate_sightings()
        self._tick += 1
        logger.debug("Mock scan %d: %d network(s)", self._tick, len(sightings))
        return sightings

    def _generate_sightings(self) -> list[Sighting]:
        rng = self._random
        sightings: list[Sighting] = []

        # Residents: always present with slight signal variation
        for mac, ssid, channel, base_rssi, security in _RESIDENT_NETWORKS:
            sightings.append(
                Sighting(
                    mac_address=mac,
                    ssid=ssid,
                    signal_strength=base_rssi + rng.randint(-5, 5),
                    channel=channel,
                    security=security,
                    source=self.name,
                )
            )

        # Visitors: appear intermittently
        for mac, ssid, channel, base_rssi, security in _VISITOR_NETWORKS:
            if rng.random() < self.visitor_rate:
                sightings.append(
                    Sighting(
                        mac_address=mac,
                        ssid=ssid,
                        signal_strength=base_rssi + rng.randint(-8, 8),
                        channel=channel,
                        security=security,
                        source=self.name,
                    )
                )

        # Random MACs: occasional passersby with weak signal and hidden SSID
        if rng.random() < 0.3:
            sightings.append(
                Sighting(
                    mac_address=rng.choice(_RANDOM_MACS),
                    ssid=None,
                    signal_strength=rng.randint(-90, -75),
                    channel=rng.choice([1, 6, 11]),
                    security="WPA2",
                    source=self.name,
                )
            )

        return sightings
