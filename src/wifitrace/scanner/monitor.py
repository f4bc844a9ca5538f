"""Monitor mode beacon capture using scapy.

Requires NET_ADMIN + NET_RAW capabilities and a WiFi adapter in monitor mode.
Each scan listens for a short dwell window and reports every access point
whose beacon or probe response was heard.
"""

import asyncio
import logging

from wifitrace.errors import ScanUnavailable
from wifitrace.scanner.base import BaseScanner, Sighting
from wifitrace.vendor import normalize_mac

logger = logging.getLogger(__name__)


class MonitorScanner(BaseScanner):
    """Collects beacons from a monitor mode interface."""

    name = "monitor"

    def __init__(self, interface: str, dwell: float = 2.0) -> None:
        self.interface = interface
        self.dwell = dwell

    async def scan(self) -> list[Sighting]:
        try:
            from scapy.all import AsyncSniffer
        except ImportError as e:
            raise ScanUnavailable("scapy not available; cannot use monitor mode scanner") from e

        found: dict[str, Sighting] = {}

        def _handle_packet(pkt) -> None:  # type: ignore[no-untyped-def]
            sighting = self._parse_packet(pkt)
            if sighting is not None:
                found[sighting.mac_address] = sighting

        try:
            sniffer = AsyncSniffer(iface=self.interface, prn=_handle_packet, store=False)
            sniffer.start()
        except (OSError, RuntimeError) as e:
            raise ScanUnavailable(f"Cannot capture on {self.interface}: {e}") from e

        try:
            await asyncio.sleep(self.dwell)
        finally:
            sniffer.stop()

        logger.debug("Monitor scan on %s: %d network(s)", self.interface, len(found))
        return list(found.values())

    def _parse_packet(self, pkt) -> Sighting | None:  # type: ignore[no-untyped-def]
        from scapy.all import Dot11Beacon, Dot11Elt, Dot11ProbeResp, RadioTap

        if not (pkt.haslayer(Dot11Beacon) or pkt.haslayer(Dot11ProbeResp)):
            return None
        bssid = pkt.addr3 or pkt.addr2
        if not bssid:
            return None

        ssid = None
        if pkt.haslayer(Dot11Elt) and pkt[Dot11Elt].ID == 0:
            raw_ssid = pkt[Dot11Elt].info
            if raw_ssid:
                ssid = raw_ssid.decode("utf-8", errors="ignore") or None

        layer = pkt[Dot11Beacon] if pkt.haslayer(Dot11Beacon) else pkt[Dot11ProbeResp]
        stats = layer.network_stats()
        crypto = stats.get("crypto") or set()
        security = " ".join(sorted(c for c in crypto if c != "OPN"))

        signal = pkt[RadioTap].dBm_AntSignal if pkt.haslayer(RadioTap) else None

        return Sighting(
            mac_address=normalize_mac(bssid),
            ssid=ssid,
            signal_strength=signal if signal is not None else -100,
            channel=stats.get("channel"),
            security=security,
            source=self.name,
        )
