"""GL.iNet remote scan via SSH + ``iw dev <iface> scan``.

Connects to a GL.iNet (or any OpenWrt) router over SSH, triggers a scan on
its radio and parses the ``iw`` output locally.
"""

import logging
import re

from wifitrace.errors import ScanUnavailable
from wifitrace.scanner.base import BaseScanner, Sighting
from wifitrace.vendor import normalize_mac

logger = logging.getLogger(__name__)

_VALID_INTERFACE_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_BSS_RE = re.compile(r"^BSS ([0-9a-fA-F:]{17})")
_FREQ_RE = re.compile(r"^freq:\s*(\d+)")
_SIGNAL_RE = re.compile(r"^signal:\s*(-?\d+(?:\.\d+)?)\s*dBm")
_CHANNEL_RE = re.compile(r"(?:DS Parameter set: channel|\* primary channel:)\s*(\d+)")


def _validate_interface_name(name: str) -> str:
    """Validate WiFi interface name to prevent command injection."""
    if not name or len(name) > 15:
        raise ValueError(f"Invalid interface name: {name!r}")
    if not _VALID_INTERFACE_RE.match(name):
        raise ValueError(f"Interface name contains invalid characters: {name!r}")
    return name


def freq_to_channel(freq_mhz: int) -> int | None:
    """Convert a WiFi frequency in MHz to a channel number."""
    if 2412 <= freq_mhz <= 2484:
        if freq_mhz == 2484:
            return 14
        return (freq_mhz - 2407) // 5
    if 5170 <= freq_mhz <= 5825:
        return (freq_mhz - 5000) // 5
    if 5955 <= freq_mhz <= 7115:  # WiFi 6E
        return (freq_mhz - 5950) // 5
    return None


def _security_label(privacy: bool, rsn: bool, wpa: bool) -> str:
    labels = []
    if wpa:
        labels.append("WPA")
    if rsn:
        labels.append("WPA2")
    if not labels and privacy:
        labels.append("WEP")
    return " ".join(labels)


def parse_iw_scan(output: str, source: str = "glinet") -> list[Sighting]:
    """Parse the block-per-BSS output of ``iw dev <iface> scan``."""
    sightings: list[Sighting] = []
    current: dict[str, object] | None = None

    def flush() -> None:
        if current is None:
            return
        freq = current.get("freq")
        channel = current.get("channel")
        if channel is None and isinstance(freq, int):
            channel = freq_to_channel(freq)
        sightings.append(
            Sighting(
                mac_address=normalize_mac(str(current["bssid"])),
                ssid=current.get("ssid") or None,  # type: ignore[arg-type]
                signal_strength=int(current.get("signal", -100)),  # type: ignore[call-overload]
                channel=channel,  # type: ignore[arg-type]
                security=_security_label(
                    bool(current.get("privacy")),
                    bool(current.get("rsn")),
                    bool(current.get("wpa")),
                ),
                source=source,
            )
        )

    for raw in output.splitlines():
        line = raw.strip()
        m = _BSS_RE.match(line)
        if m and not raw[:1].isspace():
            flush()
            current = {"bssid": m.group(1)}
            continue
        if current is None or not line:
            continue

        if m := _FREQ_RE.match(line):
            current["freq"] = int(m.group(1))
        elif m := _SIGNAL_RE.match(line):
            current["signal"] = round(float(m.group(1)))
        elif line.startswith("SSID:"):
            current["ssid"] = line[5:].strip()
        elif line.startswith("capability:"):
            current["privacy"] = "Privacy" in line
        elif line.startswith("RSN:"):
            current["rsn"] = True
        elif line.startswith("WPA:"):
            current["wpa"] = True
        elif m := _CHANNEL_RE.search(line):
            current.setdefault("channel", int(m.group(1)))

    flush()
    return sightings


class GlinetScanner(BaseScanner):
    """Scans from a GL.iNet router's radio over SSH."""

    name = "glinet"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        wifi_interface: str = "wlan0",
        connect_timeout: float = 10,
    ) -> None:
        self.host = host
        self.username = username
        self.password = password
        self.wifi_interface = _validate_interface_name(wifi_interface)
        self.connect_timeout = connect_timeout

    async def scan(self) -> list[Sighting]:
        try:
            import asyncssh
        except ImportError as e:
            raise ScanUnavailable("asyncssh not installed; cannot use GL.iNet scanner") from e

        try:
            async with asyncssh.connect(
                self.host,
                username=self.username,
                password=self.password,
                # TODO: Use known_hosts file for production deployments.
                # known_hosts=None disables host key verification (MITM risk).
                known_hosts=None,
                connect_timeout=self.connect_timeout,
            ) as conn:
                result = await conn.run(f"iw dev {self.wifi_interface} scan", check=False)
        except (OSError, asyncssh.Error) as e:
            raise ScanUnavailable(f"SSH to {self.host} failed: {e}") from e

        if result.exit_status != 0:
            stderr = str(result.stderr or "").strip()
            raise ScanUnavailable(
                f"iw scan on {self.host} exited with status {result.exit_status}: {stderr}"
            )

        sightings = parse_iw_scan(str(result.stdout or ""), source=self.name)
        logger.debug("GL.iNet scan on %s: %d network(s)", self.host, len(sightings))
        return sightings
