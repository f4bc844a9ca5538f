"""Local WiFi scan via NetworkManager's nmcli."""

import asyncio
import logging
import re

from wifitrace.errors import ScanUnavailable
from wifitrace.scanner.base import BaseScanner, Sighting
from wifitrace.vendor import normalize_mac

logger = logging.getLogger(__name__)

_FIELDS = "BSSID,SSID,CHAN,SIGNAL,SECURITY"

# Terse mode escapes ':' and '\' inside values with a backslash
_UNESCAPED_COLON_RE = re.compile(r"(?<!\\):")


def _split_terse(line: str) -> list[str]:
    # A trailing "\\" before ':' is an escaped backslash, not an escaped colon
    line = line.replace("\\\\", "\x00")
    parts = _UNESCAPED_COLON_RE.split(line)
    return [p.replace("\\:", ":").replace("\x00", "\\") for p in parts]


def percent_to_dbm(percent: int) -> int:
    """Map nmcli's 0-100 signal quality to an approximate dBm value."""
    percent = max(0, min(100, percent))
    return percent // 2 - 100


def parse_nmcli_output(output: str, source: str = "nmcli") -> list[Sighting]:
    """Parse ``nmcli -t -f BSSID,SSID,CHAN,SIGNAL,SECURITY device wifi list`` output."""
    sightings: list[Sighting] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = _split_terse(line)
        if len(parts) != 5:
            logger.debug("Skipping malformed nmcli line: %r", line)
            continue
        bssid, ssid, chan, signal, security = parts
        try:
            channel = int(chan) if chan else None
            strength = percent_to_dbm(int(signal)) if signal else -100
        except ValueError:
            logger.debug("Skipping nmcli line with bad numbers: %r", line)
            continue
        if security.strip() == "--":
            security = ""
        sightings.append(
            Sighting(
                mac_address=normalize_mac(bssid),
                ssid=ssid or None,
                signal_strength=strength,
                channel=channel,
                security=security.strip(),
                source=source,
            )
        )
    return sightings


class NmcliScanner(BaseScanner):
    """Runs a fresh nmcli rescan on every call."""

    name = "nmcli"

    def __init__(self, interface: str | None = None, binary: str = "nmcli") -> None:
        self.interface = interface
        self.binary = binary

    def _command(self) -> list[str]:
        cmd = [self.binary, "-t", "-f", _FIELDS, "device", "wifi", "list", "--rescan", "yes"]
        if self.interface:
            cmd += ["ifname", self.interface]
        return cmd

    async def scan(self) -> list[Sighting]:
        cmd = self._command()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ScanUnavailable(f"{self.binary} not found; is NetworkManager installed?") from e
        except PermissionError as e:
            raise ScanUnavailable(f"Not permitted to run {self.binary}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise ScanUnavailable(f"nmcli exited with status {process.returncode}: {message}")

        sightings = parse_nmcli_output(stdout.decode("utf-8", errors="replace"), source=self.name)
        logger.debug("nmcli scan: %d network(s)", len(sightings))
        return sightings
