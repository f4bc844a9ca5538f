"""MAC address normalization and manufacturer lookup."""

import csv
import logging
from pathlib import Path

from mac_vendor_lookup import MacLookup, VendorNotFoundError

from wifitrace.errors import ConfigInvalid

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "Unknown"

_mac_lookup: MacLookup | None = None


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to uppercase colon-separated format."""
    cleaned = mac.strip().upper().replace("-", ":").replace(".", "")
    # Handle bare hex (e.g. "AABBCCDDEEFF")
    if ":" not in cleaned and len(cleaned) == 12:
        cleaned = ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))
    return cleaned


def oui_prefix(mac: str) -> str:
    """First three octets without separators, e.g. "AABBCC"."""
    return "".join(normalize_mac(mac).split(":")[:3])


def is_locally_administered(mac: str) -> bool:
    """Check if a MAC is locally administered (randomized).

    Bit 1 of the first octet is the U/L bit. If set, the address
    is locally administered, typically a randomized MAC.
    """
    try:
        first_octet = int(normalize_mac(mac).split(":")[0], 16)
    except ValueError:
        return False
    return bool(first_octet & 0x02)


def read_oui_csv(path: Path) -> dict[str, str]:
    """Load an OUI table: prefix in column 1, manufacturer in column 2.

    The first row is a header and is skipped. Rows with fewer than three
    columns are ignored.
    """
    table: dict[str, str] = {}
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.reader(f)
            next(reader, None)
            for row in reader:
                if len(row) >= 3:
                    table[row[1].strip().upper()] = row[2].strip()
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise ConfigInvalid(f"Cannot read OUI table {path}: {e}") from e
    logger.info("Loaded %d OUI prefixes from %s", len(table), path)
    return table


class VendorResolver:
    """Resolve manufacturers from a local OUI table, then mac-vendor-lookup."""

    def __init__(self, oui_csv: Path | None = None, use_mac_lookup: bool = True) -> None:
        self._table = read_oui_csv(oui_csv) if oui_csv is not None else {}
        self._use_mac_lookup = use_mac_lookup
        self._cache: dict[str, str] = {}

    def resolve(self, mac: str) -> str:
        prefix = oui_prefix(mac)
        if prefix in self._cache:
            return self._cache[prefix]

        vendor = self._table.get(prefix)
        if vendor is None and self._use_mac_lookup:
            vendor = _lookup_vendor_db(mac)
        result = vendor or UNKNOWN_VENDOR
        self._cache[prefix] = result
        return result


def _lookup_vendor_db(mac: str) -> str | None:
    global _mac_lookup
    try:
        if _mac_lookup is None:
            _mac_lookup = MacLookup()
        return _mac_lookup.lookup(normalize_mac(mac))
    except VendorNotFoundError:
        return None
    except Exception:
        logger.debug("Vendor lookup failed for %s", mac, exc_info=True)
        return None
