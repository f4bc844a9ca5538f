"""Report assembly and JSON persistence."""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from wifitrace.errors import PersistenceFailure
from wifitrace.presence.models import PresenceInterval
from wifitrace.presence.tracker import group_by_device
from wifitrace.scanner.base import Sighting
from wifitrace.vendor import VendorResolver, normalize_mac

logger = logging.getLogger(__name__)

INSTANT_REPORT_NAME = "wifi_instantdata.json"
SCHEDULED_REPORT_NAME = "wifi_scheduleddata.json"


class WifiRecord(BaseModel):
    """One device entry of a persisted report."""

    ssid: str
    mac: str
    manufacturer: str
    network_security: str
    channel: int | None
    wifi_durations: str = ""
    intervals: list[tuple[float, float]] = []
    total_seconds: float = 0.0


def sanitize_string(value: str | None) -> str:
    """Replace quote characters that break downstream consumers with spaces."""
    if not value:
        return ""
    return value.replace("'", " ").replace("`", " ").replace('"', " ")


def security_label(sighting: Sighting) -> str:
    return "Secured" if sighting.is_secured else "Open"


def format_durations(intervals: Iterable[PresenceInterval]) -> str:
    """Render spans as "start-end,start-end" in whole seconds."""
    return ",".join(f"{int(i.start)}-{int(i.end)}" for i in intervals)


def _record(sighting: Sighting, resolver: VendorResolver) -> WifiRecord:
    return WifiRecord(
        ssid=sanitize_string(sighting.ssid),
        mac=normalize_mac(sighting.mac_address),
        manufacturer=sanitize_string(resolver.resolve(sighting.mac_address)),
        network_security=security_label(sighting),
        channel=sighting.channel,
    )


def build_instant_report(
    sightings: Iterable[Sighting], resolver: VendorResolver
) -> dict[str, dict[str, Any]]:
    """Report for a single scan: one entry per sighting, no durations."""
    report: dict[str, dict[str, Any]] = {}
    for n, sighting in enumerate(sightings, start=1):
        report[str(n)] = _record(sighting, resolver).model_dump()
    return report


def build_scheduled_report(
    intervals: Iterable[PresenceInterval], resolver: VendorResolver
) -> dict[str, dict[str, Any]]:
    """Report for a delayed scan: one entry per device with its presence spans.

    Devices are numbered in the order their first interval closed.
    """
    report: dict[str, dict[str, Any]] = {}
    for spans in group_by_device(intervals).values():
        attributes = spans[-1].attributes
        if attributes is None:
            logger.warning("No attributes recorded for %s, skipping", spans[0].mac_address)
            continue
        record = _record(attributes, resolver)
        record.wifi_durations = format_durations(spans)
        record.intervals = [(round(i.start, 3), round(i.end, 3)) for i in spans]
        record.total_seconds = round(sum(i.duration for i in spans), 3)
        report[str(len(report) + 1)] = record.model_dump()
    return report


def write_report(report: Mapping[str, Any], path: Path) -> Path:
    """Write a report as pretty-printed JSON.

    Raises:
        PersistenceFailure: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
            f.write("\n")
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceFailure(f"Cannot write report to {path}: {e}") from e
    logger.info("Wrote %d record(s) to %s", len(report), path)
    return path
