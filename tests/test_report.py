"""Tests for report assembly and persistence."""

import json

import pytest

from wifitrace.errors import PersistenceFailure
from wifitrace.presence.models import PresenceInterval
from wifitrace.report import (
    build_instant_report,
    build_scheduled_report,
    format_durations,
    sanitize_string,
    write_report,
)
from wifitrace.scanner.base import Sighting
from wifitrace.vendor import VendorResolver


class _StaticResolver(VendorResolver):
    def __init__(self, vendors: dict[str, str]) -> None:
        super().__init__(use_mac_lookup=False)
        self._vendors = vendors

    def resolve(self, mac: str) -> str:
        return self._vendors.get(mac, "Unknown")


def _sighting(mac: str, ssid: str | None = "Net", security: str = "WPA2") -> Sighting:
    return Sighting(
        mac_address=mac,
        ssid=ssid,
        signal_strength=-50,
        channel=11,
        security=security,
        source="test",
    )


A = "AA:BB:CC:00:00:01"
B = "DD:EE:FF:00:00:02"


class TestHelpers:
    def test_sanitize_string(self):
        assert sanitize_string("Bob's \"Net\" `x`") == "Bob s  Net   x "
        assert sanitize_string(None) == ""

    def test_format_durations(self):
        spans = [PresenceInterval(A, 0, 2.9), PresenceInterval(A, 10.2, 11)]
        assert format_durations(spans) == "0-2,10-11"
        assert format_durations([]) == ""


class TestInstantReport:
    def test_one_entry_per_sighting(self):
        resolver = _StaticResolver({A: "Acme"})
        report = build_instant_report(
            [_sighting(A, ssid="Bob's"), _sighting(B, ssid=None, security="")], resolver
        )
        assert list(report) == ["1", "2"]
        assert report["1"] == {
            "ssid": "Bob s",
            "mac": A,
            "manufacturer": "Acme",
            "network_security": "Secured",
            "channel": 11,
            "wifi_durations": "",
            "intervals": [],
            "total_seconds": 0.0,
        }
        assert report["2"]["ssid"] == ""
        assert report["2"]["manufacturer"] == "Unknown"
        assert report["2"]["network_security"] == "Open"

    def test_empty(self):
        assert build_instant_report([], _StaticResolver({})) == {}


class TestScheduledReport:
    def test_groups_intervals_per_device(self):
        intervals = [
            PresenceInterval(A, 0, 2, _sighting(A)),
            PresenceInterval(B, 0, 0, _sighting(B, security="")),
            PresenceInterval(A, 10, 11.5, _sighting(A, ssid="Renamed")),
        ]
        report = build_scheduled_report(intervals, _StaticResolver({A: "Acme"}))
        assert list(report) == ["1", "2"]
        assert report["1"]["mac"] == A
        assert report["1"]["ssid"] == "Renamed"
        assert report["1"]["wifi_durations"] == "0-2,10-11"
        assert report["1"]["intervals"] == [(0, 2), (10, 11.5)]
        assert report["1"]["total_seconds"] == 3.5
        assert report["2"]["network_security"] == "Open"

    def test_skips_intervals_without_attributes(self):
        intervals = [PresenceInterval(A, 0, 1), PresenceInterval(B, 0, 1, _sighting(B))]
        report = build_scheduled_report(intervals, _StaticResolver({}))
        assert list(report) == ["1"]
        assert report["1"]["mac"] == B


class TestWriteReport:
    def test_writes_pretty_json(self, tmp_path):
        path = tmp_path / "out" / "wifi_scheduleddata.json"
        write_report({"1": {"mac": A, "intervals": [(0, 1)]}}, path)
        text = path.read_text(encoding="utf-8")
        assert json.loads(text) == {"1": {"mac": A, "intervals": [[0, 1]]}}
        assert "\n  " in text

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(PersistenceFailure):
            write_report({}, blocker / "report.json")
