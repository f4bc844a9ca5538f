"""Tests for the scan driver loop."""

import asyncio

import pytest

from wifitrace.clock import ManualClock
from wifitrace.errors import ScanUnavailable
from wifitrace.presence.tracker import PresenceTracker
from wifitrace.runner import ScanRunner
from wifitrace.scanner.base import BaseScanner, Sighting

A = "AA:BB:CC:00:00:01"
B = "DD:EE:FF:00:00:02"


def _sighting(mac: str, source: str = "fake") -> Sighting:
    return Sighting(
        mac_address=mac,
        ssid="Net",
        signal_strength=-50,
        channel=6,
        security="WPA2",
        source=source,
    )


class ScriptedScanner(BaseScanner):
    """Returns a scripted list of MACs per call and advances the clock."""

    name = "scripted"

    def __init__(self, clock: ManualClock, script: list[list[str]], step: float = 1.0) -> None:
        self.clock = clock
        self.script = script
        self.step = step
        self.calls = 0

    async def scan(self) -> list[Sighting]:
        macs = self.script[self.calls] if self.calls < len(self.script) else []
        self.calls += 1
        self.clock.advance(self.step)
        return [_sighting(m, self.name) for m in macs]


class FailingScanner(BaseScanner):
    name = "failing"

    async def scan(self) -> list[Sighting]:
        raise ScanUnavailable("radio missing")


class HangingScanner(BaseScanner):
    name = "hanging"

    async def scan(self) -> list[Sighting]:
        await asyncio.sleep(10)
        return []


def _runner(scanner: BaseScanner, clock: ManualClock, **kwargs) -> ScanRunner:
    options = {"sample_interval": 1, "scan_duration": 5, "scan_timeout": 1}
    options.update(kwargs)
    return ScanRunner(
        [scanner], tracker=PresenceTracker(threshold=2), clock=clock, **options
    )


class TestScheduledRun:
    @pytest.mark.asyncio
    async def test_builds_intervals_from_ticks(self):
        clock = ManualClock()
        # Snapshots land at t=1..8 (clock advances during each scan)
        script = [[A, B], [A], [A], [], [], [A], [A], [B]]
        runner = _runner(ScriptedScanner(clock, script), clock, scan_duration=8)

        result = await runner.run()

        assert result.mode == "scheduled"
        assert result.snapshot_count == 8
        assert not result.stopped_early
        spans = [(i.mac_address, i.start, i.end) for i in result.intervals]
        assert spans == [(A, 1, 3), (B, 1, 1), (A, 6, 7), (B, 8, 8)]

    @pytest.mark.asyncio
    async def test_stops_when_duration_elapses(self):
        clock = ManualClock()
        scanner = ScriptedScanner(clock, [[A]] * 100)
        result = await _runner(scanner, clock, scan_duration=3).run()
        assert scanner.calls == 3
        assert result.snapshot_count == 3

    @pytest.mark.asyncio
    async def test_stop_request_finalizes(self):
        clock = ManualClock()

        class StoppingScanner(ScriptedScanner):
            async def scan(self) -> list[Sighting]:
                sightings = await super().scan()
                if self.calls == 2:
                    runner.request_stop()
                return sightings

        runner = _runner(StoppingScanner(clock, [[A]] * 100), clock, scan_duration=60)
        result = await runner.run()
        assert result.stopped_early
        assert result.snapshot_count == 2
        assert [(i.start, i.end) for i in result.intervals] == [(1, 2)]

    @pytest.mark.asyncio
    async def test_cancellation_finalizes_before_exit(self):
        clock = ManualClock()
        scanner = ScriptedScanner(clock, [[A]] * 100, step=0)
        runner = _runner(scanner, clock, sample_interval=0.05, scan_duration=60)

        task = asyncio.create_task(runner.run())
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.result is not None
        assert [i.mac_address for i in runner.result.intervals] == [A]

    @pytest.mark.asyncio
    async def test_slow_scan_skips_missed_ticks(self):
        clock = ManualClock()

        class SlowFirstScanner(ScriptedScanner):
            def __init__(self) -> None:
                super().__init__(clock, [[A]] * 100)
                self.started: list[float] = []

            async def scan(self) -> list[Sighting]:
                self.started.append(clock.now())
                self.step = 30 if self.calls == 0 else 0.1
                return await super().scan()

        class ClockedRunner(ScanRunner):
            async def _sleep(self, seconds: float) -> None:
                if seconds > 0:
                    clock.advance(seconds)

        scanner = SlowFirstScanner()
        runner = ClockedRunner(
            [scanner], clock=clock, sample_interval=5, scan_duration=48, scan_timeout=1
        )
        await runner.run()

        assert scanner.started == pytest.approx([0, 30, 35, 40, 45])
        gaps = [b - a for a, b in zip(scanner.started, scanner.started[1:])]
        assert all(gap >= 5 - 1e-9 for gap in gaps)

    @pytest.mark.asyncio
    async def test_scan_failure_aborts_run(self):
        runner = _runner(FailingScanner(), ManualClock())
        with pytest.raises(ScanUnavailable, match="radio missing"):
            await runner.run()
        assert runner.result is not None
        assert runner.result.intervals == []

    @pytest.mark.asyncio
    async def test_scan_timeout_is_scan_unavailable(self):
        runner = _runner(HangingScanner(), ManualClock(), scan_timeout=0.05)
        with pytest.raises(ScanUnavailable, match="timed out"):
            await runner.run()


class TestAcquire:
    @pytest.mark.asyncio
    async def test_merges_all_scanners(self):
        clock = ManualClock()
        first = ScriptedScanner(clock, [[A]], step=0)
        second = ScriptedScanner(clock, [[B]], step=0)
        second.name = "second"
        runner = ScanRunner([first, second], clock=clock)
        sightings = await runner.acquire()
        assert [(s.mac_address, s.source) for s in sightings] == [
            (A, "scripted"),
            (B, "second"),
        ]

    @pytest.mark.asyncio
    async def test_one_failure_fails_the_tick(self):
        clock = ManualClock()
        runner = ScanRunner([ScriptedScanner(clock, [[A]]), FailingScanner()], clock=clock)
        with pytest.raises(ScanUnavailable):
            await runner.acquire()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self):
        class BrokenScanner(BaseScanner):
            name = "broken"

            async def scan(self) -> list[Sighting]:
                raise RuntimeError("boom")

        runner = ScanRunner([BrokenScanner()], clock=ManualClock())
        with pytest.raises(ScanUnavailable, match="broken scan failed: boom"):
            await runner.acquire()

    def test_requires_a_scanner(self):
        with pytest.raises(ValueError):
            ScanRunner([])


class TestInstantRun:
    @pytest.mark.asyncio
    async def test_single_snapshot_deduplicated(self):
        clock = ManualClock()
        scanner = ScriptedScanner(clock, [[A, B, A.lower()]])
        result = await ScanRunner([scanner], clock=clock).run_instant()
        assert result.mode == "instant"
        assert result.snapshot_count == 1
        assert sorted(s.mac_address.upper() for s in result.sightings) == [A, B]
        assert result.intervals == []
