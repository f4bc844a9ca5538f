"""Scan driver: samples every scanner at a fixed cadence and feeds the tracker."""

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from wifitrace.clock import Clock, MonotonicClock
from wifitrace.errors import ScanUnavailable
from wifitrace.presence.models import PresenceInterval
from wifitrace.presence.tracker import PresenceTracker
from wifitrace.scanner.base import BaseScanner, Sighting, Snapshot
from wifitrace.vendor import normalize_mac

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one scan run."""

    mode: str  # "instant" or "scheduled"
    started_at: datetime
    finished_at: datetime
    threshold: float
    intervals: list[PresenceInterval] = field(default_factory=list)
    sightings: list[Sighting] = field(default_factory=list)
    snapshot_count: int = 0
    stopped_early: bool = False


class ScanRunner:
    """Alternates "acquire snapshot" and "sleep until next tick".

    All scanners are queried concurrently each tick, but their sightings are
    merged into one snapshot and ingested from this task only.
    """

    def __init__(
        self,
        scanners: Sequence[BaseScanner],
        tracker: PresenceTracker | None = None,
        clock: Clock | None = None,
        sample_interval: float = 5,
        scan_duration: float = 60,
        scan_timeout: float = 30,
        start_after: int = 0,
    ) -> None:
        if not scanners:
            raise ValueError("ScanRunner needs at least one scanner")
        self.scanners = list(scanners)
        self.tracker = tracker or PresenceTracker()
        self.clock = clock or MonotonicClock()
        self.sample_interval = sample_interval
        self.scan_duration = scan_duration
        self.scan_timeout = scan_timeout
        self.start_after = start_after
        self.result: RunResult | None = None
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        """Ask the loop to finish after the current tick."""
        if not self._stop.is_set():
            logger.info("Stop requested, finishing scan")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early on a stop request."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _scan_one(self, scanner: BaseScanner) -> list[Sighting]:
        try:
            return await asyncio.wait_for(scanner.scan(), timeout=self.scan_timeout)
        except TimeoutError as e:
            raise ScanUnavailable(
                f"{scanner.name} scan timed out after {self.scan_timeout}s"
            ) from e

    async def acquire(self) -> list[Sighting]:
        """Query every scanner once and merge the results.

        Raises:
            ScanUnavailable: If any scanner fails.
        """
        results = await asyncio.gather(
            *(self._scan_one(s) for s in self.scanners), return_exceptions=True
        )
        merged: list[Sighting] = []
        for scanner, result in zip(self.scanners, results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, ScanUnavailable):
                    raise result
                raise ScanUnavailable(f"{scanner.name} scan failed: {result}") from result
            merged.extend(result)
        return merged

    async def _countdown(self) -> None:
        for remaining in range(self.start_after, 0, -1):
            if self._stop.is_set():
                return
            logger.info("Scan starts in %d seconds", remaining)
            await self._sleep(1)

    async def run_instant(self) -> RunResult:
        """Take a single snapshot without tracking."""
        started_at = datetime.now(UTC)
        logger.info("Scan was set to be instant, starting scan")
        latest: dict[str, Sighting] = {}
        for sighting in await self.acquire():
            latest[normalize_mac(sighting.mac_address)] = sighting
        self.result = RunResult(
            mode="instant",
            started_at=started_at,
            finished_at=datetime.now(UTC),
            threshold=self.tracker.threshold,
            sightings=list(latest.values()),
            snapshot_count=1,
        )
        return self.result

    async def run(self) -> RunResult:
        """Sample until the scan duration elapses or a stop is requested.

        The tracker is finalized on every exit path, including cancellation
        and scan failure; ``self.result`` then holds whatever was collected.
        """
        started_at = datetime.now(UTC)
        logger.info("Scan was set to be delayed")
        await self._countdown()

        logger.info("Scan started, it will last for %s seconds", self.scan_duration)
        start = self.clock.now()
        ticks = 0
        tick = 0  # index of the cadence slot the last scan started in
        try:
            while not self._stop.is_set() and self.clock.now() - start < self.scan_duration:
                sightings = await self.acquire()
                elapsed = self.clock.now() - start
                self.tracker.ingest(Snapshot(elapsed, sightings))
                ticks += 1
                # Slots that passed during a slow scan are skipped, not replayed
                due = max(tick + 1, math.ceil(elapsed / self.sample_interval))
                if due > tick + 1:
                    logger.debug("Scan overran its slot, skipping %d tick(s)", due - tick - 1)
                tick = due
                await self._sleep(start + tick * self.sample_interval - self.clock.now())
        finally:
            intervals = self.tracker.finalize(self.clock.now() - start)
            self.result = RunResult(
                mode="scheduled",
                started_at=started_at,
                finished_at=datetime.now(UTC),
                threshold=self.tracker.threshold,
                intervals=intervals,
                snapshot_count=ticks,
                stopped_early=self._stop.is_set(),
            )
            logger.info(
                "Scan finished: %d snapshot(s), %d device(s), %d interval(s)",
                ticks,
                len(self.tracker.devices()),
                len(intervals),
            )
        return self.result
