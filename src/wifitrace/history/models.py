"""Scan history tables."""

from datetime import UTC, datetime, timedelta

from sqlmodel import Field, SQLModel


class ScanRun(SQLModel, table=True):
    """One instant or scheduled scan."""

    id: int | None = Field(default=None, primary_key=True)
    mode: str = Field(index=True)  # "instant" or "scheduled"
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    threshold: float = 5.0
    snapshot_count: int = 0
    device_count: int = 0
    stopped_early: bool = False


class PresenceRecord(SQLModel, table=True):
    """A presence interval, or a single sighting for instant runs.

    Offsets are seconds since the run's scan loop started.
    """

    id: int | None = Field(default=None, primary_key=True)
    run_id: int = Field(index=True, foreign_key="scanrun.id")
    mac_address: str = Field(index=True)
    is_randomized_mac: bool = False
    ssid: str | None = None
    manufacturer: str = "Unknown"
    network_security: str = "Open"
    channel: int | None = None
    signal_strength: int = -100
    start_offset: float = 0.0
    end_offset: float = 0.0

    @property
    def duration(self) -> float:
        return self.end_offset - self.start_offset

    def absolute_span(self, run: ScanRun) -> tuple[datetime, datetime]:
        """Approximate wall-clock span, anchored at the run's start."""
        return (
            run.started_at + timedelta(seconds=self.start_offset),
            run.started_at + timedelta(seconds=self.end_offset),
        )
