"""Scan history persistence and queries."""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from wifitrace.errors import PersistenceFailure
from wifitrace.history.models import PresenceRecord, ScanRun
from wifitrace.report import WifiRecord, sanitize_string, security_label
from wifitrace.runner import RunResult
from wifitrace.scanner.base import Sighting
from wifitrace.vendor import VendorResolver, is_locally_administered, normalize_mac

logger = logging.getLogger(__name__)


def _record_from_sighting(
    run_id: int, sighting: Sighting, resolver: VendorResolver, start: float, end: float
) -> PresenceRecord:
    return PresenceRecord(
        run_id=run_id,
        mac_address=normalize_mac(sighting.mac_address),
        is_randomized_mac=is_locally_administered(sighting.mac_address),
        ssid=sighting.ssid,
        manufacturer=resolver.resolve(sighting.mac_address),
        network_security=security_label(sighting),
        channel=sighting.channel,
        signal_strength=sighting.signal_strength,
        start_offset=start,
        end_offset=end,
    )


def save_run(session: Session, result: RunResult, resolver: VendorResolver) -> ScanRun:
    """Persist a finished run and its intervals (or sightings, for instant runs).

    Raises:
        PersistenceFailure: If the database rejects the write.
    """
    if result.mode == "instant":
        devices = {normalize_mac(s.mac_address) for s in result.sightings}
    else:
        devices = {i.mac_address for i in result.intervals}

    run = ScanRun(
        mode=result.mode,
        started_at=result.started_at,
        finished_at=result.finished_at,
        threshold=result.threshold,
        snapshot_count=result.snapshot_count,
        device_count=len(devices),
        stopped_early=result.stopped_early,
    )
    try:
        session.add(run)
        session.flush()
        if run.id is None:
            raise PersistenceFailure("Database did not assign an id to the scan run")

        if result.mode == "instant":
            for sighting in result.sightings:
                session.add(_record_from_sighting(run.id, sighting, resolver, 0.0, 0.0))
        else:
            for interval in result.intervals:
                if interval.attributes is None:
                    continue
                session.add(
                    _record_from_sighting(
                        run.id, interval.attributes, resolver, interval.start, interval.end
                    )
                )

        session.commit()
        session.refresh(run)
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceFailure(f"Cannot save scan run: {e}") from e

    logger.info("Saved %s run %s with %d device(s)", run.mode, run.id, run.device_count)
    return run


def list_runs(session: Session, limit: int = 50, mode: str | None = None) -> list[ScanRun]:
    """Most recent runs first."""
    stmt = select(ScanRun)
    if mode is not None:
        stmt = stmt.where(ScanRun.mode == mode)
    stmt = stmt.order_by(ScanRun.started_at.desc()).limit(limit)  # type: ignore[attr-defined]
    return list(session.exec(stmt).all())


def get_run(session: Session, run_id: int) -> ScanRun | None:
    return session.get(ScanRun, run_id)


def get_run_records(session: Session, run_id: int) -> list[PresenceRecord]:
    """Records of one run in the order they were saved."""
    stmt = (
        select(PresenceRecord)
        .where(PresenceRecord.run_id == run_id)
        .order_by(PresenceRecord.id)  # type: ignore[arg-type]
    )
    return list(session.exec(stmt).all())


def get_device_history(
    session: Session, mac: str, limit: int = 100
) -> list[tuple[PresenceRecord, ScanRun]]:
    """Intervals recorded for one device across runs, newest run first."""
    stmt = (
        select(PresenceRecord, ScanRun)
        .join(ScanRun, PresenceRecord.run_id == ScanRun.id)  # type: ignore[arg-type]
        .where(PresenceRecord.mac_address == normalize_mac(mac))
        .order_by(ScanRun.started_at.desc(), PresenceRecord.start_offset)  # type: ignore[attr-defined]
        .limit(limit)
    )
    return [(record, run) for record, run in session.exec(stmt).all()]


def records_to_report(
    records: list[PresenceRecord], instant: bool = False
) -> dict[str, dict[str, Any]]:
    """Rebuild the persisted report shape from stored records.

    Instant runs carry no durations, matching the instant report.
    """
    grouped: dict[str, list[PresenceRecord]] = {}
    for record in records:
        grouped.setdefault(record.mac_address, []).append(record)

    report: dict[str, dict[str, Any]] = {}
    for n, (mac, spans) in enumerate(grouped.items(), start=1):
        spans.sort(key=lambda r: r.start_offset)
        latest = spans[-1]
        entry = WifiRecord(
            ssid=sanitize_string(latest.ssid),
            mac=mac,
            manufacturer=sanitize_string(latest.manufacturer),
            network_security=latest.network_security,
            channel=latest.channel,
            wifi_durations=",".join(
                f"{int(r.start_offset)}-{int(r.end_offset)}" for r in spans
            ),
            intervals=[(round(r.start_offset, 3), round(r.end_offset, 3)) for r in spans],
            total_seconds=round(sum(r.duration for r in spans), 3),
        )
        if instant:
            entry.wifi_durations = ""
            entry.intervals = []
        report[str(n)] = entry.model_dump()
    return report
