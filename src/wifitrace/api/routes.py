"""REST API endpoints over the scan history."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from wifitrace.database import get_session
from wifitrace.history.models import PresenceRecord, ScanRun
from wifitrace.history.store import (
    get_device_history,
    get_run,
    get_run_records,
    list_runs,
    records_to_report,
)
from wifitrace.vendor import normalize_mac

router = APIRouter(prefix="/api")


# Response models
class RunDetail(BaseModel):
    run: ScanRun
    records: list[PresenceRecord]


class DeviceInterval(BaseModel):
    run_id: int
    run_mode: str
    start: datetime
    end: datetime
    duration_seconds: float
    ssid: str | None
    network_security: str
    channel: int | None


@router.get("/runs")
def runs(
    limit: int = 50,
    mode: str | None = None,
    session: Session = Depends(get_session),
) -> list[ScanRun]:
    return list_runs(session, limit=limit, mode=mode)


@router.get("/runs/{run_id}")
def run_detail(
    run_id: int,
    session: Session = Depends(get_session),
) -> RunDetail:
    run = get_run(session, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunDetail(run=run, records=get_run_records(session, run_id))


@router.get("/runs/{run_id}/report")
def run_report(
    run_id: int,
    session: Session = Depends(get_session),
) -> dict[str, dict[str, Any]]:
    run = get_run(session, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return records_to_report(get_run_records(session, run_id), instant=run.mode == "instant")


@router.get("/devices/{mac}/intervals")
def device_intervals(
    mac: str,
    limit: int = 100,
    session: Session = Depends(get_session),
) -> dict[str, str | bool | list[DeviceInterval]]:
    history = get_device_history(session, mac, limit=limit)
    if not history:
        raise HTTPException(status_code=404, detail="Device not found")

    intervals = []
    for record, run in history:
        start, end = record.absolute_span(run)
        intervals.append(
            DeviceInterval(
                run_id=run.id or 0,
                run_mode=run.mode,
                start=start,
                end=end,
                duration_seconds=round(record.duration, 3),
                ssid=record.ssid,
                network_security=record.network_security,
                channel=record.channel,
            )
        )
    return {
        "mac_address": normalize_mac(mac),
        "is_randomized_mac": history[0][0].is_randomized_mac,
        "intervals": intervals,
    }
