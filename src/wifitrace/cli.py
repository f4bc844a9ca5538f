"""Command line entrypoint: ``wifitrace scan`` and ``wifitrace serve``."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from sqlmodel import Session

import wifitrace.config as config_module
from wifitrace.clock import MonotonicClock
from wifitrace.config import Settings, load_config
from wifitrace.errors import ConfigInvalid, WifitraceError
from wifitrace.presence.tracker import PresenceTracker
from wifitrace.report import (
    INSTANT_REPORT_NAME,
    SCHEDULED_REPORT_NAME,
    build_instant_report,
    build_scheduled_report,
    write_report,
)
from wifitrace.runner import RunResult, ScanRunner
from wifitrace.scanner.base import BaseScanner
from wifitrace.vendor import VendorResolver

logger = logging.getLogger(__name__)


def create_scanner(mode: str, cfg: Settings) -> BaseScanner:
    """Factory: instantiate one configured scan backend.

    Raises:
        ConfigInvalid: If the mode is unknown or its settings are incomplete.
    """
    if mode == "nmcli":
        from wifitrace.scanner.nmcli import NmcliScanner

        return NmcliScanner(interface=cfg.wifi_interface)
    if mode == "glinet":
        from wifitrace.scanner.glinet import GlinetScanner

        if not cfg.glinet_host or not cfg.glinet_password:
            raise ConfigInvalid("GL.iNet mode selected but credentials not configured")
        try:
            return GlinetScanner(
                host=cfg.glinet_host,
                username=cfg.glinet_username,
                password=cfg.glinet_password,
                wifi_interface=cfg.glinet_wifi_interface,
            )
        except ValueError as e:
            raise ConfigInvalid(str(e)) from e
    if mode == "monitor":
        from wifitrace.scanner.monitor import MonitorScanner

        if not cfg.monitor_interface:
            raise ConfigInvalid("Monitor mode selected but monitor_interface not configured")
        return MonitorScanner(interface=cfg.monitor_interface, dwell=cfg.monitor_dwell)
    if mode == "mock":
        from wifitrace.scanner.mock import MockScanner

        return MockScanner()
    raise ConfigInvalid(f"Unknown scanner mode {mode!r}")


def create_scanners(cfg: Settings) -> list[BaseScanner]:
    if not cfg.scanner_modes:
        raise ConfigInvalid("No scanner modes configured")
    return [create_scanner(mode, cfg) for mode in cfg.scanner_modes]


async def run_scan(cfg: Settings, scanners: list[BaseScanner]) -> RunResult:
    """Run one scan, stopping gracefully on SIGINT/SIGTERM."""
    runner = ScanRunner(
        scanners,
        tracker=PresenceTracker(threshold=cfg.silence_threshold),
        clock=MonotonicClock(),
        sample_interval=cfg.sample_interval,
        scan_duration=cfg.scan_duration,
        scan_timeout=cfg.scan_timeout,
        start_after=cfg.start_after_duration,
    )

    if cfg.instant_scan:
        return await runner.run_instant()

    # Only the scheduled loop polls the stop flag; an instant scan keeps the
    # default Ctrl-C behaviour and is cancelled outright.
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handler for %s not supported here", sig)
        else:
            installed.append(sig)
    try:
        return await runner.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def save_history(cfg: Settings, result: RunResult, resolver: VendorResolver) -> None:
    from wifitrace.database import get_engine, init_db
    from wifitrace.history.store import save_run

    init_db(get_engine(cfg.db_path))
    with Session(get_engine()) as session:
        save_run(session, result, resolver)


def scan_command(cfg: Settings) -> Path:
    resolver = VendorResolver(cfg.oui_csv_path)
    scanners = create_scanners(cfg)
    result = asyncio.run(run_scan(cfg, scanners))

    if result.mode == "instant":
        report = build_instant_report(result.sightings, resolver)
        path = cfg.output_dir / INSTANT_REPORT_NAME
    else:
        report = build_scheduled_report(result.intervals, resolver)
        path = cfg.output_dir / SCHEDULED_REPORT_NAME

    write_report(report, path)
    if cfg.history_enabled:
        save_history(cfg, result, resolver)
    if not report:
        logger.info("No data was processed")
    return path


def serve_command(cfg: Settings) -> None:
    import uvicorn

    from wifitrace.database import get_engine
    from wifitrace.main import app

    get_engine(cfg.db_path)

    logger.info("Starting wifitrace API on %s:%d", cfg.host, cfg.port)
    uvicorn.run(app, host=cfg.host, port=cfg.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wifitrace",
        description="Track how long WiFi networks stay visible",
    )
    parser.add_argument("--config", type=Path, help="path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="run an instant or delayed scan")
    mode = scan.add_mutually_exclusive_group()
    mode.add_argument("--instant", dest="instant_scan", action="store_true", default=None)
    mode.add_argument("--delayed", dest="instant_scan", action="store_false", default=None)
    scan.add_argument("--start-after", dest="start_after_duration", type=int)
    scan.add_argument("--duration", dest="scan_duration", type=int)
    scan.add_argument("--interval", dest="sample_interval", type=int)
    scan.add_argument("--threshold", dest="silence_threshold", type=int)
    scan.add_argument("--scanner", dest="scanner_modes", help="comma separated backends")
    scan.add_argument("--output-dir", dest="output_dir", type=Path)
    scan.add_argument("--oui-csv", dest="oui_csv_path", type=Path)
    scan.add_argument(
        "--no-history", dest="history_enabled", action="store_false", default=None
    )

    serve = sub.add_parser("serve", help="serve the scan history API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    return parser


_OVERRIDE_KEYS = (
    "instant_scan",
    "start_after_duration",
    "scan_duration",
    "sample_interval",
    "silence_threshold",
    "scanner_modes",
    "output_dir",
    "oui_csv_path",
    "history_enabled",
    "host",
    "port",
)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.config is not None:
        config_module._CONFIG_FILE = args.config

    overrides = {
        key: getattr(args, key)
        for key in _OVERRIDE_KEYS
        if getattr(args, key, None) is not None
    }
    try:
        cfg = load_config(**overrides)
    except ConfigInvalid as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("%s", e)
        return 2

    logging.basicConfig(level=cfg.log_level.upper())

    try:
        if args.command == "scan":
            path = scan_command(cfg)
            logger.info("WiFi data written to %s", path)
        else:
            serve_command(cfg)
    except ConfigInvalid as e:
        logger.error("%s", e)
        return 2
    except WifitraceError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1
    except KeyboardInterrupt:
        logger.info("Scan interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
