"""Daemon entrypoint: local control panel or the daily ingestion schedule."""

from __future__ import annotations

import argparse
import signal
from datetime import datetime, timedelta
from threading import Event

from loguru import logger

from offerflow.core.config_loader import get_logging_config, get_schedule_config
from offerflow.core.log import setup_logger
from offerflow.runtime.service import get_runtime_service

APP_IMPORT_PATH = "offerflow.app.main:app"


def _install_signal_handlers(stop_event: Event) -> None:
    def _handler(_sig, _frame) -> None:  # type: ignore[no-untyped-def]
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def parse_daily_time(value: str) -> tuple[int, int]:
    """`"HH:MM"` -> (hour, minute). Raises ValueError on anything else."""
    parts = value.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"daily_time must be HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"daily_time out of range: {value!r}")
    return hour, minute


def next_run_after(now: datetime, daily_time: str) -> datetime:
    hour, minute = parse_daily_time(daily_time)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def run_schedule_loop(*, stop_event: Event, tick_sec: float = 30.0) -> int:
    runtime = get_runtime_service()
    schedule = get_schedule_config(runtime.config())
    next_run = next_run_after(datetime.now(), schedule["daily_time"])
    logger.info("daily run scheduled at {} (window={}d)", next_run.isoformat(timespec="minutes"), schedule["window_days"])

    while not stop_event.is_set():
        now = datetime.now()
        if now >= next_run:
            try:
                out = runtime.run_scheduled()
            except Exception:
                logger.exception("scheduled run crashed; keeping the schedule")
            else:
                if out.get("ok"):
                    logger.info("scheduled run finished")
                else:
                    logger.warning("scheduled run failed: {}", out)
            next_run = next_run_after(datetime.now(), get_schedule_config(runtime.config())["daily_time"])
            logger.info("next daily run at {}", next_run.isoformat(timespec="minutes"))
            continue
        remaining = (next_run - now).total_seconds()
        stop_event.wait(timeout=max(0.05, min(tick_sec, remaining)))
    return 0


def run_daemon(
    *,
    with_app: bool = True,
    host: str = "127.0.0.1",
    port: int = 8000,
    tick_sec: float = 30.0,
    stop_event: Event | None = None,
) -> int:
    if with_app:
        import uvicorn

        uvicorn.run(APP_IMPORT_PATH, host=host, port=port, reload=False)
        return 0

    signal_event = stop_event or Event()
    _install_signal_handlers(signal_event)
    return run_schedule_loop(stop_event=signal_event, tick_sec=tick_sec)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the offerflow daemon.")
    parser.add_argument("--host", default="127.0.0.1", help="Local bind host for app mode.")
    parser.add_argument("--port", type=int, default=8000, help="Local bind port for app mode.")
    parser.add_argument(
        "--no-app",
        action="store_true",
        help="Run the daily ingestion schedule instead of the local control panel.",
    )
    parser.add_argument(
        "--tick-sec",
        type=float,
        default=30.0,
        help="Longest idle wait between schedule checks.",
    )
    args = parser.parse_args(argv)

    logging_cfg = get_logging_config()
    setup_logger(logging_cfg["level"], logging_cfg["file"])
    return run_daemon(
        with_app=not args.no_app,
        host=args.host,
        port=args.port,
        tick_sec=max(0.05, float(args.tick_sec)),
    )


if __name__ == "__main__":
    raise SystemExit(main())
