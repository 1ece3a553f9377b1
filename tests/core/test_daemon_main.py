from __future__ import annotations

import sys
from datetime import datetime, timedelta
from threading import Event

import pytest

from offerflow.daemon import main as daemon_main
from offerflow.daemon.main import next_run_after, parse_daily_time, run_daemon, run_schedule_loop


class _FakeRuntime:
    def __init__(self, stop_event: Event | None = None, ok: bool = True) -> None:
        self.stop_event = stop_event
        self.ok = ok
        self.runs = 0

    def config(self):
        return {"schedule": {"daily_time": "06:30", "window_days": 7}}

    def run_scheduled(self):
        self.runs += 1
        if self.stop_event is not None:
            self.stop_event.set()
        return {"ok": self.ok}


def test_parse_daily_time():
    assert parse_daily_time("06:30") == (6, 30)
    assert parse_daily_time(" 0:05 ") == (0, 5)
    for bad in ("24:00", "6h30", "12:60", "abc"):
        with pytest.raises(ValueError):
            parse_daily_time(bad)


def test_next_run_after_same_day_and_next_day():
    now = datetime(2025, 3, 1, 5, 0)
    assert next_run_after(now, "06:30") == datetime(2025, 3, 1, 6, 30)
    assert next_run_after(now, "05:00") == datetime(2025, 3, 2, 5, 0)
    assert next_run_after(datetime(2025, 12, 31, 23, 59), "00:00") == datetime(2026, 1, 1, 0, 0)


def test_run_daemon_no_app_stops_on_event(monkeypatch: pytest.MonkeyPatch):
    fake = _FakeRuntime()
    stop_event = Event()
    stop_event.set()
    monkeypatch.setattr("offerflow.daemon.main.get_runtime_service", lambda: fake)

    out = run_daemon(with_app=False, stop_event=stop_event)
    assert out == 0
    assert fake.runs == 0


def test_schedule_loop_runs_when_due(monkeypatch: pytest.MonkeyPatch):
    stop_event = Event()
    fake = _FakeRuntime(stop_event=stop_event)
    monkeypatch.setattr("offerflow.daemon.main.get_runtime_service", lambda: fake)
    monkeypatch.setattr(daemon_main, "next_run_after", lambda now, daily_time: now - timedelta(seconds=1))

    out = run_schedule_loop(stop_event=stop_event, tick_sec=0.05)
    assert out == 0
    assert fake.runs == 1


def test_schedule_loop_survives_failed_run(monkeypatch: pytest.MonkeyPatch):
    stop_event = Event()
    fake = _FakeRuntime(stop_event=stop_event, ok=False)
    monkeypatch.setattr("offerflow.daemon.main.get_runtime_service", lambda: fake)
    monkeypatch.setattr(daemon_main, "next_run_after", lambda now, daily_time: now - timedelta(seconds=1))

    assert run_schedule_loop(stop_event=stop_event, tick_sec=0.05) == 0
    assert fake.runs == 1


def test_schedule_loop_survives_crashing_run(monkeypatch: pytest.MonkeyPatch):
    stop_event = Event()
    runs: list[int] = []

    class _CrashingRuntime(_FakeRuntime):
        def run_scheduled(self):
            runs.append(1)
            if len(runs) == 2:
                stop_event.set()
            raise OSError("network unreachable")

    fake = _CrashingRuntime()
    monkeypatch.setattr("offerflow.daemon.main.get_runtime_service", lambda: fake)
    monkeypatch.setattr(daemon_main, "next_run_after", lambda now, daily_time: now - timedelta(seconds=1))

    assert run_schedule_loop(stop_event=stop_event, tick_sec=0.05) == 0
    assert len(runs) == 2


def test_run_daemon_with_app_invokes_uvicorn(monkeypatch: pytest.MonkeyPatch):
    calls: list[tuple[tuple, dict]] = []

    class _FakeUvicorn:
        @staticmethod
        def run(*args, **kwargs):
            calls.append((args, kwargs))

    monkeypatch.setitem(sys.modules, "uvicorn", _FakeUvicorn)
    out = run_daemon(with_app=True, host="127.0.0.1", port=8123)

    assert out == 0
    assert calls == [(("offerflow.app.main:app",), {"host": "127.0.0.1", "port": 8123, "reload": False})]


def test_main_no_app_flag(monkeypatch: pytest.MonkeyPatch):
    seen: dict = {}

    def fake_run_daemon(**kwargs):
        seen.update(kwargs)
        return 0

    monkeypatch.setattr("offerflow.daemon.main.run_daemon", fake_run_daemon)
    monkeypatch.setattr("offerflow.daemon.main.setup_logger", lambda *args, **kwargs: None)

    assert daemon_main.main(["--no-app", "--tick-sec", "0"]) == 0
    assert seen == {"with_app": False, "host": "127.0.0.1", "port": 8000, "tick_sec": 0.05}
