"""Tests for the Qt host: poll timer, signals, shutdown."""

from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

QtCore = pytest.importorskip("PySide6.QtCore")

from src.data.models import RunMode, RunStatus, ScheduleConfig
from src.services.qt_host import EngineHost, QtTicker
from src.services.scheduler import Engine


@pytest.fixture(scope="module")
def app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


@pytest.fixture
def host(app, repo, clock):
    engine = Engine(repo, clock=clock)
    h = EngineHost(engine, poll_interval_ms=50, autosave_interval_ms=60_000)
    yield h
    h.shutdown()


def _collect(signal):
    seen = []
    signal.connect(seen.append)
    return seen


class TestQtTicker:
    def test_arm_disarm(self, app):
        ticker = QtTicker(100)
        ticker.arm()
        assert ticker.is_active
        ticker.arm()
        assert ticker.is_active
        ticker.disarm()
        assert not ticker.is_active


class TestEngineHost:
    def test_start_arms_poll_timer_and_emits(self, host):
        phases = _collect(host.phase_changed)
        states = _collect(host.state_changed)
        host.engine.start()
        assert host.ticker.is_active
        assert phases == ["work"]
        assert states == [RunStatus.RUNNING]

    def test_pause_disarms_poll_timer(self, host):
        host.engine.start()
        host.engine.pause()
        assert not host.ticker.is_active
        host.engine.resume()
        assert host.ticker.is_active

    def test_poll_publishes_status(self, host, clock):
        updates = _collect(host.status_updated)
        host.engine.start()
        clock.advance(10)
        host._on_poll()
        assert updates[-1]["active_sec"] == 10
        assert updates[-1]["remaining_sec"] == 1490

    def test_foreground_processes_expiry(self, host, clock):
        phases = _collect(host.phase_changed)
        host.engine.start()
        clock.advance(1500)
        host.on_foreground()
        assert phases == ["work", "short_break"]

    def test_run_finished_signal(self, host, clock):
        finished = _collect(host.run_finished)
        host.engine.start(ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=1))
        clock.advance(1500)
        host._on_poll()
        assert len(finished) == 1
        assert finished[0].work_intervals_completed == 1
        assert not host.ticker.is_active

    def test_shutdown_keeps_checkpoint(self, host, clock, repo):
        host.engine.start()
        clock.advance(30)
        host.shutdown()
        assert not host.ticker.is_active
        assert repo.load_checkpoint() is not None
        assert repo.get_diary_entry("2024-03-05").active == 30
