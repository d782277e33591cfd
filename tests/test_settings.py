"""Tests for the JSON settings store."""

import json
import logging
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.data.models import BreakPolicy, RunMode, ScheduleConfig
from src.services.settings_store import DEFAULT_SETTINGS, SettingsStore


@pytest.fixture
def path(tmp_path):
    return tmp_path / "config" / "settings.json"


def _write(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))


class TestSettingsStore:
    def test_defaults_without_file(self, path):
        store = SettingsStore(path)
        assert store.schedule_config() == ScheduleConfig()
        assert store.profile == "Default"
        assert store.poll_interval_ms == 250
        assert store.autosave_interval_ms == 300_000
        assert not path.exists()

    def test_partial_file_merged_with_defaults(self, path):
        _write(path, {"schedule": {"work_duration_sec": 600}, "profile": "Study"})
        store = SettingsStore(path)
        cfg = store.schedule_config()
        assert cfg.work_duration_sec == 600
        assert cfg.short_break_duration_sec == 300
        assert store.profile == "Study"
        assert store.poll_interval_ms == 250

    def test_update_schedule_persists(self, path):
        store = SettingsStore(path)
        cfg = ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=6,
                             break_policy=BreakPolicy.LONG_ONLY)
        store.update_schedule(cfg)
        assert SettingsStore(path).schedule_config() == cfg
        assert json.loads(path.read_text())["schedule"]["run_mode"] == "cycles"

    def test_set_profile_persists(self, path):
        SettingsStore(path).set_profile("Reading")
        assert SettingsStore(path).profile == "Reading"

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"schedule": 5}'])
    def test_bad_file_falls_back(self, path, content, caplog):
        _write(path, content)
        with caplog.at_level(logging.WARNING):
            store = SettingsStore(path)
        assert store.schedule_config() == ScheduleConfig()
        assert "Bad settings file" in caplog.text

    def test_invalid_schedule_uses_default(self, path, caplog):
        _write(path, {"schedule": {"work_duration_sec": -1}})
        store = SettingsStore(path)
        with caplog.at_level(logging.WARNING):
            assert store.schedule_config() == ScheduleConfig()
        assert "Invalid schedule settings" in caplog.text

    def test_bad_intervals_use_defaults(self, path):
        _write(path, {"poll_interval_ms": 0, "autosave_interval_ms": "often"})
        store = SettingsStore(path)
        assert store.poll_interval_ms == DEFAULT_SETTINGS["poll_interval_ms"]
        assert store.autosave_interval_ms == DEFAULT_SETTINGS["autosave_interval_ms"]

    def test_reset(self, path):
        store = SettingsStore(path)
        store.set_profile("Reading")
        store.reset()
        assert SettingsStore(path).profile == "Default"
        assert DEFAULT_SETTINGS["profile"] == "Default"
