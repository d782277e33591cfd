"""
Settings Store — durations, policy and host timing, kept in a JSON file.

Missing keys fall back to DEFAULT_SETTINGS, so an old or hand-edited file
keeps working.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from src.data.models import DEFAULT_PROFILE, ConfigError, ScheduleConfig

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "settings.json"

# Default settings (used if JSON doesn't exist yet)
DEFAULT_SETTINGS = {
    "schedule": ScheduleConfig().to_dict(),
    "profile": DEFAULT_PROFILE,
    "poll_interval_ms": 250,
    "autosave_interval_ms": 5 * 60 * 1000,
}


class SettingsStore:
    """Loads, validates and saves the user's settings."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else CONFIG_PATH
        self.settings = self._load()

    # ── Public API ──────────────────────────────────────────────────────────

    def schedule_config(self) -> ScheduleConfig:
        """Validated ScheduleConfig; the default schedule if the file's is invalid."""
        try:
            return ScheduleConfig.from_dict(self.settings["schedule"])
        except (ConfigError, TypeError) as e:
            logger.warning("Invalid schedule settings (%s), using defaults.", e)
            return ScheduleConfig()

    @property
    def profile(self) -> str:
        return self.settings.get("profile") or DEFAULT_SETTINGS["profile"]

    @property
    def poll_interval_ms(self) -> int:
        return _positive_int(self.settings.get("poll_interval_ms"),
                             DEFAULT_SETTINGS["poll_interval_ms"])

    @property
    def autosave_interval_ms(self) -> int:
        return _positive_int(self.settings.get("autosave_interval_ms"),
                             DEFAULT_SETTINGS["autosave_interval_ms"])

    def update_schedule(self, config: ScheduleConfig) -> None:
        self.settings["schedule"] = config.to_dict()
        self.save()

    def set_profile(self, profile: str) -> None:
        self.settings["profile"] = profile
        self.save()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.settings, f, indent=2)

    def reset(self) -> None:
        self.settings = _defaults()
        self.save()

    # ── Internal ────────────────────────────────────────────────────────────

    def _load(self) -> dict:
        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    cfg = json.load(f)
                if not isinstance(cfg, dict):
                    raise ValueError("top level is not an object")
                # Merge with defaults for any missing keys
                merged = _defaults()
                merged.update(cfg)
                merged["schedule"] = {**DEFAULT_SETTINGS["schedule"],
                                      **(cfg.get("schedule") or {})}
                return merged
            except (json.JSONDecodeError, ValueError, TypeError, OSError):
                logger.warning("Bad settings file %s, using defaults.", self.path)
        return _defaults()


def _defaults() -> dict:
    settings = DEFAULT_SETTINGS.copy()
    settings["schedule"] = DEFAULT_SETTINGS["schedule"].copy()
    return settings


def _positive_int(value, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return default
