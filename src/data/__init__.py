from .database import Database
from .models import (
    Accumulators, BreakPolicy, Checkpoint, ConfigError, DiaryEntry,
    PhaseType, RunMode, RunState, RunStatus, ScheduleConfig, SessionRecord,
)
from .repository import Repository

__all__ = [
    "Database", "Repository",
    "Accumulators", "BreakPolicy", "Checkpoint", "ConfigError", "DiaryEntry",
    "PhaseType", "RunMode", "RunState", "RunStatus", "ScheduleConfig",
    "SessionRecord",
]
