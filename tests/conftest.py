"""Shared fixtures: in-memory repository, fake wall clock, fake ticker."""

import sqlite3
import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.data.database import SCHEMA_SQL
from src.data.repository import Repository

# 2024-03-05 09:00 local time
T0 = int(datetime(2024, 3, 5, 9, 0, 0).timestamp() * 1000)


class FakeClock:
    """Millisecond wall clock the tests move by hand."""

    def __init__(self, start_ms: int = T0) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, ms: int = 0) -> int:
        self.now += int(seconds * 1000) + ms
        return self.now


class FakeTicker:
    """Records arm()/disarm() calls instead of scheduling anything."""

    def __init__(self) -> None:
        self.armed = False
        self.arm_count = 0
        self.disarm_count = 0

    def arm(self) -> None:
        self.armed = True
        self.arm_count += 1

    def disarm(self) -> None:
        self.armed = False
        self.disarm_count += 1


@pytest.fixture
def repo():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ticker():
    return FakeTicker()
