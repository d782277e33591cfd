"""
SQLite database initialization and connection management.

Single responsibility: own the connection, create tables.
All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default DB lives at the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "tempo.db"

SCHEMA_SQL = """
-- Sessions (append-only log) -------------------------------------------------
CREATE TABLE IF NOT EXISTS sessions (
    id                          TEXT    PRIMARY KEY,
    day_key                     TEXT    NOT NULL,
    profile                     TEXT    NOT NULL,
    active_sec                  INTEGER NOT NULL DEFAULT 0,
    break_sec                   INTEGER NOT NULL DEFAULT 0,
    short_break_sec             INTEGER NOT NULL DEFAULT 0,
    long_break_sec              INTEGER NOT NULL DEFAULT 0,
    work_intervals_completed    INTEGER NOT NULL DEFAULT 0,
    started_at_ms               INTEGER NOT NULL,
    ended_at_ms                 INTEGER NOT NULL,
    run_mode                    TEXT    NOT NULL
);

-- Diary: one row per local day ------------------------------------------------
CREATE TABLE IF NOT EXISTS diary (
    day_key         TEXT    PRIMARY KEY,
    active          INTEGER NOT NULL DEFAULT 0,
    brk             INTEGER NOT NULL DEFAULT 0,
    short           INTEGER NOT NULL DEFAULT 0,
    long            INTEGER NOT NULL DEFAULT 0,
    pomodoros       INTEGER NOT NULL DEFAULT 0,
    elapsed         INTEGER NOT NULL DEFAULT 0,
    updated_at_ms   INTEGER,
    base_active     INTEGER NOT NULL DEFAULT 0,
    base_break      INTEGER NOT NULL DEFAULT 0,
    base_short      INTEGER NOT NULL DEFAULT 0,
    base_long       INTEGER NOT NULL DEFAULT 0,
    base_pomodoros  INTEGER NOT NULL DEFAULT 0
);

-- Diary breakdown by activity label --------------------------------------------
CREATE TABLE IF NOT EXISTS diary_profiles (
    day_key     TEXT    NOT NULL REFERENCES diary(day_key) ON DELETE CASCADE,
    profile     TEXT    NOT NULL,
    active      INTEGER NOT NULL DEFAULT 0,
    brk         INTEGER NOT NULL DEFAULT 0,
    pomodoros   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (day_key, profile)
);

-- Recovery checkpoint (at most one row) ----------------------------------------
CREATE TABLE IF NOT EXISTS checkpoint (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    payload     TEXT    NOT NULL,
    written_at  TEXT    NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common queries ----------------------------------------------------
CREATE INDEX IF NOT EXISTS idx_sessions_day      ON sessions(day_key);
CREATE INDEX IF NOT EXISTS idx_sessions_profile  ON sessions(profile);
"""


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Owns the SQLite connection and makes sure the session log, the diary
#   and the checkpoint tables exist on startup.
#
# Key pieces:
#   - SCHEMA_SQL: the full DDL, idempotent via CREATE IF NOT EXISTS.
#   - checkpoint table: CHECK (id = 1) turns a table into a single slot:
#     "INSERT OR REPLACE" overwrites it on every phase transition.
#   - diary_profiles: normalized per-label breakdown, one row per
#     (day, label), instead of a JSON blob inside the diary row.
#
# Interviewer-friendly talking points:
#   1. SQLite is local and synchronous with no network latency, so the
#      engine can afford a write on every transition.
#   2. WAL mode keeps readers (a dashboard) from blocking the writer.
#   3. Timestamps are epoch milliseconds (INTEGER) because the engine does
#      all its deadline math in ms.
