"""
Time Accountant — turns real elapsed wall-clock time into per-bucket seconds.

Accounting measures the gap since the last accounted instant, so a delayed or
doubled poll adds exactly the time that really passed.
"""

from __future__ import annotations

import logging
from typing import Optional

from src.data.models import Accumulators, PhaseType

logger = logging.getLogger(__name__)


class TimeAccountant:
    """Owns the run's Accumulators and the last-accounted anchor."""

    def __init__(self) -> None:
        self.accumulators = Accumulators()
        self.last_accounted_at_ms: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self.last_accounted_at_ms is not None

    def account(self, now_ms: int, phase: PhaseType,
                limit_sec: Optional[int] = None) -> int:
        """
        Credit the whole seconds elapsed since the anchor to `phase`.

        The anchor advances by exactly the seconds measured (not to now), so
        sub-second remainders carry over to the next call. A negative or
        sub-second gap is a no-op. Returns the seconds actually credited,
        which can be less than measured when `limit_sec` caps the run.
        """
        if self.last_accounted_at_ms is None:
            return 0
        delta = (now_ms - self.last_accounted_at_ms) // 1000
        if delta <= 0:
            return 0
        self.last_accounted_at_ms += delta * 1000
        return self._credit(delta, phase, limit_sec)

    def bulk_catch_up(self, start_ms: int, end_ms: int, phase: PhaseType,
                      limit_sec: Optional[int] = None) -> int:
        """Attribute a whole gap in one shot (recovery after a restart)."""
        seconds = max(0, (end_ms - start_ms) // 1000)
        credited = self._credit(seconds, phase, limit_sec)
        logger.info("Bulk catch-up: %ds of %s (%ds measured)",
                    credited, phase.value, seconds)
        return credited

    def limit_reached(self, limit_sec: Optional[int]) -> bool:
        return limit_sec is not None and self.accumulators.elapsed_total_sec >= limit_sec

    def pause(self) -> None:
        self.last_accounted_at_ms = None

    def resume(self, now_ms: int) -> None:
        """Start measuring from now; paused time is never accounted."""
        self.last_accounted_at_ms = now_ms

    def restore(self, accumulators: Accumulators) -> None:
        self.accumulators = accumulators.copy()

    def zero(self) -> None:
        """Zero the counters but keep measuring (day rollover)."""
        self.accumulators = Accumulators()

    def reset(self) -> None:
        self.accumulators = Accumulators()
        self.last_accounted_at_ms = None

    # ── Internal ────────────────────────────────────────────────────────────

    def _credit(self, seconds: int, phase: PhaseType,
                limit_sec: Optional[int]) -> int:
        acc = self.accumulators
        if limit_sec is not None:
            seconds = min(seconds, max(0, limit_sec - acc.elapsed_total_sec))
        if seconds <= 0:
            return 0
        if phase is PhaseType.WORK:
            acc.active_sec += seconds
        else:
            acc.break_sec += seconds
            if phase is PhaseType.SHORT_BREAK:
                acc.short_break_sec += seconds
            else:
                acc.long_break_sec += seconds
        acc.elapsed_total_sec += seconds
        return seconds


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Keeps the run's counters (active, break, short, long, elapsed) honest
#   even when the poll loop is late, early, doubled or suspended.
#
# Key design decisions:
#   - floor((now - anchor) / 1000), then anchor += delta * 1000. Advancing
#     to "now" instead would throw away up to 999 ms per call; at 4 polls
#     per second that is most of the day.
#   - Every credit touches elapsed_total_sec too, so
#     active + break == elapsed holds by construction.
#   - The Workday cap is applied here, at the only place seconds are added,
#     so no path can overshoot the configured workday.
#
# Interviewer-friendly talking points:
#   1. Idempotency: calling account() twice at the same instant adds
#      nothing the second time. That is what makes "window regained focus"
#      safe to run alongside the regular poll.
#   2. A clock that jumps backwards yields a negative delta, treated as 0.
