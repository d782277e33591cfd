"""
Schedule rules — pure functions over a ScheduleConfig.

The scheduler, the session recorder and the forecast all ask the same
questions (which break follows interval n? is the run over?), so the answers
live here once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from src.data.models import BreakPolicy, PhaseType, RunMode, ScheduleConfig


@dataclass(frozen=True)
class CycleTotals:
    """Configuration-derived totals for a Cycles-mode run."""
    active_sec: int
    break_sec: int
    short_break_sec: int
    long_break_sec: int
    short_breaks: int
    long_breaks: int


def break_after(config: ScheduleConfig, n: int) -> PhaseType:
    """Break that follows the n-th (1-indexed) completed Work interval."""
    if config.break_policy is BreakPolicy.SHORT_ONLY:
        return PhaseType.SHORT_BREAK
    if config.break_policy is BreakPolicy.LONG_ONLY:
        return PhaseType.LONG_BREAK
    if n % config.long_break_every == 0:
        return PhaseType.LONG_BREAK
    return PhaseType.SHORT_BREAK


def next_phase(config: ScheduleConfig, expired: PhaseType, completed: int) -> PhaseType:
    """
    Phase that follows `expired`.

    `completed` is the Work counter *after* the expired phase was counted.
    """
    if expired is PhaseType.WORK:
        return break_after(config, completed)
    return PhaseType.WORK


def should_stop(
    config: ScheduleConfig,
    expired: PhaseType,
    completed_before: int,
    elapsed_total_sec: int,
) -> bool:
    """Stop condition evaluated when a phase expires."""
    if config.run_mode is RunMode.WORKDAY:
        return elapsed_total_sec >= config.workday_duration_sec
    return expired is PhaseType.WORK and completed_before + 1 >= config.target_cycles


def workday_limit(config: ScheduleConfig) -> Optional[int]:
    """Accounting ceiling in seconds, or None when the mode has no time cap."""
    if config.run_mode is RunMode.WORKDAY:
        return config.workday_duration_sec
    return None


def reconcile_cycles(config: ScheduleConfig, intervals: int) -> CycleTotals:
    """Snap a Cycles run to the configured grid: no break after the last interval."""
    breaks = max(0, intervals - 1)
    long_breaks = sum(
        1 for n in range(1, breaks + 1)
        if break_after(config, n) is PhaseType.LONG_BREAK
    )
    short_breaks = breaks - long_breaks
    short_sec = short_breaks * config.short_break_duration_sec
    long_sec = long_breaks * config.long_break_duration_sec
    return CycleTotals(
        active_sec=intervals * config.work_duration_sec,
        break_sec=short_sec + long_sec,
        short_break_sec=short_sec,
        long_break_sec=long_sec,
        short_breaks=short_breaks,
        long_breaks=long_breaks,
    )


def forecast(
    config: ScheduleConfig,
    current: PhaseType,
    completed: int,
    elapsed_total_sec: int = 0,
    current_remaining_sec: int = 0,
    limit: int = 12,
) -> List[PhaseType]:
    """Upcoming segments after the current one, bounded by the run's stop condition."""
    segments: List[PhaseType] = []
    budget = None
    if config.run_mode is RunMode.WORKDAY:
        budget = config.workday_duration_sec - elapsed_total_sec - current_remaining_sec

    phase = current
    n = completed
    while len(segments) < limit:
        if phase is PhaseType.WORK:
            n += 1
            if config.run_mode is RunMode.CYCLES and n >= config.target_cycles:
                break
            upcoming = break_after(config, n)
        else:
            upcoming = PhaseType.WORK
        if budget is not None:
            budget -= config.duration_for(upcoming)
            if budget < 0:
                break
        segments.append(upcoming)
        phase = upcoming
    return segments


def progress_pct(config: ScheduleConfig, completed: int, elapsed_total_sec: int) -> float:
    """Run progress, 0-100: share of the workday or of the target cycles."""
    if config.run_mode is RunMode.WORKDAY:
        pct = elapsed_total_sec / config.workday_duration_sec * 100
    else:
        pct = completed / config.target_cycles * 100
    return min(100.0, max(0.0, pct))
