"""
Segment Scheduler — the Pomodoro state machine.

Decides which phase is active, drives the phase clock and the time
accountant, finalizes runs through the session recorder and checkpoints every
transition so a restarted process can pick the phase back up.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from src.data.models import (
    DEFAULT_PROFILE, Accumulators, Checkpoint, PhaseType, RunState, RunStatus,
    ScheduleConfig, SessionRecord,
)
from src.data.repository import Repository
from src.services.dates import day_key, now_ms
from src.services.phase_clock import PhaseClock
from src.services.schedule import (
    forecast, next_phase, progress_pct, should_stop, workday_limit,
)
from src.services.session_recorder import (
    PERSISTENCE_ERRORS, SessionRecorder, best_effort,
)
from src.services.time_accountant import TimeAccountant

logger = logging.getLogger(__name__)


class Engine:
    """
    Owns RunState, the PhaseClock and the TimeAccountant for one run.

    States (phase x status):
        idle → work/running → (short_break | long_break)/running ↔ paused
        → finished → idle

    Everything happens on one thread: the host's poll loop calls tick(),
    user actions call start/pause/resume/reset. Listeners are notified
    synchronously, once per event.
    """

    def __init__(
        self,
        repo: Repository,
        recorder: Optional[SessionRecorder] = None,
        config: Optional[ScheduleConfig] = None,
        profile: str = DEFAULT_PROFILE,
        clock: Callable[[], int] = now_ms,
        ticker=None,
    ) -> None:
        self.repo = repo
        self._clock = clock
        self.recorder = recorder or SessionRecorder(repo, clock=clock)
        self.config = config or ScheduleConfig()
        self.profile = profile

        self.state = RunState()
        self.phase_clock = PhaseClock(clock=clock, ticker=ticker)
        self.accountant = TimeAccountant()

        # Start of the current running stretch and the counters at that instant
        self._segment_started_at: Optional[int] = None
        self._segment_base = Accumulators()
        self._diary_day: Optional[str] = None

        self._phase_listeners: List[Callable[[PhaseType], None]] = []
        self._finish_listeners: List[Callable[[Optional[SessionRecord]], None]] = []
        self._state_listeners: List[Callable[[str], None]] = []

    # ── Listener registration ───────────────────────────────────────────────

    def add_phase_listener(self, listener: Callable[[PhaseType], None]) -> None:
        """Called with the new PhaseType on every phase transition."""
        self._phase_listeners.append(listener)

    def add_finish_listener(
        self, listener: Callable[[Optional[SessionRecord]], None]
    ) -> None:
        """Called once when a run reaches its stop condition."""
        self._finish_listeners.append(listener)

    def add_state_listener(self, listener: Callable[[str], None]) -> None:
        """Called with the RunStatus after start, pause, resume, reset, recovery."""
        self._state_listeners.append(listener)

    def attach_ticker(self, ticker) -> None:
        self.phase_clock.ticker = ticker
        if self.state.is_running:
            ticker.arm()

    # ── Queries ─────────────────────────────────────────────────────────────

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def accumulators(self) -> Accumulators:
        return self.accountant.accumulators

    def status_snapshot(self) -> dict:
        """Everything a presenter needs to draw the timer."""
        acc = self.accumulators
        remaining_sec = self.phase_clock.display_seconds
        return {
            "status": self.state.status,
            "phase": self.state.current_phase.value,
            "remaining_sec": remaining_sec,
            "completed_work_intervals": self.state.completed_work_intervals,
            "active_sec": acc.active_sec,
            "break_sec": acc.break_sec,
            "short_break_sec": acc.short_break_sec,
            "long_break_sec": acc.long_break_sec,
            "elapsed_total_sec": acc.elapsed_total_sec,
            "progress_pct": progress_pct(
                self.config, self.state.completed_work_intervals,
                acc.elapsed_total_sec,
            ),
            "upcoming": [
                p.value for p in forecast(
                    self.config, self.state.current_phase,
                    self.state.completed_work_intervals,
                    acc.elapsed_total_sec, remaining_sec,
                )
            ],
            "run_mode": self.config.run_mode.value,
            "profile": self.profile,
        }

    # ── User actions ────────────────────────────────────────────────────────

    def start(self, config: Optional[ScheduleConfig] = None) -> None:
        """Idle → Work/Running. Zeroes the counters for a fresh run."""
        if self.state.status != RunStatus.IDLE:
            raise RuntimeError("A run is already active.")
        if config is not None:
            self.config = config
        now = self._clock()
        self.accountant.reset()
        self.state = RunState(run_started_at_ms=now)
        self._diary_day = day_key(now)
        self.recorder.rebase(day=self._diary_day)
        logger.info("Run started (%s, profile %r)",
                    self.config.run_mode.value, self.profile)
        self._begin_phase(PhaseType.WORK, now)
        self._notify_state()

    def pause(self) -> None:
        """Running → Paused. The ticker is disarmed before this returns."""
        self._require_status(RunStatus.RUNNING, "pause")
        self.tick()
        if self.state.status != RunStatus.RUNNING:
            # The catch-up tick finished the run
            return
        self.phase_clock.pause()
        self.accountant.pause()
        self.state.status = RunStatus.PAUSED
        self.state.phase_deadline_ms = None
        self.state.remaining_ms = self.phase_clock.remaining_ms
        self._write_checkpoint()
        logger.info("Paused with %d ms left in %s",
                    self.state.remaining_ms, self.state.current_phase.value)
        self._notify_state()

    def resume(self) -> None:
        """Paused → Running. Paused time is never accounted."""
        self._require_status(RunStatus.PAUSED, "resume")
        now = self._clock()
        self.state.status = RunStatus.RUNNING
        self.accountant.resume(now)
        self._mark_segment(now)
        expired = self.phase_clock.resume()
        self.state.phase_deadline_ms = self.phase_clock.deadline_ms
        self._write_checkpoint()
        logger.info("Resumed %s", self.state.current_phase.value)
        self._notify_state()
        if expired:
            self._expire(self.phase_clock.deadline_ms, now)

    def reset(self) -> Optional[SessionRecord]:
        """Any → Idle. A non-empty run is recorded first."""
        record = None
        if self.state.status != RunStatus.IDLE:
            now = self._clock()
            if self.state.is_running and self.phase_clock.deadline_ms is not None:
                self.accountant.account(
                    min(now, self.phase_clock.deadline_ms),
                    self.state.current_phase, workday_limit(self.config),
                )
            self.phase_clock.cancel()
            record = self.recorder.finalize(
                self.accumulators, self.state.completed_work_intervals,
                self.config, self.profile, self._run_started_at(now),
                day=self._diary_day,
            )
            logger.info("Run reset.")
        self._clear_run()
        self._notify_state()
        return record

    def apply_config(self, config: ScheduleConfig) -> None:
        """Use a new snapshot for the next scheduling decisions."""
        self.config = config
        if self.state.status != RunStatus.IDLE:
            self._write_checkpoint()
        logger.info("Schedule config updated.")

    def switch_profile(self, profile: str) -> None:
        """Attribute pending time to the old label, then switch."""
        if profile == self.profile:
            return
        if self.state.status != RunStatus.IDLE:
            self.tick()
            self._snapshot()
        self.profile = profile
        if self.state.status != RunStatus.IDLE:
            self._write_checkpoint()
        logger.info("Switched activity profile to %r", profile)

    # ── Poll loop entry points ──────────────────────────────────────────────

    def tick(self) -> None:
        """
        One poll: clock check, then accounting, then any transition.

        Safe to call at any rate and from several entry points; both the
        clock and the accountant measure against absolute instants.
        """
        if not self.state.is_running:
            return
        now = self._clock()
        deadline = self.phase_clock.deadline_ms
        expired = self.phase_clock.poll()
        self.state.remaining_ms = self.phase_clock.remaining_ms
        if expired:
            self._expire(deadline, now)
            return
        limit = workday_limit(self.config)
        self.accountant.account(now, self.state.current_phase, limit)
        if self.accountant.limit_reached(limit):
            logger.info("Workday limit reached mid-phase.")
            self._finish(include_last=False)

    def on_foreground(self) -> None:
        """Host regained visibility / was resumed: resync immediately."""
        self.tick()

    on_visibility_regained = on_foreground

    def autosave(self) -> None:
        """Periodic diary snapshot so a crash loses little."""
        if self.state.status == RunStatus.IDLE:
            return
        self.tick()
        self._snapshot()

    def roll_over_day(self) -> None:
        """
        Local midnight: commit the old day's deltas, then zero the run's
        counters. The diary keeps both days intact. A no-op until the local
        day actually changes.
        """
        if self.state.status == RunStatus.IDLE:
            return
        today = day_key(self._clock())
        if self._diary_day == today:
            return
        self.tick()
        if self.state.status == RunStatus.IDLE:
            return
        old_day = self._diary_day
        self._snapshot()
        self.accountant.zero()
        self._diary_day = today
        self.recorder.rebase(pomodoros=self.state.completed_work_intervals,
                             day=today)
        if self.state.is_running:
            self._mark_segment(self.accountant.last_accounted_at_ms)
        else:
            self._segment_base = Accumulators()
        self._write_checkpoint()
        logger.info("Day rolled over from %s to %s.", old_day, today)

    # ── Recovery ────────────────────────────────────────────────────────────

    def recover(self) -> bool:
        """
        Resume from the persisted checkpoint after a restart.

        Replays with the checkpoint's own config, never the freshly loaded
        one. Returns True if a run was restored.
        """
        if self.state.status != RunStatus.IDLE:
            logger.warning("Recovery skipped: a run is already active.")
            return False
        try:
            cp = self.repo.load_checkpoint()
        except PERSISTENCE_ERRORS as e:
            logger.warning("Could not read checkpoint: %s", e)
            return False
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable checkpoint: %s", e)
            best_effort("clear checkpoint", self.repo.clear_checkpoint)
            return False
        if cp is None:
            return False

        self._replay(cp, self._clock())
        # Process was down across midnight
        self.roll_over_day()
        return True

    def _replay(self, cp: Checkpoint, now: int) -> None:
        self.config = cp.config
        self.profile = cp.profile
        self.state = RunState(
            current_phase=cp.phase,
            completed_work_intervals=cp.completed_work_intervals,
            run_started_at_ms=cp.run_started_at_ms,
        )
        self.accountant.restore(cp.accumulators)
        self._segment_started_at = cp.started_at_ms
        self._segment_base = cp.accumulators.copy()
        self._diary_day = cp.diary_day or day_key(cp.started_at_ms)
        duration = cp.config.duration_for(cp.phase)

        if cp.status == RunStatus.PAUSED or cp.planned_end_at_ms is None:
            self.state.status = RunStatus.PAUSED
            self.phase_clock.restore_paused(cp.remaining_ms, duration)
            self.state.remaining_ms = self.phase_clock.remaining_ms
            logger.info("Recovered paused %s (%d ms left)",
                        cp.phase.value, self.state.remaining_ms)
            self._notify_state()
            return

        limit = workday_limit(cp.config)
        self.state.status = RunStatus.RUNNING
        planned_end = cp.planned_end_at_ms

        if now >= planned_end:
            # The phase ended while we were gone: account up to its deadline,
            # then replay the expiry exactly once
            self.accountant.bulk_catch_up(cp.started_at_ms, planned_end,
                                          cp.phase, limit)
            self.accountant.resume(planned_end)
            self.phase_clock.start_until(planned_end, duration)
            logger.info("Recovered %s that expired %d ms ago",
                        cp.phase.value, now - planned_end)
            self._notify_state()
            self._expire(planned_end, now)
            return

        credited = self.accountant.bulk_catch_up(cp.started_at_ms, now,
                                                 cp.phase, limit)
        self.accountant.resume(cp.started_at_ms + credited * 1000)
        if self.accountant.limit_reached(limit):
            self._notify_state()
            self._finish(include_last=False)
            return
        self.phase_clock.start_until(planned_end, duration)
        self.state.phase_deadline_ms = planned_end
        self.state.remaining_ms = self.phase_clock.remaining_ms
        logger.info("Recovered running %s (%d ms left)",
                    cp.phase.value, self.state.remaining_ms)
        self._notify_state()

    # ── Transitions ─────────────────────────────────────────────────────────

    def _expire(self, deadline_ms: Optional[int], now: int) -> None:
        """The current phase reached its deadline."""
        expired = self.state.current_phase
        limit = workday_limit(self.config)
        # Close out the phase at its deadline; overrun belongs to nobody
        self.accountant.account(
            deadline_ms if deadline_ms is not None else now, expired, limit
        )
        completed_before = self.state.completed_work_intervals
        if should_stop(self.config, expired, completed_before,
                       self.accumulators.elapsed_total_sec):
            self._finish(include_last=expired is PhaseType.WORK)
            return
        if expired is PhaseType.WORK:
            self.state.completed_work_intervals += 1
        upcoming = next_phase(self.config, expired,
                              self.state.completed_work_intervals)
        logger.info("%s expired → %s (completed %d)", expired.value,
                    upcoming.value, self.state.completed_work_intervals)
        self._begin_phase(upcoming, now)
        if expired is PhaseType.WORK:
            self._snapshot()

    def _begin_phase(self, phase: PhaseType, now: int) -> None:
        self.state.current_phase = phase
        self.state.status = RunStatus.RUNNING
        self.accountant.resume(now)
        self._mark_segment(now)
        self.phase_clock.start(self.config.duration_for(phase))
        self.state.phase_deadline_ms = self.phase_clock.deadline_ms
        self.state.remaining_ms = self.phase_clock.remaining_ms
        self._write_checkpoint()
        self._notify(self._phase_listeners, phase)

    def _finish(self, include_last: bool) -> None:
        """Stop condition met: record, announce, go idle."""
        now = self._clock()
        self.phase_clock.cancel()
        self.accountant.pause()
        record = self.recorder.finalize(
            self.accumulators, self.state.completed_work_intervals,
            self.config, self.profile, self._run_started_at(now),
            include_last_interval=include_last, day=self._diary_day,
        )
        logger.info("Run finished.")
        self._notify(self._finish_listeners, record)
        self._clear_run()
        self._notify_state()

    def _clear_run(self) -> None:
        self.phase_clock.cancel()
        self.accountant.reset()
        self.state = RunState()
        self._segment_started_at = None
        self._segment_base = Accumulators()
        self.recorder.rebase(day=self._diary_day)
        self._diary_day = None
        best_effort("clear checkpoint", self.repo.clear_checkpoint)

    # ── Internal ────────────────────────────────────────────────────────────

    def _mark_segment(self, started_at: int) -> None:
        self._segment_started_at = started_at
        self._segment_base = self.accumulators.copy()

    def _snapshot(self) -> None:
        self.recorder.snapshot(self.accumulators,
                               self.state.completed_work_intervals,
                               self.profile, day=self._diary_day)

    def _run_started_at(self, fallback: int) -> int:
        started = self.state.run_started_at_ms
        return started if started is not None else fallback

    def _write_checkpoint(self) -> None:
        running = self.state.is_running
        now = self._clock()
        segment_start = self._segment_started_at
        cp = Checkpoint(
            phase=self.state.current_phase,
            status=self.state.status,
            started_at_ms=segment_start if segment_start is not None else now,
            planned_end_at_ms=self.phase_clock.deadline_ms if running else None,
            remaining_ms=self.state.remaining_ms,
            completed_work_intervals=self.state.completed_work_intervals,
            accumulators=self._segment_base if running else self.accumulators.copy(),
            run_started_at_ms=self._run_started_at(now),
            profile=self.profile,
            config=self.config,
            diary_day=self._diary_day,
        )
        best_effort("write checkpoint", self.repo.save_checkpoint, cp)

    def _require_status(self, expected: str, action: str) -> None:
        if self.state.status != expected:
            raise RuntimeError(
                f"Cannot {action}: current status is '{self.state.status}', "
                f"expected '{expected}'."
            )

    def _notify_state(self) -> None:
        self._notify(self._state_listeners, self.state.status)

    @staticmethod
    def _notify(listeners: list, payload) -> None:
        for listener in list(listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener %r failed", listener)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The state machine of the timer. It is the only code that changes the
#   current phase, and it does so in exactly two places: _begin_phase()
#   and _finish().
#
# Transition rules:
#   - Work expires → stop? (Cycles: was this the target-th interval;
#     Workday: is the budget used up) → otherwise count it and pick
#     short/long break via the policy.
#   - Break expires → Work, auto-started, no idle gap.
#   - Workday runs can also end mid-phase: accounting is capped at the
#     workday length and the tick that hits the cap finishes the run.
#
# Data flow:
#   QTimer → tick() → PhaseClock.poll() → TimeAccountant.account()
#   → _expire() → SessionRecorder (on stop) → checkpoint write.
#
# Interviewer-friendly talking points:
#   1. Ordering: clock first, then accounting, then transition. The last
#      second of a phase is credited to that phase, not the next one.
#   2. Recovery replays the *same* _expire() path the live loop uses, so
#      "process was killed during a break" and "break ended normally"
#      produce identical state.
#   3. The checkpoint stores the counters at the start of the running
#      stretch, not the live ones; bulk catch-up from there is exact and
#      can never double count what autosave already wrote.
