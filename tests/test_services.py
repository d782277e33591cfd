"""Unit tests for the service layer: clock, accountant, schedule rules, dates."""

import pytest
from datetime import datetime
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.data.models import (
    Accumulators, BreakPolicy, PhaseType, RunMode, ScheduleConfig,
)
from src.services.dates import (
    day_key, day_key_days_ago, format_hms, next_midnight_delay_ms,
)
from src.services.phase_clock import PhaseClock
from src.services.schedule import (
    break_after, forecast, next_phase, progress_pct, reconcile_cycles,
    should_stop, workday_limit,
)
from src.services.time_accountant import TimeAccountant


class TestPhaseClock:
    def test_counts_down_from_deadline(self, clock, ticker):
        pc = PhaseClock(clock=clock, ticker=ticker)
        assert pc.start(10) is False
        assert ticker.armed
        assert pc.display_seconds == 10

        clock.advance(3.2)
        assert pc.poll() is False
        assert pc.remaining_ms == 6_800
        assert pc.display_seconds == 7

    def test_fires_exactly_once(self, clock, ticker):
        fired = []
        pc = PhaseClock(clock=clock, ticker=ticker, on_expired=lambda: fired.append(1))
        pc.start(5)
        clock.advance(5)
        assert pc.poll() is True
        assert pc.resync() is False
        assert pc.poll() is False
        assert fired == [1]
        assert not ticker.armed
        assert pc.fired

    def test_late_poll_still_fires_once(self, clock):
        pc = PhaseClock(clock=clock)
        pc.start(5)
        clock.advance(3600)
        assert pc.poll() is True
        assert pc.remaining_ms == 0

    def test_backwards_clock_clamped_to_duration(self, clock):
        pc = PhaseClock(clock=clock)
        pc.start(5)
        clock.advance(-60)
        pc.poll()
        assert pc.remaining_ms == 5_000

    def test_pause_freezes_remaining(self, clock, ticker):
        pc = PhaseClock(clock=clock, ticker=ticker)
        pc.start(10)
        clock.advance(4)
        pc.poll()
        pc.pause()
        assert not ticker.armed
        assert pc.deadline_ms is None

        clock.advance(100)
        assert pc.poll() is False
        assert pc.remaining_ms == 6_000

        assert pc.resume() is False
        assert ticker.armed
        assert pc.deadline_ms == clock.now + 6_000

    def test_start_until_past_deadline_fires_immediately(self, clock):
        pc = PhaseClock(clock=clock)
        assert pc.start_until(clock.now - 1, 300) is True

    def test_restore_paused_and_cancel(self, clock, ticker):
        pc = PhaseClock(clock=clock, ticker=ticker)
        pc.restore_paused(90_000, 60)
        assert pc.remaining_ms == 60_000
        assert not pc.is_armed

        pc.start(10)
        pc.cancel()
        assert not ticker.armed
        assert pc.remaining_ms == 0
        assert pc.poll() is False


class TestTimeAccountant:
    def test_credits_whole_seconds_and_carries_remainder(self):
        acc = TimeAccountant()
        acc.resume(0)
        assert acc.account(1_700, PhaseType.WORK) == 1
        assert acc.last_accounted_at_ms == 1_000
        assert acc.account(2_100, PhaseType.WORK) == 1
        assert acc.accumulators.active_sec == 2

    def test_idempotent_at_same_instant(self):
        acc = TimeAccountant()
        acc.resume(0)
        acc.account(5_000, PhaseType.WORK)
        assert acc.account(5_000, PhaseType.WORK) == 0
        assert acc.accumulators.active_sec == 5

    def test_negative_delta_ignored(self):
        acc = TimeAccountant()
        acc.resume(10_000)
        assert acc.account(4_000, PhaseType.WORK) == 0
        assert acc.accumulators.elapsed_total_sec == 0

    def test_buckets(self):
        acc = TimeAccountant()
        acc.resume(0)
        acc.account(10_000, PhaseType.WORK)
        acc.account(13_000, PhaseType.SHORT_BREAK)
        acc.account(20_000, PhaseType.LONG_BREAK)
        a = acc.accumulators
        assert (a.active_sec, a.short_break_sec, a.long_break_sec) == (10, 3, 7)
        assert a.break_sec == 10
        assert a.active_sec + a.break_sec == a.elapsed_total_sec

    def test_paused_accounts_nothing(self):
        acc = TimeAccountant()
        acc.resume(0)
        acc.pause()
        assert acc.account(60_000, PhaseType.WORK) == 0
        acc.resume(60_000)
        acc.account(62_000, PhaseType.WORK)
        assert acc.accumulators.active_sec == 2

    def test_limit_clamps(self):
        acc = TimeAccountant()
        acc.resume(0)
        assert acc.account(10_000, PhaseType.WORK, limit_sec=7) == 7
        assert acc.limit_reached(7)
        assert acc.account(20_000, PhaseType.WORK, limit_sec=7) == 0
        assert acc.accumulators.elapsed_total_sec == 7

    def test_bulk_catch_up(self):
        acc = TimeAccountant()
        acc.restore(Accumulators(active_sec=5, elapsed_total_sec=5))
        credited = acc.bulk_catch_up(0, 300_500, PhaseType.SHORT_BREAK)
        assert credited == 300
        assert acc.accumulators.short_break_sec == 300
        assert acc.accumulators.elapsed_total_sec == 305
        assert acc.bulk_catch_up(10_000, 0, PhaseType.WORK) == 0

    def test_zero_keeps_anchor(self):
        acc = TimeAccountant()
        acc.resume(0)
        acc.account(5_000, PhaseType.WORK)
        acc.zero()
        assert acc.accumulators.is_empty
        assert acc.account(6_000, PhaseType.WORK) == 1


class TestScheduleRules:
    def test_standard_break_determinism(self):
        cfg = ScheduleConfig(long_break_every=4)
        for n in range(1, 13):
            expected = PhaseType.LONG_BREAK if n % 4 == 0 else PhaseType.SHORT_BREAK
            assert break_after(cfg, n) is expected

    @pytest.mark.parametrize("policy,phase", [
        (BreakPolicy.SHORT_ONLY, PhaseType.SHORT_BREAK),
        (BreakPolicy.LONG_ONLY, PhaseType.LONG_BREAK),
    ])
    def test_constant_policies(self, policy, phase):
        cfg = ScheduleConfig(break_policy=policy)
        assert {break_after(cfg, n) for n in range(1, 10)} == {phase}

    def test_next_phase(self):
        cfg = ScheduleConfig()
        assert next_phase(cfg, PhaseType.WORK, 4) is PhaseType.LONG_BREAK
        assert next_phase(cfg, PhaseType.SHORT_BREAK, 1) is PhaseType.WORK
        assert next_phase(cfg, PhaseType.LONG_BREAK, 4) is PhaseType.WORK

    def test_should_stop_cycles(self):
        cfg = ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=3)
        assert not should_stop(cfg, PhaseType.WORK, 1, 0)
        assert should_stop(cfg, PhaseType.WORK, 2, 0)
        assert not should_stop(cfg, PhaseType.SHORT_BREAK, 5, 0)

    def test_should_stop_workday(self):
        cfg = ScheduleConfig(workday_duration_sec=100)
        assert not should_stop(cfg, PhaseType.WORK, 9, 99)
        assert should_stop(cfg, PhaseType.SHORT_BREAK, 0, 100)
        assert workday_limit(cfg) == 100
        assert workday_limit(ScheduleConfig(run_mode=RunMode.CYCLES)) is None

    def test_reconcile_five_standard_cycles(self):
        cfg = ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=5)
        totals = reconcile_cycles(cfg, 5)
        assert totals.active_sec == 7500
        assert (totals.short_breaks, totals.long_breaks) == (3, 1)
        assert totals.break_sec == 300 * 3 + 900
        assert totals.short_break_sec + totals.long_break_sec == totals.break_sec

    def test_reconcile_single_interval_has_no_break(self):
        totals = reconcile_cycles(ScheduleConfig(), 1)
        assert totals.break_sec == 0
        assert totals.active_sec == 1500

    def test_forecast_cycles_stops_before_final_break(self):
        cfg = ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=2)
        assert forecast(cfg, PhaseType.WORK, 0) == [
            PhaseType.SHORT_BREAK, PhaseType.WORK,
        ]
        assert forecast(cfg, PhaseType.WORK, 1) == []

    def test_forecast_workday_respects_budget(self):
        cfg = ScheduleConfig(workday_duration_sec=1500 + 300 + 1500)
        assert forecast(cfg, PhaseType.WORK, 0, 0, 1500) == [
            PhaseType.SHORT_BREAK, PhaseType.WORK,
        ]

    def test_forecast_limit(self):
        cfg = ScheduleConfig(workday_duration_sec=10 ** 7)
        assert len(forecast(cfg, PhaseType.WORK, 0, limit=5)) == 5

    def test_progress(self):
        cfg = ScheduleConfig(workday_duration_sec=1000)
        assert progress_pct(cfg, 0, 250) == 25.0
        assert progress_pct(cfg, 0, 5000) == 100.0
        cycles = ScheduleConfig(run_mode=RunMode.CYCLES, target_cycles=4)
        assert progress_pct(cycles, 1, 0) == 25.0


class TestDates:
    def test_day_keys(self):
        ms = int(datetime(2024, 3, 5, 23, 59).timestamp() * 1000)
        assert day_key(ms) == "2024-03-05"
        assert day_key_days_ago(5, ms) == "2024-02-29"

    def test_next_midnight(self):
        ms = int(datetime(2024, 3, 5, 23, 59, 0).timestamp() * 1000)
        assert next_midnight_delay_ms(ms) == 60_000

    def test_format_hms(self):
        assert format_hms(3725) == "01:02:05"
        assert format_hms(-3) == "00:00:00"
