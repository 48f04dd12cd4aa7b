"""Tests for adaptive lookback planning."""

from datetime import datetime, timedelta, timezone

import pytest

from app.services.ingestion.lookback_planner import (
    CheckpointState,
    LookbackPolicy,
    failure_window_days,
    plan_lookback,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
POLICY = LookbackPolicy()


class TestPlanLookback:
    """Precedence of the planning rules."""

    def test_first_run_uses_default_window(self) -> None:
        plan = plan_lookback(CheckpointState(), NOW, POLICY)

        assert plan.window_days == 2
        assert plan.scan_from == NOW - timedelta(days=2)
        assert plan.reason.startswith("First run")

    def test_recent_success_scans_from_last_run_minus_buffer(self) -> None:
        last = NOW - timedelta(hours=1)
        plan = plan_lookback(CheckpointState(last_successful_run=last), NOW, POLICY)

        assert plan.scan_from == last - timedelta(minutes=30)
        assert plan.window_days == 1
        assert plan.reason.startswith("Normal operation")

    def test_failures_take_precedence_over_recent_success(self) -> None:
        checkpoint = CheckpointState(
            last_successful_run=NOW - timedelta(hours=2),
            consecutive_failures=1,
        )
        plan = plan_lookback(checkpoint, NOW, POLICY)

        assert plan.window_days == 4
        assert plan.scan_from == NOW - timedelta(days=4)
        assert plan.reason == "Failure recovery - 1 consecutive failures"

    def test_backoff_after_three_failures(self) -> None:
        checkpoint = CheckpointState(
            last_successful_run=NOW - timedelta(days=1),
            consecutive_failures=3,
        )
        plan = plan_lookback(checkpoint, NOW, POLICY)

        assert plan.window_days == 16
        assert plan.scan_from == NOW - timedelta(days=16)

    def test_gap_without_failures_adds_a_day(self) -> None:
        checkpoint = CheckpointState(last_successful_run=NOW - timedelta(days=3, hours=2))
        plan = plan_lookback(checkpoint, NOW, POLICY)

        assert plan.window_days == 5
        assert plan.reason == "Gap detected - 3 days since last successful run"

    def test_gap_is_capped(self) -> None:
        checkpoint = CheckpointState(last_successful_run=NOW - timedelta(days=90))
        plan = plan_lookback(checkpoint, NOW, POLICY)

        assert plan.window_days == 30
        assert plan.scan_from == NOW - timedelta(days=30)

    def test_planning_is_pure(self) -> None:
        checkpoint = CheckpointState(last_successful_run=NOW - timedelta(days=2), consecutive_failures=2)

        assert plan_lookback(checkpoint, NOW, POLICY) == plan_lookback(checkpoint, NOW, POLICY)

    def test_custom_policy(self) -> None:
        policy = LookbackPolicy(default_window_days=7, max_window_days=10)

        assert plan_lookback(CheckpointState(), NOW, policy).window_days == 7
        assert plan_lookback(CheckpointState(consecutive_failures=1, last_successful_run=NOW), NOW, policy).window_days == 10


class TestFailureWindow:
    @pytest.mark.parametrize(
        "failures,expected",
        [(0, 2), (1, 4), (2, 8), (3, 16), (4, 30), (10, 30)],
    )
    def test_growth_and_cap(self, failures: int, expected: int) -> None:
        assert failure_window_days(failures, POLICY) == expected

    def test_never_shrinks_as_failures_grow(self) -> None:
        windows = [failure_window_days(n, POLICY) for n in range(20)]

        assert windows == sorted(windows)
        assert all(window <= POLICY.max_window_days for window in windows)

    def test_huge_failure_count(self) -> None:
        assert failure_window_days(10_000, POLICY) == 30
