"""Tests for checkpoint bookkeeping and ingestion health."""

from datetime import timedelta

import pytest

from app.core.config import IngestionSettings
from app.services.ingestion.ingestion_tracker import (
    IngestionTracker,
    ProcessedMarker,
    evaluate_health,
)
from app.services.ingestion.lookback_planner import CheckpointState, LookbackPolicy

CONFIG = IngestionSettings()
POLICY = LookbackPolicy.from_settings(CONFIG)


class TestEvaluateHealth:
    def test_recent_success_is_healthy(self, now) -> None:
        health = evaluate_health(
            CheckpointState(last_successful_run=now - timedelta(hours=2)), now, CONFIG, POLICY
        )

        assert health.healthy is True
        assert health.alert is None
        assert health.next_lookback.reason.startswith("Normal operation")

    def test_stale_success_warns_but_stays_healthy(self, now) -> None:
        health = evaluate_health(
            CheckpointState(last_successful_run=now - timedelta(hours=30)), now, CONFIG, POLICY
        )

        assert health.healthy is True
        assert health.alert == "WARNING: No successful run in 30 hours"

    def test_long_silence_is_unhealthy(self, now) -> None:
        health = evaluate_health(
            CheckpointState(last_successful_run=now - timedelta(hours=50)), now, CONFIG, POLICY
        )

        assert health.healthy is False

    def test_critical_failures(self, now) -> None:
        checkpoint = CheckpointState(
            last_successful_run=now - timedelta(hours=1),
            consecutive_failures=3,
        )
        health = evaluate_health(checkpoint, now, CONFIG, POLICY)

        assert health.healthy is False
        assert health.alert == "CRITICAL: 3 consecutive failures"
        assert health.next_lookback.window_days == 16

    def test_never_succeeded(self, now) -> None:
        health = evaluate_health(CheckpointState(), now, CONFIG, POLICY)

        assert health.healthy is False
        assert health.last_run is None
        assert health.alert == "WARNING: No successful run recorded yet"


class TestIngestionTracker:
    @pytest.mark.asyncio
    async def test_empty_checkpoint(self, db_session) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)

        checkpoint = await tracker.get_checkpoint()

        assert checkpoint == CheckpointState()

    @pytest.mark.asyncio
    async def test_failures_accumulate_and_success_resets(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)

        await tracker.record_failure("Graph unavailable", now=now)
        await tracker.record_failure("Graph unavailable", now=now + timedelta(minutes=15))
        checkpoint = await tracker.get_checkpoint()
        assert checkpoint.consecutive_failures == 2
        assert checkpoint.last_error == "Graph unavailable"
        assert checkpoint.last_successful_run is None
        assert checkpoint.last_attempted_run == now + timedelta(minutes=15)

        later = now + timedelta(minutes=30)
        marker = ProcessedMarker("AAMkAD-1", now - timedelta(hours=1))
        await tracker.record_success(marker, now=later)
        checkpoint = await tracker.get_checkpoint()
        assert checkpoint.consecutive_failures == 0
        assert checkpoint.last_error is None
        assert checkpoint.last_successful_run == later
        assert checkpoint.last_processed_external_id == "AAMkAD-1"
        assert checkpoint.last_processed_external_date == now - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_failure_keeps_last_success(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)
        await tracker.record_success(now=now)

        await tracker.record_failure("timeout", now=now + timedelta(hours=1))

        checkpoint = await tracker.get_checkpoint()
        assert checkpoint.last_successful_run == now
        assert checkpoint.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_success_without_marker_keeps_previous_marker(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)
        await tracker.record_success(ProcessedMarker("msg-1", now), now=now)

        await tracker.record_success(now=now + timedelta(minutes=15))

        checkpoint = await tracker.get_checkpoint()
        assert checkpoint.last_processed_external_id == "msg-1"

    @pytest.mark.asyncio
    async def test_unfinished_backlog_holds_the_next_window_open(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)
        backlog_from = now - timedelta(hours=6)

        await tracker.record_success(ProcessedMarker("msg-1", now - timedelta(hours=7)), now=now,
                                     resume_from=backlog_from)

        checkpoint = await tracker.get_checkpoint()
        assert checkpoint.last_successful_run == backlog_from
        assert checkpoint.last_attempted_run == now
        plan = await tracker.plan(now + timedelta(minutes=15))
        assert plan.scan_from == backlog_from - timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_backlog_older_than_a_day_is_still_covered(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)
        backlog_from = now - timedelta(hours=40)

        await tracker.record_success(now=now, resume_from=backlog_from)

        plan = await tracker.plan(now + timedelta(minutes=15))
        assert plan.scan_from <= backlog_from

    @pytest.mark.asyncio
    async def test_sources_are_independent(self, db_session, now) -> None:
        email = IngestionTracker(db_session, source="email", config=CONFIG)
        other = IngestionTracker(db_session, source="portal", config=CONFIG)

        await email.record_failure("boom", now=now)

        assert (await email.get_checkpoint()).consecutive_failures == 1
        assert (await other.get_checkpoint()).consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_plan_follows_checkpoint(self, db_session, now) -> None:
        tracker = IngestionTracker(db_session, config=CONFIG)
        for _ in range(2):
            await tracker.record_failure("boom", now=now)

        plan = await tracker.plan(now)

        assert plan.window_days == 8
        assert plan.scan_from == now - timedelta(days=8)
