"""Adaptive lookback planning for mailbox ingestion.

The planner answers one question: how far back should the next ingestion run
re-scan the mailbox? It is a pure function of the checkpoint and an explicit
``now`` so it can be called from the health endpoint as well as from the poll
run without side effects.

Precedence:

1. no successful run yet -> default window
2. recent success, no failures -> from the last success minus a safety buffer
3. consecutive failures -> exponentially widened window
4. long gap since the last success -> one day more than the gap

Every window is clamped to ``max_window_days``.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import IngestionSettings


@dataclass(frozen=True)
class CheckpointState:
    """Snapshot of the ingestion checkpoint for one source."""

    last_successful_run: Optional[datetime] = None
    last_attempted_run: Optional[datetime] = None
    consecutive_failures: int = 0
    last_processed_external_id: Optional[str] = None
    last_processed_external_date: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class LookbackPolicy:
    """Tunable constants of the planner."""

    default_window_days: int = 2
    max_window_days: int = 30
    failure_multiplier: int = 2
    recent_success_hours: int = 24
    safety_buffer_minutes: int = 30

    @classmethod
    def from_settings(cls, ingestion: IngestionSettings) -> "LookbackPolicy":
        return cls(
            default_window_days=ingestion.default_lookback_days,
            max_window_days=ingestion.max_lookback_days,
            failure_multiplier=ingestion.failure_multiplier,
            recent_success_hours=ingestion.recent_success_hours,
            safety_buffer_minutes=ingestion.safety_buffer_minutes,
        )


@dataclass(frozen=True)
class LookbackPlan:
    """Where the next run starts scanning and why."""

    scan_from: datetime
    window_days: int
    reason: str


def failure_window_days(failures: int, policy: LookbackPolicy) -> int:
    """``min(default * multiplier ** failures, max)`` without building huge ints."""
    window = policy.default_window_days
    for _ in range(failures):
        if window >= policy.max_window_days:
            break
        window *= policy.failure_multiplier
    return min(window, policy.max_window_days)


def plan_lookback(
    checkpoint: CheckpointState,
    now: datetime,
    policy: LookbackPolicy = LookbackPolicy(),
) -> LookbackPlan:
    """Compute the scan window for the next ingestion run.

    Args:
        checkpoint: Current checkpoint snapshot
        now: Reference time (timezone-aware)
        policy: Planner constants

    Returns:
        LookbackPlan with the scan start, window size in days and a reason
    """
    if checkpoint.last_successful_run is None:
        window = min(policy.default_window_days, policy.max_window_days)
        return LookbackPlan(
            scan_from=now - timedelta(days=window),
            window_days=window,
            reason="First run - no previous successful run, using default lookback",
        )

    hours_since_success = (now - checkpoint.last_successful_run).total_seconds() / 3600

    if checkpoint.consecutive_failures == 0 and hours_since_success < policy.recent_success_hours:
        scan_from = checkpoint.last_successful_run - timedelta(minutes=policy.safety_buffer_minutes)
        window = math.ceil((now - scan_from).total_seconds() / 86400)
        window = min(max(window, 1), policy.max_window_days)
        return LookbackPlan(
            scan_from=scan_from,
            window_days=window,
            reason="Normal operation - scanning from last successful run",
        )

    if checkpoint.consecutive_failures > 0:
        window = failure_window_days(checkpoint.consecutive_failures, policy)
        return LookbackPlan(
            scan_from=now - timedelta(days=window),
            window_days=window,
            reason=f"Failure recovery - {checkpoint.consecutive_failures} consecutive failures",
        )

    days_since_success = hours_since_success / 24
    window = min(math.ceil(days_since_success) + 1, policy.max_window_days)
    return LookbackPlan(
        scan_from=now - timedelta(days=window),
        window_days=window,
        reason=f"Gap detected - {math.floor(days_since_success)} days since last successful run",
    )
