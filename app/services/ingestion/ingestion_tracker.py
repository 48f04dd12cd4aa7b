"""Ingestion checkpoint bookkeeping and health reporting."""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import IngestionSettings, settings
from app.repositories.checkpoint_repository import CheckpointRepository
from app.services.ingestion.lookback_planner import (
    CheckpointState,
    LookbackPlan,
    LookbackPolicy,
    plan_lookback,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ProcessedMarker:
    """Last external message a successful run got through."""

    external_id: str
    received_at: Optional[datetime] = None


@dataclass(frozen=True)
class IngestionHealth:
    healthy: bool
    last_run: Optional[datetime]
    consecutive_failures: int
    next_lookback: LookbackPlan
    alert: Optional[str]


def evaluate_health(
    checkpoint: CheckpointState,
    now: datetime,
    config: IngestionSettings,
    policy: LookbackPolicy,
) -> IngestionHealth:
    """Derive the health report from a checkpoint snapshot. Pure."""
    if checkpoint.last_successful_run is not None:
        hours_since_success = (now - checkpoint.last_successful_run).total_seconds() / 3600
    else:
        hours_since_success = math.inf

    failures = checkpoint.consecutive_failures
    alert = None
    if failures >= config.critical_failures:
        alert = f"CRITICAL: {failures} consecutive failures"
    elif hours_since_success > config.warning_after_hours:
        if math.isinf(hours_since_success):
            alert = "WARNING: No successful run recorded yet"
        else:
            alert = f"WARNING: No successful run in {math.floor(hours_since_success)} hours"

    healthy = failures < config.critical_failures and hours_since_success <= config.unhealthy_after_hours

    return IngestionHealth(
        healthy=healthy,
        last_run=checkpoint.last_successful_run,
        consecutive_failures=failures,
        next_lookback=plan_lookback(checkpoint, now, policy),
        alert=alert,
    )


class IngestionTracker:
    """Checkpoint store facade used by the poll run and the health endpoint.

    Writes are read-modify-write upserts without locking; concurrent runs may
    overwrite each other, which at worst widens or repeats a scan.
    """

    def __init__(
        self,
        session: AsyncSession,
        source: Optional[str] = None,
        config: Optional[IngestionSettings] = None,
    ):
        self.config = config or settings.ingestion
        self.source = source or self.config.source
        self.policy = LookbackPolicy.from_settings(self.config)
        self.repository = CheckpointRepository(session)

    async def get_checkpoint(self) -> CheckpointState:
        return await self.repository.get_state(self.source)

    async def record_success(
        self,
        processed_up_to: Optional[ProcessedMarker] = None,
        now: Optional[datetime] = None,
        resume_from: Optional[datetime] = None,
    ) -> CheckpointState:
        """Mark a run as successful and reset the failure counter.

        A run that left part of its window unhandled passes ``resume_from``,
        the receive time of the oldest message it did not reach. The success
        anchor is then held there so the next planned window still covers it.

        Args:
            processed_up_to: Newest message handled by the run, if any
            now: Completion time, defaults to the current UTC time
            resume_from: Oldest receive time still waiting to be handled

        Returns:
            The stored checkpoint
        """
        now = now or datetime.now(timezone.utc)
        current = await self.get_checkpoint()
        anchor = now if resume_from is None else min(now, resume_from)
        updated = replace(
            current,
            last_successful_run=anchor,
            last_attempted_run=now,
            consecutive_failures=0,
            last_error=None,
        )
        if processed_up_to is not None:
            updated = replace(
                updated,
                last_processed_external_id=processed_up_to.external_id,
                last_processed_external_date=(
                    processed_up_to.received_at or current.last_processed_external_date
                ),
            )

        await self.repository.save_state(self.source, updated)
        LOGGER.info(
            "Ingestion run succeeded",
            extra={
                "source": self.source,
                "previous_failures": current.consecutive_failures,
                "backlog_from": resume_from.isoformat() if resume_from else None,
            },
        )
        return updated

    async def record_failure(self, reason: str, now: Optional[datetime] = None) -> CheckpointState:
        """Record a failed run; success state is left untouched.

        Args:
            reason: Error description stored on the checkpoint
            now: Attempt time, defaults to the current UTC time

        Returns:
            The stored checkpoint
        """
        now = now or datetime.now(timezone.utc)
        current = await self.get_checkpoint()
        updated = replace(
            current,
            last_attempted_run=now,
            consecutive_failures=current.consecutive_failures + 1,
            last_error=reason,
        )
        await self.repository.save_state(self.source, updated)
        LOGGER.error(
            f"Ingestion failed (attempt {updated.consecutive_failures}): {reason}",
            extra={"source": self.source},
        )
        return updated

    async def plan(self, now: Optional[datetime] = None) -> LookbackPlan:
        """Plan the next scan window without touching the checkpoint."""
        now = now or datetime.now(timezone.utc)
        return plan_lookback(await self.get_checkpoint(), now, self.policy)

    async def health(self, now: Optional[datetime] = None) -> IngestionHealth:
        now = now or datetime.now(timezone.utc)
        return evaluate_health(await self.get_checkpoint(), now, self.config, self.policy)
