"""Scheduled workflow that drains new mail into solicitations and orders."""

from datetime import timedelta
from typing import Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

from app.temporal.core.constants import DEFAULT_ACTIVITY_TIMEOUT_SECONDS
from app.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType


@WorkflowRegistry.register(
    category=WorkflowType.INGESTION,
    dependencies=["poll_mailbox", "get_ingestion_health"],
)
@workflow.defn
class MailPollWorkflow:
    """Runs one poll batch and reports the resulting ingestion health."""

    def __init__(self):
        self._status = "initialized"
        self._summary: Optional[Dict] = None

    @workflow.query
    def get_status(self) -> dict:
        return {"status": self._status, "summary": self._summary}

    @workflow.run
    async def run(self) -> dict:
        self._status = "polling"

        # Batch failures come back in the summary; only infrastructure errors retry
        self._summary = await workflow.execute_activity(
            "poll_mailbox",
            start_to_close_timeout=timedelta(seconds=DEFAULT_ACTIVITY_TIMEOUT_SECONDS),
            retry_policy=RetryPolicy(
                maximum_attempts=2,
                initial_interval=timedelta(seconds=30),
            ),
        )

        health = await workflow.execute_activity(
            "get_ingestion_health",
            start_to_close_timeout=timedelta(minutes=1),
            retry_policy=RetryPolicy(maximum_attempts=3),
        )

        self._status = "completed" if self._summary.get("success") else "failed"
        if health.get("alert"):
            workflow.logger.warning(f"Ingestion alert: {health['alert']}")

        return {
            "status": self._status,
            "poll": self._summary,
            "health": health,
        }
