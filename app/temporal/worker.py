"""Temporal worker for scheduled mailbox ingestion.

This worker:
- Connects to the Temporal server configured in TemporalSettings
- Registers every workflow and activity in the registries
- Ensures the mail poll schedule exists at the configured interval
- Runs one worker per task queue
"""

import asyncio
from datetime import timedelta
from typing import Dict, List

from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleAlreadyRunningError,
    ScheduleIntervalSpec,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
)
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from app.core.config import settings

# Importing the modules registers their workflows and activities
import app.temporal.ingestion.activities.mail_poll  # noqa: F401
import app.temporal.ingestion.workflows.mail_poll  # noqa: F401

from app.temporal.core.activity_registry import ActivityRegistry
from app.temporal.core.constants import (
    DEFAULT_TASK_QUEUE,
    DEFAULT_WORKFLOW_TIMEOUT_SECONDS,
    MAIL_POLL_SCHEDULE_ID,
)
from app.temporal.core.workflow_registry import WorkflowRegistry
from app.temporal.ingestion.workflows.mail_poll import MailPollWorkflow
from app.utils.logging import get_logger, set_default_level

set_default_level(settings.log_level)
logger = get_logger(__name__)


async def connect(max_retries: int = 5, retry_delay: int = 5) -> Client:
    """Connect to Temporal, retrying while the server comes up."""
    target = f"{settings.temporal_host}:{settings.temporal_port}"
    for attempt in range(max_retries):
        try:
            logger.info(f"Connecting to Temporal server at {target} (Attempt {attempt + 1}/{max_retries})")
            return await Client.connect(
                target_host=target,
                namespace=settings.temporal_namespace,
            )
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise


def group_workflows_by_queue() -> Dict[str, List[type]]:
    queues: Dict[str, List[type]] = {}
    for wf_name, metadata in WorkflowRegistry.get_all_workflows().items():
        queue = metadata.task_queue or DEFAULT_TASK_QUEUE
        queues.setdefault(queue, []).append(metadata.workflow_class)
        logger.debug(f"Workflow '{wf_name}' assigned to queue '{queue}'")
    return queues


async def ensure_poll_schedule(client: Client, interval_minutes: int = None) -> None:
    """Create the mail poll schedule unless it already exists.

    Overlapping runs are skipped so a slow batch never races the next one.
    """
    interval_minutes = interval_minutes or settings.ingestion.poll_interval_minutes
    schedule = Schedule(
        action=ScheduleActionStartWorkflow(
            MailPollWorkflow.run,
            id="mail-poll",
            task_queue=DEFAULT_TASK_QUEUE,
            execution_timeout=timedelta(seconds=DEFAULT_WORKFLOW_TIMEOUT_SECONDS),
        ),
        spec=ScheduleSpec(intervals=[ScheduleIntervalSpec(every=timedelta(minutes=interval_minutes))]),
        policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
    )
    try:
        await client.create_schedule(MAIL_POLL_SCHEDULE_ID, schedule)
        logger.info(
            f"Created mail poll schedule every {interval_minutes} minutes",
            extra={"schedule_id": MAIL_POLL_SCHEDULE_ID},
        )
    except ScheduleAlreadyRunningError:
        logger.info("Mail poll schedule already exists", extra={"schedule_id": MAIL_POLL_SCHEDULE_ID})


async def run_workers() -> None:
    """Connect to Temporal and run workers."""
    client = await connect()
    logger.info("Successfully connected to Temporal server")

    all_activities = ActivityRegistry.get_all_activities()
    queues = group_workflows_by_queue()
    logger.info(
        f"Registered {len(WorkflowRegistry.get_all_workflows())} workflows and {len(all_activities)} activities"
    )

    await ensure_poll_schedule(client)

    workers = []
    for queue_name, workflows in queues.items():
        worker = Worker(
            client,
            task_queue=queue_name,
            workflows=workflows,
            activities=list(all_activities.values()),
            max_concurrent_activities=10,
            max_concurrent_workflow_tasks=20,
            workflow_runner=SandboxedWorkflowRunner(
                restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
            ),
        )
        workers.append(worker.run())

    logger.info(f"Workers polling queues: {list(queues.keys())}")
    await asyncio.gather(*workers)


if __name__ == "__main__":
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        logger.info("Workers stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
