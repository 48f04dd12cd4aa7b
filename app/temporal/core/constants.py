"""Shared constants for Temporal workflows."""

from app.core.config import settings

# Task Queues
DEFAULT_TASK_QUEUE = settings.temporal.task_queue or "ingestion-queue"

# Schedules
MAIL_POLL_SCHEDULE_ID = "mail-poll-schedule"

# Timeouts
DEFAULT_WORKFLOW_TIMEOUT_SECONDS = 900  # 15 minutes
DEFAULT_ACTIVITY_TIMEOUT_SECONDS = 300   # 5 minutes
