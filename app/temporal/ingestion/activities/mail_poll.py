"""Activities for the scheduled mailbox poll."""

from typing import Dict

from temporalio import activity

from app.core.database import async_session_maker
from app.services.extraction_service import GeminiExtractor
from app.services.ingestion.email_ingestion_service import EmailIngestionService
from app.services.ingestion.ingestion_tracker import IngestionTracker
from app.services.mail_client import GraphMailClient
from app.services.storage_service import StorageService
from app.temporal.core.activity_registry import ActivityRegistry


@ActivityRegistry.register("ingestion", "poll_mailbox")
@activity.defn
async def poll_mailbox() -> Dict:
    """Run one poll batch against the monitored mailbox.

    Batch failures are recorded on the checkpoint by the service and reported
    in the result, so Temporal does not retry them; the next scheduled run
    widens its lookback instead.
    """
    activity.logger.info("Starting scheduled mailbox poll")

    async with async_session_maker() as session:
        service = EmailIngestionService(
            session,
            mail_client=GraphMailClient(),
            blob_store=StorageService(),
            extractor=GeminiExtractor(),
        )
        result = await service.execute()

    summary = {
        "success": result.success,
        "scan_from": result.plan.scan_from.isoformat(),
        "window_days": result.plan.window_days,
        "reason": result.plan.reason,
        "messages_found": result.messages_found,
        "processed": result.processed,
        "skipped": result.skipped,
        "duplicates": result.duplicates,
        "remaining": result.remaining,
        "error": result.error,
    }

    log = activity.logger.info if result.success else activity.logger.warning
    log(
        f"Mailbox poll finished: {result.processed} processed, "
        f"{result.duplicates} duplicates, {result.skipped} skipped",
        extra={k: v for k, v in summary.items() if k != "reason"},
    )
    return summary


@ActivityRegistry.register("ingestion", "get_ingestion_health")
@activity.defn
async def get_ingestion_health() -> Dict:
    """Snapshot of the ingestion checkpoint, attached to the workflow result."""
    async with async_session_maker() as session:
        health = await IngestionTracker(session).health()

    return {
        "healthy": health.healthy,
        "last_run": health.last_run.isoformat() if health.last_run else None,
        "consecutive_failures": health.consecutive_failures,
        "next_scan_from": health.next_lookback.scan_from.isoformat(),
        "alert": health.alert,
    }
