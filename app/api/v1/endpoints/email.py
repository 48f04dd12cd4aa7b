"""Mailbox ingestion endpoints: webhook, subscription, poll, backfill, retry and health."""

from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import StorageError
from app.dependencies import get_ingestion_service, get_ingestion_tracker, get_mail_client
from app.schemas.common import ApiResponse
from app.schemas.ingestion import (
    IngestionHealthResponse,
    LookbackPlanResponse,
    NotificationBatch,
    PollResultResponse,
    RetryExtractionResponse,
    SubscriptionResponse,
)
from app.services.ingestion.email_ingestion_service import EmailIngestionService, Outcome, PollResult
from app.services.ingestion.ingestion_tracker import IngestionTracker
from app.services.mail_client import MailClient
from app.utils.logging import get_logger
from app.utils.reference_numbers import DocumentKind
from app.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()


def _raise(request: Request, status_code: int, title: str, detail: str):
    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=detail,
        request=request,
    )
    raise HTTPException(status_code=status_code, detail=error_detail.model_dump(mode="json"))


@router.post(
    "/webhook",
    summary="Receive mailbox change notifications",
    operation_id="receive_mail_notifications",
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_notifications(
    request: Request,
    service: Annotated[EmailIngestionService, Depends(get_ingestion_service)],
    validation_token: Annotated[Optional[str], Query(alias="validationToken")] = None,
):
    """Handle a Graph notification batch, or echo the subscription handshake token."""
    if validation_token:
        LOGGER.info("Webhook validation received")
        return PlainTextResponse(validation_token, status_code=status.HTTP_200_OK)

    try:
        batch = NotificationBatch.model_validate(await request.json())
    except (ValueError, PydanticValidationError) as e:
        _raise(request, status.HTTP_400_BAD_REQUEST, "Invalid Notification Payload", str(e))

    expected_state = settings.ingestion.webhook_client_state
    if any(notification.client_state != expected_state for notification in batch.value):
        LOGGER.warning("Rejected webhook with invalid client state")
        _raise(request, status.HTTP_401_UNAUTHORIZED, "Invalid Client State", "Invalid client state")

    processed = failed = ignored = 0
    for notification in batch.value:
        message_id = notification.resource_data.id if notification.resource_data else None
        if notification.change_type != "created" or not message_id:
            ignored += 1
            continue
        try:
            outcome = await service.process_new_email(message_id)
            if outcome.outcome == Outcome.PROCESSED:
                processed += 1
            else:
                ignored += 1
        except Exception as e:
            failed += 1
            LOGGER.error(
                f"Error processing notification: {str(e)}",
                exc_info=True,
                extra={"message_id": message_id},
            )

    return create_api_response(
        data={"processed": processed, "ignored": ignored, "failed": failed},
        message="Notifications processed",
        request=request,
    )


@router.get(
    "/webhook",
    summary="Echo the handshake token or ensure the mailbox subscription",
    operation_id="manage_mail_subscription",
)
async def manage_subscription(
    request: Request,
    mail_client: Annotated[MailClient, Depends(get_mail_client)],
    validation_token: Annotated[Optional[str], Query(alias="validationToken")] = None,
):
    """Create or renew the inbox subscription pointing at this webhook."""
    if validation_token:
        return PlainTextResponse(validation_token, status_code=status.HTTP_200_OK)

    protocol = request.headers.get("x-forwarded-proto", request.url.scheme)
    host = request.headers.get("host", request.url.netloc)
    notification_url = f"{protocol}://{host}{settings.api_v1_prefix}/email/webhook"

    try:
        subscription = await mail_client.ensure_subscription(
            notification_url,
            settings.ingestion.webhook_client_state,
            settings.ingestion.subscription_ttl_days,
        )
    except Exception as e:
        LOGGER.error(f"Error managing subscription: {str(e)}", exc_info=True)
        _raise(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Subscription Failed", str(e))

    data = SubscriptionResponse(
        action=subscription.action,
        subscription_id=subscription.subscription_id,
        expires_at=subscription.expires_at,
    )
    return create_api_response(data=data, message=f"Subscription {subscription.action}", request=request)


def _require_api_key(request: Request, x_api_key: Optional[str]):
    expected_key = settings.ingestion.poll_api_key
    if expected_key and x_api_key != expected_key:
        _raise(request, status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Invalid API key")


def _poll_response(result: PollResult) -> PollResultResponse:
    return PollResultResponse(
        success=result.success,
        scan_from=result.plan.scan_from,
        window_days=result.plan.window_days,
        reason=result.plan.reason,
        messages_found=result.messages_found,
        processed=result.processed,
        skipped=result.skipped,
        duplicates=result.duplicates,
        remaining=result.remaining,
        error=result.error,
    )


@router.get(
    "/poll",
    response_model=ApiResponse,
    summary="Run one mailbox poll batch",
    operation_id="poll_mailbox",
)
async def poll_mailbox(
    request: Request,
    service: Annotated[EmailIngestionService, Depends(get_ingestion_service)],
    x_api_key: Annotated[Optional[str], Header()] = None,
):
    _require_api_key(request, x_api_key)

    result = await service.execute()
    if not result.success:
        _raise(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Email Poll Failed", result.error or "Unknown error")

    return create_api_response(
        data=_poll_response(result),
        message="No new emails to process" if result.messages_found == 0 else "Poll completed",
        request=request,
    )


@router.post(
    "/backfill",
    response_model=ApiResponse,
    summary="Re-scan the mailbox from a given time",
    operation_id="backfill_mailbox",
)
async def backfill_mailbox(
    request: Request,
    service: Annotated[EmailIngestionService, Depends(get_ingestion_service)],
    since: datetime = Query(..., description="Oldest receive time to scan (ISO 8601)"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of messages to handle"),
    x_api_key: Annotated[Optional[str], Header()] = None,
):
    """Ingest messages from ``since`` onwards, read ones included, without moving the checkpoint."""
    _require_api_key(request, x_api_key)
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)

    result = await service.backfill(since, limit=limit)
    if not result.success:
        _raise(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Email Backfill Failed", result.error or "Unknown error")

    return create_api_response(data=_poll_response(result), message="Backfill completed", request=request)


@router.post(
    "/retry/{kind}/{document_id}",
    response_model=ApiResponse,
    summary="Re-run extraction for a stored document",
    operation_id="retry_extraction",
)
async def retry_extraction(
    request: Request,
    kind: DocumentKind,
    document_id: int,
    service: Annotated[EmailIngestionService, Depends(get_ingestion_service)],
    x_api_key: Annotated[Optional[str], Header()] = None,
):
    _require_api_key(request, x_api_key)

    try:
        outcome = await service.retry_extraction(kind, document_id)
    except StorageError as e:
        LOGGER.error(f"Error reading stored document: {str(e)}", extra={"document_id": document_id})
        _raise(request, status.HTTP_502_BAD_GATEWAY, "Stored Document Unavailable", str(e))

    if outcome is None:
        _raise(request, status.HTTP_404_NOT_FOUND, "Document Not Found", f"No {kind.value} with id {document_id}")

    if kind == DocumentKind.ORDER:
        document = await service.orders.get_by_id(document_id)
    else:
        document = await service.solicitations.get_by_id(document_id)
    data = RetryExtractionResponse(
        kind=kind.value,
        document_id=document_id,
        status=document.status,
        processing_error=document.processing_error,
        linked_solicitation_id=outcome.linked_solicitation_id,
    )
    return create_api_response(data=data, message="Extraction retried", request=request)


@router.get(
    "/health",
    response_model=ApiResponse,
    summary="Mailbox ingestion health",
    operation_id="get_ingestion_health",
)
async def ingestion_health(
    request: Request,
    tracker: Annotated[IngestionTracker, Depends(get_ingestion_tracker)],
):
    """Report checkpoint health and the next lookback window; 503 when critical."""
    health = await tracker.health()
    data = IngestionHealthResponse(
        healthy=health.healthy,
        last_run=health.last_run,
        consecutive_failures=health.consecutive_failures,
        next_lookback=LookbackPlanResponse(
            scan_from=health.next_lookback.scan_from,
            window_days=health.next_lookback.window_days,
            reason=health.next_lookback.reason,
        ),
        alert=health.alert,
    )
    body = create_api_response(
        data=data,
        message="Ingestion healthy" if health.healthy else "Ingestion unhealthy",
        status=health.healthy,
        request=request,
    )
    if health.consecutive_failures >= tracker.config.critical_failures:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body
