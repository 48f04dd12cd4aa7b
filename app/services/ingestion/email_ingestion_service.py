"""Mailbox ingestion of solicitations and purchase orders.

Both producers end up here: the webhook hands over one message id at a time
through ``process_new_email``; the scheduled poll lists the mailbox and runs a
batch through ``run``. Creation is idempotent per message, so overlapping
deliveries from the two producers are harmless.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import IngestionSettings, settings
from app.database.models import OrderStatus, PurchaseOrder, SolicitationStatus
from app.repositories.base_repository import BaseRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.solicitation_repository import SolicitationRepository
from app.services.base_service import BaseService
from app.services.extraction_service import DocumentExtractor, ExtractionResult
from app.services.ingestion.deduplicator import Deduplicator
from app.services.ingestion.document_linker import DocumentLinker
from app.services.ingestion.ingestion_tracker import IngestionTracker, ProcessedMarker
from app.services.ingestion.lookback_planner import LookbackPlan
from app.services.mail_client import MailAttachment, MailClient, MailMessage
from app.services.storage_service import BlobStore
from app.utils.logging import get_logger
from app.utils.reference_numbers import (
    DocumentKind,
    detect_document_kind,
    is_main_order_document,
    normalize_solicitation_number,
    subject_reference,
)

LOGGER = get_logger(__name__)


class Outcome:
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED_SENDER = "ignored_sender"
    NO_ATTACHMENTS = "no_attachments"
    NO_DOCUMENT = "no_document"


@dataclass
class EmailOutcome:
    """What happened to one mail message."""

    message_id: str
    outcome: str
    kind: Optional[DocumentKind] = None
    solicitation_ids: List[int] = field(default_factory=list)
    order_id: Optional[int] = None
    linked_solicitation_id: Optional[int] = None


@dataclass
class PollResult:
    success: bool
    plan: LookbackPlan
    messages_found: int = 0
    processed: int = 0
    skipped: int = 0
    duplicates: int = 0
    remaining: int = 0
    error: Optional[str] = None


def provenance(message: MailMessage) -> Dict[str, Any]:
    """Mail metadata stored alongside extracted fields."""
    return {
        "external_message_id": message.id,
        "email_source": message.sender_address,
        "email_sender_name": message.sender_name,
        "email_subject": message.subject,
        "email_received_at": message.received_at.isoformat() if message.received_at else None,
    }


def _stored_message(external_id: str, fields: Optional[Dict[str, Any]]) -> MailMessage:
    """Rebuild the mail metadata a document was ingested from."""
    fields = fields or {}
    received_at = fields.get("email_received_at")
    return MailMessage(
        id=fields.get("external_message_id") or external_id,
        subject=fields.get("email_subject") or "",
        sender_address=fields.get("email_source"),
        sender_name=fields.get("email_sender_name"),
        received_at=datetime.fromisoformat(received_at) if received_at else None,
    )


def _storage_key(prefix: str, file_name: str, now: datetime) -> str:
    return f"{prefix}/email/{int(now.timestamp() * 1000)}-{file_name}"


class EmailIngestionService(BaseService):
    """Turns mailbox messages into solicitation and order records."""

    def __init__(
        self,
        session: AsyncSession,
        mail_client: MailClient,
        blob_store: BlobStore,
        extractor: DocumentExtractor,
        config: Optional[IngestionSettings] = None,
    ):
        super().__init__(session)
        self.mail = mail_client
        self.blobs = blob_store
        self.extractor = extractor
        self.config = config or settings.ingestion

        self.solicitations = SolicitationRepository(session)
        self.orders = OrderRepository(session)
        self.deduplicator = Deduplicator(session)
        self.linker = DocumentLinker(session)
        self.tracker = IngestionTracker(session, config=self.config)

    def is_from_expected_sender(self, message: MailMessage) -> bool:
        sender = (message.sender_address or "").lower()
        return sender == self.config.rfq_sender_email.lower()

    async def process_new_email(self, message_id: str) -> EmailOutcome:
        """Ingest a single message announced by a webhook notification."""
        message = await self.mail.get_message(message_id)
        return await self.handle_message(message)

    async def handle_message(self, message: MailMessage) -> EmailOutcome:
        """Ingest one message: filter, deduplicate, store, extract, link, mark read.

        Args:
            message: Message metadata

        Returns:
            EmailOutcome describing what was done
        """
        if not self.is_from_expected_sender(message):
            LOGGER.info(
                f"Email {message.id} is not from {self.config.rfq_sender_email}",
                extra={"message_id": message.id, "sender": message.sender_address},
            )
            return EmailOutcome(message.id, Outcome.IGNORED_SENDER)

        if not message.has_attachments:
            LOGGER.info("Email has no attachments, skipping", extra={"message_id": message.id})
            await self.mail.mark_read(message.id)
            return EmailOutcome(message.id, Outcome.NO_ATTACHMENTS)

        if await self.deduplicator.already_processed(message.id):
            LOGGER.info("Email already processed, skipping", extra={"message_id": message.id})
            await self.mail.mark_read(message.id)
            return EmailOutcome(message.id, Outcome.DUPLICATE)

        kind = detect_document_kind(message.subject)
        attachments = await self.mail.get_attachments(message.id)
        LOGGER.info(
            "Processing email",
            extra={
                "message_id": message.id,
                "kind": kind.value if kind else None,
                "attachments": len(attachments),
            },
        )

        if kind == DocumentKind.ORDER:
            outcome = await self._ingest_order(message, attachments)
        else:
            outcome = await self._ingest_solicitation(message, attachments)

        await self.mail.mark_read(message.id)
        return outcome

    async def _ingest_solicitation(
        self,
        message: MailMessage,
        attachments: List[MailAttachment],
    ) -> EmailOutcome:
        pdfs = [attachment for attachment in attachments if attachment.is_pdf]
        if not pdfs:
            LOGGER.info("No PDF attachment on solicitation email", extra={"message_id": message.id})
            return EmailOutcome(message.id, Outcome.NO_DOCUMENT, DocumentKind.SOLICITATION)
        if self.config.single_pdf_per_rfq:
            pdfs = pdfs[:1]

        outcome = EmailOutcome(message.id, Outcome.PROCESSED, DocumentKind.SOLICITATION)
        now = datetime.now(timezone.utc)
        for index, attachment in enumerate(pdfs):
            # Extra PDFs of one message need their own unique external id
            external_id = message.id if index == 0 else f"{message.id}:{index}"
            key = _storage_key("solicitations", attachment.name, now)

            solicitation = await self.solicitations.create_unique(
                "external_message_id",
                external_message_id=external_id,
                file_name=attachment.name,
                storage_key=key,
                file_size=attachment.size or len(attachment.content),
                mime_type=attachment.content_type,
                status=SolicitationStatus.PROCESSING.value,
                extracted_fields=provenance(message),
            )
            if solicitation is None:
                if index == 0:
                    return EmailOutcome(message.id, Outcome.DUPLICATE, DocumentKind.SOLICITATION)
                continue

            await self._store_document(self.solicitations, solicitation.id, key, attachment)
            extraction = await self._extract(attachment.content, DocumentKind.SOLICITATION, message.id)
            await self._apply_solicitation_extraction(solicitation.id, message, extraction)
            outcome.solicitation_ids.append(solicitation.id)

        return outcome

    async def _store_document(
        self,
        repository: BaseRepository,
        document_id: int,
        key: str,
        attachment: MailAttachment,
    ) -> None:
        """Upload the file of a freshly inserted row.

        A failed upload deletes the row again, so the message stays eligible
        for the next delivery instead of being deduplicated against a
        document without a file.
        """
        try:
            await self.blobs.upload(key, attachment.content, attachment.content_type or "application/pdf")
        except Exception:
            LOGGER.error(
                "Upload failed, discarding the new record",
                extra={"document_id": document_id, "key": key},
            )
            await repository.delete(document_id)
            raise

    async def _extract(self, content: bytes, kind: DocumentKind, message_id: str) -> ExtractionResult:
        """Run the extractor; an error it raises is reported as a failed extraction."""
        try:
            return await self.extractor.extract(content, kind)
        except Exception as e:
            LOGGER.error(
                f"Extraction raised: {str(e)}",
                exc_info=True,
                extra={"message_id": message_id, "kind": kind.value},
            )
            return ExtractionResult.failed(f"Extraction error: {str(e)}")

    async def _apply_solicitation_extraction(
        self,
        solicitation_id: int,
        message: MailMessage,
        extraction: ExtractionResult,
    ) -> None:
        if not extraction.success:
            LOGGER.warning(
                "Solicitation extraction failed",
                extra={"solicitation_id": solicitation_id, "error": extraction.error},
            )
            await self.solicitations.update(
                solicitation_id,
                extracted_text=extraction.text,
                status=SolicitationStatus.EXTRACTION_FAILED.value,
                processing_error=extraction.error,
            )
            return

        number = normalize_solicitation_number(
            extraction.get_str("solicitation_number") or subject_reference(message.subject)
        )
        await self.solicitations.update(
            solicitation_id,
            solicitation_number=number,
            due_date=extraction.get_date("due_date"),
            contracting_office=extraction.get_str("contracting_office"),
            extracted_text=extraction.text,
            extracted_fields={**extraction.fields, **provenance(message)},
            status=SolicitationStatus.PROCESSED.value,
            processing_error=None,
        )
        LOGGER.info(
            "Processed solicitation",
            extra={"solicitation_id": solicitation_id, "solicitation_number": number},
        )

    async def _ingest_order(
        self,
        message: MailMessage,
        attachments: List[MailAttachment],
    ) -> EmailOutcome:
        main_document: Optional[MailAttachment] = None
        packing_list: Optional[MailAttachment] = None
        for attachment in attachments:
            if not attachment.is_pdf:
                continue
            if is_main_order_document(attachment.name):
                main_document = main_document or attachment
            else:
                packing_list = packing_list or attachment

        if main_document is None:
            LOGGER.info("No main order document in attachments", extra={"message_id": message.id})
            return EmailOutcome(message.id, Outcome.NO_DOCUMENT, DocumentKind.ORDER)

        now = datetime.now(timezone.utc)
        main_key = _storage_key("orders", main_document.name, now)
        packing_key = _storage_key("orders", packing_list.name, now) if packing_list else None

        extraction = await self._extract(main_document.content, DocumentKind.ORDER, message.id)
        if extraction.success:
            values = self._order_values(message, extraction)
        else:
            LOGGER.warning(
                "Order extraction failed, recording placeholder order",
                extra={"message_id": message.id, "error": extraction.error},
            )
            values = self._failed_order_values(message, extraction)

        order: Optional[PurchaseOrder] = await self.orders.create_unique(
            "external_message_id",
            external_message_id=message.id,
            storage_key=main_key,
            packing_list_storage_key=packing_key,
            **values,
        )
        if order is None:
            return EmailOutcome(message.id, Outcome.DUPLICATE, DocumentKind.ORDER)

        await self._store_document(self.orders, order.id, main_key, main_document)
        if packing_list is not None:
            await self._store_document(self.orders, order.id, packing_key, packing_list)

        outcome = EmailOutcome(message.id, Outcome.PROCESSED, DocumentKind.ORDER, order_id=order.id)
        if extraction.success:
            match = await self.linker.match_order(order)
            outcome.linked_solicitation_id = match.id if match else None

        LOGGER.info(
            "Processed order",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "linked_solicitation_id": outcome.linked_solicitation_id,
            },
        )
        return outcome

    @staticmethod
    def _failed_order_values(message: MailMessage, extraction: ExtractionResult) -> Dict[str, Any]:
        return {
            "order_number": "EXTRACTION_FAILED",
            "product_name": "Unknown - extraction failed",
            "quantity": 1,
            "extracted_data": {**provenance(message), "extraction_error": extraction.error},
            "status": OrderStatus.EXTRACTION_FAILED.value,
            "processing_error": extraction.error,
        }

    @staticmethod
    def _order_values(message: MailMessage, extraction: ExtractionResult) -> Dict[str, Any]:
        return {
            "order_number": extraction.get_str("order_number") or "UNKNOWN",
            "solicitation_number": normalize_solicitation_number(extraction.get_str("solicitation_number")),
            "product_name": extraction.get_str("product_name") or "Unknown Product",
            "nsn": extraction.get_str("nsn"),
            "quantity": extraction.get_int("quantity", 1),
            "unit_price": extraction.get_decimal("unit_price"),
            "total_price": extraction.get_decimal("total_price"),
            "ship_to_name": extraction.get_str("ship_to_name"),
            "ship_to_address": extraction.get_str("ship_to_address"),
            "delivery_date": extraction.get_date("delivery_date"),
            "extracted_data": {**extraction.fields, **provenance(message)},
            "status": OrderStatus.PENDING.value,
        }

    async def run(self, now: Optional[datetime] = None) -> PollResult:
        """Run one poll batch and record its outcome on the checkpoint.

        Any upstream failure fails the whole batch: it is recorded once with
        ``record_failure`` and reported, never raised. Per-document extraction
        failures are stored on the documents and do not fail the batch.

        Args:
            now: Reference time for lookback planning and the checkpoint

        Returns:
            PollResult
        """
        now = now or datetime.now(timezone.utc)
        plan = await self.tracker.plan(now)
        result = PollResult(success=True, plan=plan)
        LOGGER.info(
            f"Email poll - {plan.reason}",
            extra={"scan_from": plan.scan_from.isoformat(), "window_days": plan.window_days},
        )

        newest: Optional[MailMessage] = None
        try:
            messages = await self.mail.list_messages(plan.scan_from, top=self.config.poll_page_size)
            candidates = [
                message for message in messages
                if self.is_from_expected_sender(message)
                and not message.is_read
                and (message.received_at is None or message.received_at >= plan.scan_from)
            ]
            candidates.sort(key=lambda m: m.received_at or plan.scan_from)
            batch = candidates[: self.config.poll_batch_size]
            backlog = candidates[len(batch):]
            result.messages_found = len(candidates)
            result.remaining = len(backlog)

            for message in batch:
                outcome = await self.handle_message(message)
                if outcome.outcome == Outcome.PROCESSED:
                    result.processed += 1
                elif outcome.outcome == Outcome.DUPLICATE:
                    result.duplicates += 1
                else:
                    result.skipped += 1
                newest = message
        except Exception as e:
            LOGGER.error(f"Email poll batch failed: {str(e)}", exc_info=True)
            await self.session.rollback()
            await self.tracker.record_failure(str(e), now=now)
            result.success = False
            result.error = str(e)
            return result

        marker = ProcessedMarker(newest.id, newest.received_at) if newest else None
        resume_from = None
        if backlog:
            # Hold the window open until the rest of the backlog is handled
            resume_from = backlog[0].received_at or plan.scan_from
            LOGGER.info(
                f"Email poll left {len(backlog)} messages for the next run",
                extra={"resume_from": resume_from.isoformat()},
            )
        await self.tracker.record_success(marker, now=now, resume_from=resume_from)
        return result

    async def retry_extraction(self, kind: DocumentKind, document_id: int) -> Optional[EmailOutcome]:
        """Re-run extraction for a stored document from its uploaded file.

        Intended for documents left in ``extraction_failed`` or stuck in
        ``processing``; the source message has usually been marked read by
        then, so the mailbox cannot replay it.

        Args:
            kind: Which table the document lives in
            document_id: Solicitation or purchase order id

        Returns:
            EmailOutcome for the document, or None if it does not exist
        """
        if kind == DocumentKind.ORDER:
            return await self._retry_order(document_id)

        solicitation = await self.solicitations.get_by_id(document_id)
        if solicitation is None:
            return None
        message = _stored_message(solicitation.external_message_id, solicitation.extracted_fields)
        content = await self.blobs.download(solicitation.storage_key)
        extraction = await self._extract(content, DocumentKind.SOLICITATION, message.id)
        await self._apply_solicitation_extraction(solicitation.id, message, extraction)
        LOGGER.info(
            "Retried solicitation extraction",
            extra={"solicitation_id": solicitation.id, "success": extraction.success},
        )
        return EmailOutcome(
            message.id,
            Outcome.PROCESSED,
            DocumentKind.SOLICITATION,
            solicitation_ids=[solicitation.id],
        )

    async def _retry_order(self, order_id: int) -> Optional[EmailOutcome]:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            return None
        message = _stored_message(order.external_message_id, order.extracted_data)
        content = await self.blobs.download(order.storage_key)
        extraction = await self._extract(content, DocumentKind.ORDER, message.id)

        outcome = EmailOutcome(message.id, Outcome.PROCESSED, DocumentKind.ORDER, order_id=order.id)
        if not extraction.success:
            await self.orders.update(
                order.id,
                status=OrderStatus.EXTRACTION_FAILED.value,
                processing_error=extraction.error,
            )
            return outcome

        order = await self.orders.update(order.id, processing_error=None, **self._order_values(message, extraction))
        match = await self.linker.match_order(order)
        outcome.linked_solicitation_id = match.id if match else None
        LOGGER.info(
            "Retried order extraction",
            extra={"order_id": order.id, "linked_solicitation_id": outcome.linked_solicitation_id},
        )
        return outcome

    async def backfill(self, since: datetime, limit: Optional[int] = None) -> PollResult:
        """Re-scan the mailbox from ``since``, read messages included.

        The checkpoint is neither consulted nor updated. Messages that
        already produced a document are reported as duplicates.

        Args:
            since: Oldest receive time to scan
            limit: Maximum number of messages to handle

        Returns:
            PollResult; ``success`` is False if the scan stopped on an error
        """
        plan = LookbackPlan(
            scan_from=since,
            window_days=max(math.ceil((datetime.now(timezone.utc) - since).total_seconds() / 86400), 1),
            reason="Backfill - manual rescan",
        )
        result = PollResult(success=True, plan=plan)
        limit = limit or self.config.poll_page_size
        try:
            messages = await self.mail.list_messages(since, top=self.config.poll_page_size)
            candidates = [message for message in messages if self.is_from_expected_sender(message)]
            candidates.sort(key=lambda m: m.received_at or since)
            result.messages_found = len(candidates)
            result.remaining = max(len(candidates) - limit, 0)

            for message in candidates[:limit]:
                outcome = await self.handle_message(message)
                if outcome.outcome == Outcome.PROCESSED:
                    result.processed += 1
                elif outcome.outcome == Outcome.DUPLICATE:
                    result.duplicates += 1
                else:
                    result.skipped += 1
        except Exception as e:
            LOGGER.error(f"Email backfill failed: {str(e)}", exc_info=True)
            await self.session.rollback()
            result.success = False
            result.error = str(e)

        LOGGER.info(
            "Email backfill finished",
            extra={
                "since": since.isoformat(),
                "processed": result.processed,
                "duplicates": result.duplicates,
                "success": result.success,
            },
        )
        return result
