"""Workflow read path: records, listings and statistics."""

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import WorkflowSettings, settings
from app.core.exceptions import ValidationError
from app.database.models import ResponseQuote
from app.repositories.workflow_repository import WorkflowGraph, WorkflowRepository
from app.schemas.workflows import (
    LabelSummary,
    LinkedOrder,
    LinkedSolicitation,
    OrderSummary,
    QualitySheetSummary,
    QuoteSummary,
    SolicitationSummary,
    WorkflowRecord,
    WorkflowStats,
)
from app.services.base_service import BaseService
from app.services.workflow.status_engine import (
    OrderState,
    QuoteState,
    SolicitationState,
    WorkflowStatus,
    compute_workflow_status,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def is_no_bid(quote: ResponseQuote) -> bool:
    """Explicit no-bid marker on the quote, or a legacy one in its response data."""
    if quote.no_bid_reason and quote.no_bid_reason.strip():
        return True
    legacy_reason = (quote.response_data or {}).get("noBidReason")
    return isinstance(legacy_reason, str) and bool(legacy_reason.strip())


def build_record(graph: WorkflowGraph, now: datetime, lost_after_days: int) -> WorkflowRecord:
    """Compute status and flatten a traversed graph into a WorkflowRecord."""
    solicitation, quote, order = graph.solicitation, graph.quote, graph.order

    result = compute_workflow_status(
        SolicitationState(due_date=solicitation.due_date) if solicitation else None,
        QuoteState(
            status=quote.status or "draft",
            submitted_at=quote.submitted_at,
            no_bid=is_no_bid(quote),
        ) if quote else None,
        OrderState(status=order.status or "pending") if order else None,
        now,
        lost_after_days=lost_after_days,
    )

    return WorkflowRecord(
        solicitation_number=(
            (solicitation.solicitation_number if solicitation else None)
            or (order.solicitation_number if order else None)
        ),
        order_number=order.order_number if order else None,
        status=result.status,
        status_label=result.label,
        solicitation=SolicitationSummary.model_validate(solicitation) if solicitation else None,
        quote=QuoteSummary.model_validate(quote) if quote else None,
        order=OrderSummary.model_validate(order) if order else None,
        quality_sheet=(
            QualitySheetSummary.model_validate(graph.quality_sheet) if graph.quality_sheet else None
        ),
        labels=[LabelSummary.model_validate(label) for label in graph.labels],
        linked_orders=[LinkedOrder.model_validate(o) for o in graph.linked_orders],
        linked_solicitations=[LinkedSolicitation.model_validate(s) for s in graph.linked_solicitations],
        solicitation_received_at=solicitation.created_at if solicitation else None,
        quote_submitted_at=quote.submitted_at if quote else None,
        order_received_at=order.created_at if order else None,
        verified_at=graph.quality_sheet.verified_at if graph.quality_sheet else None,
    )


def _activity_sort_key(record: WorkflowRecord) -> tuple:
    moment = record.last_activity_at()
    # Records with no timestamps at all sort last
    return (moment is not None, moment or datetime.min.replace(tzinfo=timezone.utc))


class WorkflowService(BaseService):
    """Assembles WorkflowRecords from the link graph.

    Reads only; no link repair happens here.
    """

    def __init__(self, session: AsyncSession, config: Optional[WorkflowSettings] = None):
        super().__init__(session)
        self.config = config or settings.workflow
        self.repository = WorkflowRepository(session)

    async def run(self, *args, **kwargs) -> Any:
        """Dispatch to a read operation based on ``action``."""
        action = kwargs.pop("action", None)
        if action == "get":
            return await self.get_workflow(*args, **kwargs)
        if action == "list":
            return await self.list_workflows(*args, **kwargs)
        if action == "stats":
            return await self.get_workflow_stats(*args, **kwargs)
        raise ValidationError(f"Unknown workflow action: {action}")

    async def get_workflow(self, identifier: str, now: Optional[datetime] = None) -> Optional[WorkflowRecord]:
        """Look up one deal by solicitation number, order number or solicitation id.

        Args:
            identifier: Solicitation number, order number or numeric solicitation id
            now: Reference time for status derivation

        Returns:
            WorkflowRecord, or None if nothing matches
        """
        now = now or datetime.now(timezone.utc)
        identifier = identifier.strip()
        if not identifier:
            return None

        solicitation, order = await self.repository.find_root(identifier)
        if solicitation is None and order is None:
            return None

        graph = await self.repository.load_graph(solicitation, order)
        return build_record(graph, now, self.config.lost_after_days)

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[WorkflowRecord]:
        """List deals, most recent activity first.

        Every solicitation roots one record; orders with no link at all root
        their own. Filtering by status happens before pagination.

        Args:
            status: Only return records in this state
            limit: Maximum number of records, defaults to the configured page size
            offset: Number of matching records to skip
            now: Reference time for status derivation

        Returns:
            List of WorkflowRecord
        """
        now = now or datetime.now(timezone.utc)
        limit = self.config.default_page_size if limit is None else limit
        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")

        records = await self._all_records(now)
        if status is not None:
            records = [record for record in records if record.status == status]

        records.sort(key=_activity_sort_key, reverse=True)
        return records[offset:offset + limit]

    async def get_workflow_stats(self, now: Optional[datetime] = None) -> WorkflowStats:
        """Count every deal per lifecycle state; every state is reported, zero-filled."""
        now = now or datetime.now(timezone.utc)
        records = await self._all_records(now)

        by_status = {status: 0 for status in WorkflowStatus}
        for record in records:
            by_status[record.status] += 1

        return WorkflowStats(total=len(records), by_status=by_status)

    async def _all_records(self, now: datetime) -> List[WorkflowRecord]:
        solicitations, orphan_orders = await self.repository.list_roots()
        records = []
        for solicitation in solicitations:
            graph = await self.repository.load_graph(solicitation, None)
            records.append(build_record(graph, now, self.config.lost_after_days))
        for order in orphan_orders:
            graph = await self.repository.load_graph(None, order)
            records.append(build_record(graph, now, self.config.lost_after_days))

        LOGGER.debug(
            "Assembled workflow records",
            extra={"solicitations": len(solicitations), "orphan_orders": len(orphan_orders)},
        )
        return records
