"""Lifecycle status derivation for a solicitation -> quote -> order deal.

``compute_workflow_status`` is total and side-effect free: the same inputs
(including ``now``) always give the same result, and every combination of
inputs maps to exactly one status.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class WorkflowStatus(str, Enum):
    RFQ_RECEIVED = "rfq_received"
    RESPONSE_DRAFT = "response_draft"
    RESPONSE_SUBMITTED = "response_submitted"
    PO_RECEIVED = "po_received"
    IN_FULFILLMENT = "in_fulfillment"
    VERIFIED = "verified"
    SHIPPED = "shipped"
    NO_BID = "no_bid"
    EXPIRED = "expired"
    LOST = "lost"


STATUS_LABELS: dict[WorkflowStatus, str] = {
    WorkflowStatus.RFQ_RECEIVED: "Awaiting Response",
    WorkflowStatus.RESPONSE_DRAFT: "Response In Progress",
    WorkflowStatus.RESPONSE_SUBMITTED: "Awaiting PO",
    WorkflowStatus.NO_BID: "No Bid",
    WorkflowStatus.EXPIRED: "Expired",
    WorkflowStatus.LOST: "Lost",
    WorkflowStatus.PO_RECEIVED: "PO Received",
    WorkflowStatus.IN_FULFILLMENT: "In Fulfillment",
    WorkflowStatus.VERIFIED: "Verified",
    WorkflowStatus.SHIPPED: "Shipped",
}

TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.SHIPPED, WorkflowStatus.NO_BID, WorkflowStatus.EXPIRED, WorkflowStatus.LOST}
)

_ORDER_STATUS_MAP = {
    "pending": WorkflowStatus.PO_RECEIVED,
    "quality_sheet_created": WorkflowStatus.IN_FULFILLMENT,
    "labels_generated": WorkflowStatus.IN_FULFILLMENT,
    "verified": WorkflowStatus.VERIFIED,
    "shipped": WorkflowStatus.SHIPPED,
}


@dataclass(frozen=True)
class SolicitationState:
    due_date: Optional[datetime] = None


@dataclass(frozen=True)
class QuoteState:
    status: str
    submitted_at: Optional[datetime] = None
    no_bid: bool = False


@dataclass(frozen=True)
class OrderState:
    status: str


@dataclass(frozen=True)
class StatusResult:
    status: WorkflowStatus
    label: str


def _result(status: WorkflowStatus) -> StatusResult:
    return StatusResult(status=status, label=STATUS_LABELS[status])


def order_status_to_workflow(order_status: Optional[str]) -> WorkflowStatus:
    """Map an order's own status onto the deal lifecycle; unknown -> PO received."""
    return _ORDER_STATUS_MAP.get(order_status or "", WorkflowStatus.PO_RECEIVED)


def compute_workflow_status(
    solicitation: Optional[SolicitationState],
    quote: Optional[QuoteState],
    order: Optional[OrderState],
    now: datetime,
    lost_after_days: int = 30,
) -> StatusResult:
    """Derive the single lifecycle status of a deal.

    Args:
        solicitation: Primary solicitation, if any
        quote: Response quote of the primary solicitation, if any
        order: Primary order, if any
        now: Reference time used for expiry and loss
        lost_after_days: Days after submission without an order before a
            submitted quote counts as lost

    Returns:
        StatusResult with the status and its display label
    """
    if solicitation is None:
        if order is not None:
            return _result(order_status_to_workflow(order.status))
        return _result(WorkflowStatus.RFQ_RECEIVED)

    quote_sent = quote is not None and quote.status in ("submitted", "completed")

    if solicitation.due_date is not None and solicitation.due_date < now and not quote_sent:
        return _result(WorkflowStatus.EXPIRED)

    if quote is None:
        return _result(WorkflowStatus.RFQ_RECEIVED)

    if quote.no_bid:
        return _result(WorkflowStatus.NO_BID)

    if quote.status == "draft":
        return _result(WorkflowStatus.RESPONSE_DRAFT)

    if quote_sent:
        if order is None:
            if quote.submitted_at is not None and now - quote.submitted_at >= timedelta(days=lost_after_days):
                return _result(WorkflowStatus.LOST)
            return _result(WorkflowStatus.RESPONSE_SUBMITTED)
        return _result(order_status_to_workflow(order.status))

    return _result(WorkflowStatus.RFQ_RECEIVED)
