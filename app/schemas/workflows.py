"""Workflow record schemas.

A WorkflowRecord is the read model of one business deal: the primary
solicitation, its response quote, the primary order with its fulfillment
records, and every document linked on either side. It is recomputed on each
read and never stored.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.workflow.status_engine import WorkflowStatus


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SolicitationSummary(_OrmModel):
    id: int
    file_name: str
    storage_key: Optional[str] = None
    solicitation_number: Optional[str] = None
    due_date: Optional[datetime] = None
    contracting_office: Optional[str] = None
    extracted_fields: Optional[Dict[str, Any]] = None
    status: str
    created_at: datetime


class QuoteSummary(_OrmModel):
    id: int
    status: str
    no_bid_reason: Optional[str] = None
    generated_pdf_url: Optional[str] = None
    vendor_quote_ref: Optional[str] = None
    quote_valid_until: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    response_data: Optional[Dict[str, Any]] = None
    created_at: datetime


class OrderSummary(_OrmModel):
    id: int
    order_number: Optional[str] = None
    solicitation_number: Optional[str] = None
    product_name: str
    nsn: Optional[str] = None
    quantity: int
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    ship_to_name: Optional[str] = None
    ship_to_address: Optional[str] = None
    delivery_date: Optional[datetime] = None
    status: str
    extracted_data: Optional[Dict[str, Any]] = None
    created_at: datetime


class QualitySheetSummary(_OrmModel):
    id: int
    lot_number: str
    quantity: int
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime


class LabelSummary(_OrmModel):
    id: int
    label_type: str
    label_size: str
    pdf_url: Optional[str] = None
    created_at: datetime


class LinkedOrder(_OrmModel):
    id: int
    order_number: Optional[str] = None
    solicitation_number: Optional[str] = None
    product_name: str
    nsn: Optional[str] = None
    quantity: int
    status: str
    created_at: datetime


class LinkedSolicitation(_OrmModel):
    id: int
    solicitation_number: Optional[str] = None
    file_name: str
    due_date: Optional[datetime] = None
    status: str
    created_at: datetime


class WorkflowRecord(BaseModel):
    """Derived view of one solicitation -> quote -> order deal."""

    solicitation_number: Optional[str] = None
    order_number: Optional[str] = None

    status: WorkflowStatus
    status_label: str

    solicitation: Optional[SolicitationSummary] = None
    quote: Optional[QuoteSummary] = None
    order: Optional[OrderSummary] = None
    quality_sheet: Optional[QualitySheetSummary] = None
    labels: List[LabelSummary] = Field(default_factory=list)

    linked_orders: List[LinkedOrder] = Field(default_factory=list)
    linked_solicitations: List[LinkedSolicitation] = Field(default_factory=list)

    solicitation_received_at: Optional[datetime] = None
    quote_submitted_at: Optional[datetime] = None
    order_received_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    def last_activity_at(self) -> Optional[datetime]:
        """Most recent of order received, quote submitted, solicitation received."""
        moments = [
            moment
            for moment in (self.order_received_at, self.quote_submitted_at, self.solicitation_received_at)
            if moment is not None
        ]
        return max(moments) if moments else None


class WorkflowStats(BaseModel):
    total: int
    by_status: Dict[WorkflowStatus, int]


class WorkflowListResponse(BaseModel):
    items: List[WorkflowRecord]
    count: int
    limit: int
    offset: int
