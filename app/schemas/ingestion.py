"""Schemas for mailbox ingestion endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LookbackPlanResponse(BaseModel):
    scan_from: datetime
    window_days: int
    reason: str


class IngestionHealthResponse(BaseModel):
    healthy: bool
    last_run: Optional[datetime] = None
    consecutive_failures: int
    next_lookback: LookbackPlanResponse
    alert: Optional[str] = None


class ResourceData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


class ChangeNotification(BaseModel):
    """One Microsoft Graph change notification."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    change_type: Optional[str] = Field(default=None, alias="changeType")
    client_state: Optional[str] = Field(default=None, alias="clientState")
    resource: Optional[str] = None
    resource_data: Optional[ResourceData] = Field(default=None, alias="resourceData")


class NotificationBatch(BaseModel):
    value: List[ChangeNotification] = Field(default_factory=list)


class PollResultResponse(BaseModel):
    success: bool
    scan_from: datetime
    window_days: int
    reason: str
    messages_found: int
    processed: int
    skipped: int
    duplicates: int
    remaining: int = 0
    error: Optional[str] = None


class SubscriptionResponse(BaseModel):
    action: str
    subscription_id: str
    expires_at: datetime


class LinkReportItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    order_number: Optional[str] = None
    solicitation_id: Optional[int] = None
    solicitation_number: Optional[str] = None
    match_type: str
    created: bool


class RetryExtractionResponse(BaseModel):
    kind: str
    document_id: int
    status: str
    processing_error: Optional[str] = None
    linked_solicitation_id: Optional[int] = None
