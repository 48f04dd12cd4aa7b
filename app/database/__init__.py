"""Database module for SQLAlchemy models."""

from app.core.database import Base, engine, async_session_maker, get_async_session
from app.database.models import (
    DocumentLink,
    GeneratedLabel,
    IngestionCheckpoint,
    OrderStatus,
    PurchaseOrder,
    QualitySheet,
    QuoteStatus,
    ResponseQuote,
    Solicitation,
    SolicitationStatus,
)

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "get_async_session",
    "IngestionCheckpoint",
    "Solicitation",
    "SolicitationStatus",
    "ResponseQuote",
    "QuoteStatus",
    "PurchaseOrder",
    "OrderStatus",
    "DocumentLink",
    "QualitySheet",
    "GeneratedLabel",
]
