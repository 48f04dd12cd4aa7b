"""SQLAlchemy models for all database tables."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite drops tzinfo on storage, so naive values read back are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")


class SolicitationStatus(str, Enum):
    """Extraction lifecycle of a solicitation document."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    EXTRACTION_FAILED = "extraction_failed"


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"
    SUBMITTED = "submitted"


class OrderStatus(str, Enum):
    """Fulfillment lifecycle of a purchase order."""
    PENDING = "pending"
    QUALITY_SHEET_CREATED = "quality_sheet_created"
    LABELS_GENERATED = "labels_generated"
    VERIFIED = "verified"
    SHIPPED = "shipped"
    EXTRACTION_FAILED = "extraction_failed"


class IngestionCheckpoint(Base):
    """Ingestion progress, one row per ingestion source."""

    __tablename__ = "ingestion_checkpoints"
    __table_args__ = (
        CheckConstraint("consecutive_failures >= 0", name="ck_ingestion_checkpoints_failures_non_negative"),
    )

    source: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_successful_run: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_attempted_run: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_processed_external_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_processed_external_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class Solicitation(Base):
    """Request for quote received from a contracting office."""

    __tablename__ = "solicitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    solicitation_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    due_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    contracting_office: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=SolicitationStatus.UPLOADED.value
    )  # uploaded | processing | processed | failed | extraction_failed
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_fields: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Authoritative idempotence guard for mailbox ingestion
    external_message_id: Mapped[str | None] = mapped_column(String(500), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    quote: Mapped["ResponseQuote | None"] = relationship(
        "ResponseQuote", back_populates="solicitation", uselist=False, cascade="all, delete-orphan"
    )


class ResponseQuote(Base):
    """Our quote in response to a solicitation."""

    __tablename__ = "response_quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    solicitation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("solicitations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=QuoteStatus.DRAFT.value
    )  # draft | completed | submitted
    no_bid_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    generated_pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor_quote_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quote_valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    solicitation: Mapped["Solicitation"] = relationship("Solicitation", back_populates="quote")


class PurchaseOrder(Base):
    """Purchase order issued, normally against a prior solicitation."""

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    solicitation_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Legacy single reference; document_links is the source of truth
    solicitation_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("solicitations.id", ondelete="SET NULL"), nullable=True
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Unknown Product")
    nsn: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    ship_to_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ship_to_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    storage_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    packing_list_storage_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    extracted_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=OrderStatus.PENDING.value
    )  # pending | quality_sheet_created | labels_generated | verified | shipped | extraction_failed
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    external_message_id: Mapped[str | None] = mapped_column(String(500), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    quality_sheets: Mapped[list["QualitySheet"]] = relationship(
        "QualitySheet", back_populates="order", cascade="all, delete-orphan"
    )
    labels: Mapped[list["GeneratedLabel"]] = relationship(
        "GeneratedLabel", back_populates="order", cascade="all, delete-orphan"
    )


class DocumentLink(Base):
    """Order issued against a solicitation (many-to-many)."""

    __tablename__ = "document_links"
    __table_args__ = (
        UniqueConstraint("order_id", "solicitation_id", name="uq_document_links_order_solicitation"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    solicitation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("solicitations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class QualitySheet(Base):
    """Lot quality record produced during fulfillment."""

    __tablename__ = "quality_sheets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lot_number: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="quality_sheets")


class GeneratedLabel(Base):
    """Box or bottle label printed for an order."""

    __tablename__ = "generated_labels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label_type: Mapped[str] = mapped_column(String(20), nullable=False)  # box | bottle
    label_size: Mapped[str] = mapped_column(String(10), nullable=False)  # 4x6 | 3x4
    pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="labels")
