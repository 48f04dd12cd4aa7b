"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at an in-memory database first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["RFQ_SENDER_EMAIL"] = "noreply@contracting.example.gov"
os.environ["INGESTION_WEBHOOK_CLIENT_STATE"] = "test-client-state"
os.environ["INGESTION_POLL_API_KEY"] = ""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.database import models  # noqa: F401
from app.main import app


@pytest.fixture
def now() -> datetime:
    """Fixed reference time used by time-dependent tests."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the full schema.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Database session bound to the in-memory engine."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def sample_pdf_content() -> bytes:
    """Minimal valid PDF header."""
    return b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<\n/Type /Catalog\n/Pages 2 0 R\n>>\nendobj\n"


class RecordFactory:
    """Inserts solicitations, orders and their satellites for tests."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._created = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def _add(self, instance):
        self.session.add(instance)
        await self.session.commit()
        return instance

    async def solicitation(self, number="SPE2DS-26-T-0001", **kwargs) -> models.Solicitation:
        kwargs.setdefault("file_name", f"{number or 'rfq'}.pdf")
        kwargs.setdefault("status", models.SolicitationStatus.PROCESSED.value)
        if "created_at" not in kwargs:
            kwargs["created_at"] = self._created
        return await self._add(models.Solicitation(solicitation_number=number, **kwargs))

    async def quote(self, solicitation, status="draft", **kwargs) -> models.ResponseQuote:
        return await self._add(
            models.ResponseQuote(solicitation_id=solicitation.id, status=status, **kwargs)
        )

    async def order(self, order_number="SPE2DS-26-P-1001", **kwargs) -> models.PurchaseOrder:
        kwargs.setdefault("product_name", "Nitrile Gloves")
        kwargs.setdefault("quantity", 10)
        kwargs.setdefault("status", models.OrderStatus.PENDING.value)
        if "created_at" not in kwargs:
            kwargs["created_at"] = self._created
        return await self._add(models.PurchaseOrder(order_number=order_number, **kwargs))

    async def link(self, order, solicitation) -> models.DocumentLink:
        return await self._add(models.DocumentLink(order_id=order.id, solicitation_id=solicitation.id))

    async def quality_sheet(self, order, **kwargs) -> models.QualitySheet:
        kwargs.setdefault("lot_number", "LOT-1")
        kwargs.setdefault("quantity", order.quantity)
        return await self._add(models.QualitySheet(order_id=order.id, **kwargs))

    async def label(self, order, label_type="box", label_size="4x6") -> models.GeneratedLabel:
        return await self._add(
            models.GeneratedLabel(order_id=order.id, label_type=label_type, label_size=label_size)
        )


@pytest_asyncio.fixture
async def factory(db_session) -> RecordFactory:
    return RecordFactory(db_session)
