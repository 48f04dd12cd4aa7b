"""Async SQLAlchemy engine, session factory and database client.

This module centralizes the async session dependency in the core layer so it
can be shared by the API layer and the Temporal activities.
"""

import time
from collections.abc import AsyncGenerator
from typing import Any, Dict, List

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pool options suited to the dialect.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements

    Returns:
        AsyncEngine: Configured engine (not yet connected)
    """
    engine_kwargs: Dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.max_overflow,
            # Disable prepared statement cache for PgBouncer compatibility
            connect_args={"statement_cache_size": 0},
        )
    return create_async_engine(url, **engine_kwargs)


engine = build_engine(settings.database_url, echo=settings.db.echo)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting async database session.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


class DatabaseClient:
    """Connection checks and schema bootstrap for one engine."""

    # Tables the service cannot run without
    REQUIRED_TABLES = ("ingestion_checkpoints", "solicitations", "purchase_orders", "document_links")

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def connect(self) -> None:
        """Open one connection to fail fast on bad credentials."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            LOGGER.error("Database connection failed", exc_info=True)
            raise
        LOGGER.info("Database connection successful", extra={"dialect": self.engine.dialect.name})

    async def disconnect(self) -> None:
        await self.engine.dispose()
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> None:
        """Create missing tables; existing ones are left untouched."""
        # Registers every model on Base.metadata
        from app.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            LOGGER.error("Failed to create database tables", exc_info=True, extra={"error": str(e)})
            raise
        LOGGER.info("Database tables created/verified")

    async def missing_tables(self) -> List[str]:
        async with self.engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        return [name for name in self.REQUIRED_TABLES if name not in existing]

    async def health_check(self) -> Dict[str, Any]:
        """Round-trip latency and schema readiness.

        Status is ``healthy`` when the database answers and every required
        table exists, ``unmigrated`` when tables are missing and ``unhealthy``
        when the database cannot be reached.
        """
        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.scalar(text("SELECT 1"))
            latency_ms = round((time.perf_counter() - started) * 1000, 1)
            missing = await self.missing_tables()
        except Exception as e:
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "error": str(e)}

        if missing:
            LOGGER.warning("Database schema incomplete", extra={"missing_tables": missing})
        return {
            "status": "unmigrated" if missing else "healthy",
            "dialect": self.engine.dialect.name,
            "latency_ms": latency_ms,
            "missing_tables": missing,
        }


db_client = DatabaseClient(engine)


async def init_database(create_tables: bool = True) -> None:
    """Verify connectivity and, outside production, create missing tables.

    Args:
        create_tables: Whether to create missing tables on startup
    """
    await db_client.connect()
    if create_tables:
        await db_client.create_tables()
        return

    missing = await db_client.missing_tables()
    if missing:
        LOGGER.error(
            "Database schema is missing tables; run `alembic upgrade head`",
            extra={"missing_tables": missing},
        )


async def close_database() -> None:
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
