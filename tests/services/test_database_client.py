"""Tests for database connectivity and schema readiness checks."""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import DatabaseClient


@pytest.mark.asyncio
async def test_migrated_schema_is_healthy(db_engine) -> None:
    health = await DatabaseClient(db_engine).health_check()

    assert health["status"] == "healthy"
    assert health["dialect"] == "sqlite"
    assert health["missing_tables"] == []


@pytest.mark.asyncio
async def test_empty_database_is_unmigrated_until_tables_are_created() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    client = DatabaseClient(engine)
    try:
        health = await client.health_check()
        assert health["status"] == "unmigrated"
        assert "ingestion_checkpoints" in health["missing_tables"]

        await client.create_tables()

        assert await client.missing_tables() == []
    finally:
        await engine.dispose()
