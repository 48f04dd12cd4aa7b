"""Tests for duplicate-delivery detection and the unique-create guard."""

import pytest
from sqlalchemy.exc import IntegrityError

from app.repositories.solicitation_repository import SolicitationRepository
from app.services.ingestion.deduplicator import Deduplicator


class TestDeduplicator:
    @pytest.mark.asyncio
    async def test_unknown_message(self, db_session) -> None:
        assert await Deduplicator(db_session).already_processed("AAMk-unknown") is False

    @pytest.mark.asyncio
    async def test_empty_id_is_never_processed(self, db_session) -> None:
        assert await Deduplicator(db_session).already_processed("") is False

    @pytest.mark.asyncio
    async def test_seen_on_solicitation(self, db_session, factory) -> None:
        await factory.solicitation(external_message_id="AAMk-1")

        assert await Deduplicator(db_session).already_processed("AAMk-1") is True

    @pytest.mark.asyncio
    async def test_seen_on_order(self, db_session, factory) -> None:
        await factory.order(external_message_id="AAMk-2")

        assert await Deduplicator(db_session).already_processed("AAMk-2") is True


class TestCreateUnique:
    @pytest.mark.asyncio
    async def test_second_create_with_same_message_id_is_a_no_op(self, db_session) -> None:
        repository = SolicitationRepository(db_session)

        first = await repository.create_unique(
            "external_message_id", external_message_id="AAMk-3", file_name="rfq.pdf", status="processing"
        )
        second = await repository.create_unique(
            "external_message_id", external_message_id="AAMk-3", file_name="rfq.pdf", status="processing"
        )

        assert first is not None
        assert second is None
        assert await repository.count() == 1

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, db_session) -> None:
        repository = SolicitationRepository(db_session)

        with pytest.raises(IntegrityError):
            # file_name is NOT NULL
            await repository.create_unique("external_message_id", external_message_id="AAMk-4", file_name=None)

        assert await repository.count() == 0
