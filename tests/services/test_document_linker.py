"""Tests for order <-> solicitation linking and the link backfill."""

import pytest

from app.repositories.link_repository import LinkRepository
from app.services.ingestion.document_linker import DocumentLinker


class TestLink:
    @pytest.mark.asyncio
    async def test_link_is_idempotent(self, db_session, factory) -> None:
        solicitation = await factory.solicitation()
        order = await factory.order()
        linker = DocumentLinker(db_session)

        assert await linker.link(order.id, solicitation.id) is True
        assert await linker.link(order.id, solicitation.id) is False
        assert len(await LinkRepository(db_session).list_all()) == 1

    @pytest.mark.asyncio
    async def test_match_order_by_normalized_number(self, db_session, factory) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        order = await factory.order(solicitation_number="spe2ds-26-t-0001")

        match = await DocumentLinker(db_session).match_order(order)

        assert match.id == solicitation.id
        assert await LinkRepository(db_session).exists(order.id, solicitation.id)

    @pytest.mark.asyncio
    async def test_match_picks_most_recent_solicitation(self, db_session, factory) -> None:
        older = await factory.solicitation("821409953")
        newer = await factory.solicitation("821409953", created_at=older.created_at.replace(month=2))
        order = await factory.order(solicitation_number="821409953")

        match = await DocumentLinker(db_session).match_order(order)

        assert match.id == newer.id

    @pytest.mark.asyncio
    async def test_no_match(self, db_session, factory) -> None:
        order = await factory.order(solicitation_number="N/A")

        assert await DocumentLinker(db_session).match_order(order) is None


class TestResolveLegacyLink:
    @pytest.mark.asyncio
    async def test_creates_link_once(self, db_session, factory) -> None:
        solicitation = await factory.solicitation()
        order = await factory.order(solicitation_id=solicitation.id)
        linker = DocumentLinker(db_session)

        assert await linker.resolve_legacy_link(order) is True
        assert await linker.resolve_legacy_link(order) is False

    @pytest.mark.asyncio
    async def test_missing_target_is_skipped(self, db_session, factory) -> None:
        order = await factory.order(solicitation_id=9999)

        assert await DocumentLinker(db_session).resolve_legacy_link(order) is False
        assert await LinkRepository(db_session).list_all() == []

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, db_session, factory) -> None:
        solicitation = await factory.solicitation()
        order = await factory.order(solicitation_id=solicitation.id)

        assert await DocumentLinker(db_session).resolve_legacy_link(order, dry_run=True) is True
        assert await LinkRepository(db_session).list_all() == []


class TestBackfillLinks:
    @pytest.mark.asyncio
    async def test_backfill_reports_every_strategy(self, db_session, factory) -> None:
        legacy_target = await factory.solicitation("SPE2DS-26-T-0001")
        exact_target = await factory.solicitation("SPE2DS-26-T-0002")
        extracted_target = await factory.solicitation("SPE2DS-26-T-0003")

        legacy = await factory.order("P-1", solicitation_id=legacy_target.id)
        exact = await factory.order("P-2", solicitation_number="SPE2DS-26-T-0002")
        extracted = await factory.order("P-3", extracted_data={"rfqNumber": "spe2ds-26-t-0003"})
        unmatched = await factory.order("P-4")
        already_linked = await factory.order("P-5")
        await factory.link(already_linked, exact_target)

        reports = await DocumentLinker(db_session).backfill_links()
        by_order = {report.order_id: report for report in reports}

        assert by_order[legacy.id].match_type == "legacy"
        assert by_order[legacy.id].created is True
        assert by_order[exact.id].match_type == "exact"
        assert by_order[exact.id].solicitation_id == exact_target.id
        assert by_order[extracted.id].match_type == "extracted"
        assert by_order[extracted.id].solicitation_id == extracted_target.id
        assert by_order[unmatched.id].match_type == "none"
        assert by_order[unmatched.id].created is False
        assert already_linked.id not in by_order

        links = {(link.order_id, link.solicitation_id) for link in await LinkRepository(db_session).list_all()}
        assert (legacy.id, legacy_target.id) in links
        assert (exact.id, exact_target.id) in links
        assert (extracted.id, extracted_target.id) in links

    @pytest.mark.asyncio
    async def test_backfill_is_idempotent(self, db_session, factory) -> None:
        await factory.solicitation("SPE2DS-26-T-0002")
        await factory.order("P-2", solicitation_number="SPE2DS-26-T-0002")
        linker = DocumentLinker(db_session)

        await linker.backfill_links()
        second = await linker.backfill_links()

        assert second == []
        assert len(await LinkRepository(db_session).list_all()) == 1

    @pytest.mark.asyncio
    async def test_dry_run(self, db_session, factory) -> None:
        await factory.solicitation("SPE2DS-26-T-0002")
        await factory.order("P-2", solicitation_number="SPE2DS-26-T-0002")

        reports = await DocumentLinker(db_session).backfill_links(dry_run=True)

        assert [report.created for report in reports] == [True]
        assert await LinkRepository(db_session).list_all() == []
