"""Tests for workflow record assembly, listing and statistics."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import WorkflowSettings
from app.core.exceptions import ValidationError
from app.services.workflow.status_engine import WorkflowStatus
from app.services.workflow_service import WorkflowService

T1 = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 2, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session) -> WorkflowService:
    return WorkflowService(db_session, config=WorkflowSettings())


class TestGetWorkflow:
    @pytest.mark.asyncio
    async def test_latest_order_is_primary(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001", created_at=T1 - timedelta(days=5))
        await factory.quote(solicitation, status="submitted", submitted_at=T1 - timedelta(days=2))
        first = await factory.order("P-1", created_at=T1)
        second = await factory.order("P-2", created_at=T2)
        await factory.link(first, solicitation)
        await factory.link(second, solicitation)

        record = await service.get_workflow("SPE2DS-26-T-0001", now=now)

        assert record.order.id == second.id
        assert record.order_number == "P-2"
        assert [linked.id for linked in record.linked_orders] == [second.id, first.id]
        assert record.status == WorkflowStatus.PO_RECEIVED

    @pytest.mark.asyncio
    async def test_links_are_visible_from_both_sides(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        order = await factory.order("P-1")
        await factory.link(order, solicitation)

        from_solicitation = await service.get_workflow("SPE2DS-26-T-0001", now=now)
        from_order = await service.get_workflow("P-1", now=now)

        assert [o.id for o in from_solicitation.linked_orders] == [order.id]
        assert [s.id for s in from_order.linked_solicitations] == [solicitation.id]
        assert from_order.solicitation.id == solicitation.id

    @pytest.mark.asyncio
    async def test_legacy_reference_is_followed(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        order = await factory.order("P-1", solicitation_id=solicitation.id)

        record = await service.get_workflow("SPE2DS-26-T-0001", now=now)

        assert record.order.id == order.id

    @pytest.mark.asyncio
    async def test_lookup_by_numeric_id(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")

        record = await service.get_workflow(str(solicitation.id), now=now)

        assert record.solicitation.id == solicitation.id

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, service, now) -> None:
        assert await service.get_workflow("does-not-exist", now=now) is None
        assert await service.get_workflow("  ", now=now) is None

    @pytest.mark.asyncio
    async def test_fulfillment_records(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        await factory.quote(solicitation, status="submitted", submitted_at=T1)
        order = await factory.order("P-1", status="verified")
        await factory.link(order, solicitation)
        await factory.quality_sheet(order, verified_by="QA", verified_at=T2)
        await factory.label(order, "box", "4x6")
        await factory.label(order, "bottle", "3x4")

        record = await service.get_workflow("P-1", now=now)

        assert record.status == WorkflowStatus.VERIFIED
        assert record.quality_sheet.verified_by == "QA"
        assert record.verified_at == T2
        assert len(record.labels) == 2

    @pytest.mark.asyncio
    async def test_legacy_no_bid_marker(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        await factory.quote(solicitation, status="completed", response_data={"noBidReason": "Out of scope"})

        record = await service.get_workflow("SPE2DS-26-T-0001", now=now)

        assert record.status == WorkflowStatus.NO_BID


class TestListWorkflows:
    @pytest.mark.asyncio
    async def test_orphan_orders_root_their_own_record(self, service, factory, now) -> None:
        solicitation = await factory.solicitation("SPE2DS-26-T-0001")
        linked = await factory.order("P-1")
        await factory.link(linked, solicitation)
        orphan = await factory.order("P-2")

        records = await service.list_workflows(now=now)

        assert len(records) == 2
        orphan_records = [r for r in records if r.solicitation is None]
        assert [r.order.id for r in orphan_records] == [orphan.id]

    @pytest.mark.asyncio
    async def test_sorted_by_latest_activity(self, service, factory, now) -> None:
        quiet = await factory.solicitation("RFQ-0001", created_at=T1)
        busy = await factory.solicitation("RFQ-0002", created_at=T1 - timedelta(days=10))
        await factory.quote(busy, status="submitted", submitted_at=T2)

        records = await service.list_workflows(now=now)

        assert [r.solicitation.id for r in records] == [busy.id, quiet.id]

    @pytest.mark.asyncio
    async def test_filter_then_paginate(self, service, factory, now) -> None:
        for index in range(3):
            await factory.solicitation(f"RFQ-000{index}", due_date=now - timedelta(days=1),
                                       created_at=T1 + timedelta(hours=index))
        await factory.solicitation("RFQ-0100", due_date=now + timedelta(days=5), created_at=T2)

        expired = await service.list_workflows(status=WorkflowStatus.EXPIRED, limit=2, offset=1, now=now)

        assert [r.solicitation_number for r in expired] == ["RFQ-0001", "RFQ-0000"]

    @pytest.mark.asyncio
    async def test_negative_offset_rejected(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.list_workflows(offset=-1)


class TestWorkflowStats:
    @pytest.mark.asyncio
    async def test_counts_are_zero_filled(self, service, factory, now) -> None:
        await factory.solicitation("RFQ-0001", due_date=now - timedelta(days=1))
        await factory.solicitation("RFQ-0002", due_date=now + timedelta(days=1))
        await factory.order("P-9", status="shipped")

        stats = await service.get_workflow_stats(now=now)

        assert stats.total == 3
        assert stats.by_status[WorkflowStatus.EXPIRED] == 1
        assert stats.by_status[WorkflowStatus.RFQ_RECEIVED] == 1
        assert stats.by_status[WorkflowStatus.SHIPPED] == 1
        assert stats.by_status[WorkflowStatus.LOST] == 0
        assert set(stats.by_status) == set(WorkflowStatus)

    @pytest.mark.asyncio
    async def test_counts_cover_every_deal_beyond_one_page(self, db_session, factory, now) -> None:
        config = WorkflowSettings()
        config.default_page_size = 2
        service = WorkflowService(db_session, config=config)
        for index in range(5):
            await factory.solicitation(f"RFQ-100{index}", due_date=now + timedelta(days=3))

        stats = await service.get_workflow_stats(now=now)

        assert len(await service.list_workflows(now=now)) == 2
        assert stats.total == 5
        assert stats.by_status[WorkflowStatus.RFQ_RECEIVED] == 5
