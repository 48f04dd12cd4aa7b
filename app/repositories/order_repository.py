"""Repository for purchase orders and their fulfillment records."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import GeneratedLabel, PurchaseOrder, QualitySheet
from app.repositories.base_repository import BaseRepository


class OrderRepository(BaseRepository[PurchaseOrder]):
    """Data access for purchase orders."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PurchaseOrder)

    async def get_latest_by_order_number(self, order_number: str) -> Optional[PurchaseOrder]:
        """Most recently created order with the given order number."""
        try:
            query = (
                select(PurchaseOrder)
                .where(PurchaseOrder.order_number == order_number)
                .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
                .limit(1)
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving order by number {order_number}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_many(self, ids: List[int]) -> List[PurchaseOrder]:
        if not ids:
            return []
        result = await self.session.execute(
            select(PurchaseOrder).where(PurchaseOrder.id.in_(ids))
        )
        return list(result.scalars().all())

    async def list_by_legacy_solicitation(self, solicitation_id: int) -> List[PurchaseOrder]:
        """Orders pointing at a solicitation through the legacy column."""
        result = await self.session.execute(
            select(PurchaseOrder).where(PurchaseOrder.solicitation_id == solicitation_id)
        )
        return list(result.scalars().all())

    async def list_with_legacy_reference(self) -> List[PurchaseOrder]:
        result = await self.session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.solicitation_id.is_not(None))
            .order_by(PurchaseOrder.id)
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[PurchaseOrder]:
        result = await self.session.execute(
            select(PurchaseOrder).order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        )
        return list(result.scalars().all())

    async def get_latest_quality_sheet(self, order_id: int) -> Optional[QualitySheet]:
        result = await self.session.execute(
            select(QualitySheet)
            .where(QualitySheet.order_id == order_id)
            .order_by(QualitySheet.created_at.desc(), QualitySheet.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_labels(self, order_id: int) -> List[GeneratedLabel]:
        result = await self.session.execute(
            select(GeneratedLabel)
            .where(GeneratedLabel.order_id == order_id)
            .order_by(GeneratedLabel.created_at, GeneratedLabel.id)
        )
        return list(result.scalars().all())
