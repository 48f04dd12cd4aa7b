"""Repository for the order <-> solicitation relation."""

from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import DocumentLink
from app.repositories.base_repository import BaseRepository


class LinkRepository(BaseRepository[DocumentLink]):
    """Many-to-many links between purchase orders and solicitations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentLink)

    async def insert_if_absent(self, order_id: int, solicitation_id: int) -> bool:
        """Insert a link, doing nothing when the pair is already linked.

        Args:
            order_id: Purchase order id
            solicitation_id: Solicitation id

        Returns:
            True if a new row was written, False if the link already existed
        """
        stmt = (
            self.dialect_insert()
            .values(order_id=order_id, solicitation_id=solicitation_id)
            .on_conflict_do_nothing(index_elements=["order_id", "solicitation_id"])
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount == 1
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error linking order {order_id} to solicitation {solicitation_id}: {str(e)}",
                exc_info=True
            )
            raise

    async def exists(self, order_id: int, solicitation_id: int) -> bool:
        result = await self.session.execute(
            select(DocumentLink.id).where(
                DocumentLink.order_id == order_id,
                DocumentLink.solicitation_id == solicitation_id,
            )
        )
        return result.first() is not None

    async def solicitation_ids_for_order(self, order_id: int) -> List[int]:
        result = await self.session.execute(
            select(DocumentLink.solicitation_id).where(DocumentLink.order_id == order_id)
        )
        return list(result.scalars().all())

    async def order_ids_for_solicitation(self, solicitation_id: int) -> List[int]:
        result = await self.session.execute(
            select(DocumentLink.order_id).where(DocumentLink.solicitation_id == solicitation_id)
        )
        return list(result.scalars().all())

    async def linked_order_ids(self) -> set[int]:
        """Ids of every order that has at least one link row."""
        result = await self.session.execute(select(DocumentLink.order_id).distinct())
        return set(result.scalars().all())

    async def list_all(self) -> List[DocumentLink]:
        result = await self.session.execute(select(DocumentLink).order_by(DocumentLink.id))
        return list(result.scalars().all())
