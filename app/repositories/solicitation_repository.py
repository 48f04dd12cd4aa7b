"""Repository for solicitations and their response quotes."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import ResponseQuote, Solicitation
from app.repositories.base_repository import BaseRepository


class SolicitationRepository(BaseRepository[Solicitation]):
    """Data access for solicitations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Solicitation)

    async def get_latest_by_number(self, solicitation_number: str) -> Optional[Solicitation]:
        """Most recently created solicitation carrying the given number."""
        try:
            query = (
                select(Solicitation)
                .where(Solicitation.solicitation_number == solicitation_number)
                .order_by(Solicitation.created_at.desc(), Solicitation.id.desc())
                .limit(1)
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving solicitation by number {solicitation_number}: {str(e)}",
                exc_info=True
            )
            raise

    async def get_many(self, ids: List[int]) -> List[Solicitation]:
        if not ids:
            return []
        result = await self.session.execute(
            select(Solicitation).where(Solicitation.id.in_(ids))
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[Solicitation]:
        """All solicitations, newest first."""
        result = await self.session.execute(
            select(Solicitation).order_by(Solicitation.created_at.desc(), Solicitation.id.desc())
        )
        return list(result.scalars().all())

    async def get_quote(self, solicitation_id: int) -> Optional[ResponseQuote]:
        """The response quote for a solicitation, if one was started."""
        result = await self.session.execute(
            select(ResponseQuote).where(ResponseQuote.solicitation_id == solicitation_id)
        )
        return result.scalar_one_or_none()

    async def get_quotes(self, solicitation_ids: List[int]) -> dict[int, ResponseQuote]:
        """Response quotes keyed by solicitation id."""
        if not solicitation_ids:
            return {}
        result = await self.session.execute(
            select(ResponseQuote).where(ResponseQuote.solicitation_id.in_(solicitation_ids))
        )
        return {quote.solicitation_id: quote for quote in result.scalars().all()}
