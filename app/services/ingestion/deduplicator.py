"""Advisory duplicate-delivery check for mailbox messages."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.order_repository import OrderRepository
from app.repositories.solicitation_repository import SolicitationRepository


class Deduplicator:
    """Probe whether a mail message already produced a document.

    The probe is only an early exit. Two deliveries of the same message can
    both pass it; the UNIQUE ``external_message_id`` column decides, and the
    losing insert is reported as already processed by ``create_unique``.
    """

    def __init__(self, session: AsyncSession):
        self.solicitations = SolicitationRepository(session)
        self.orders = OrderRepository(session)

    async def already_processed(self, external_id: str) -> bool:
        if not external_id:
            return False
        if await self.solicitations.exists_where("external_message_id", external_id):
            return True
        return await self.orders.exists_where("external_message_id", external_id)
