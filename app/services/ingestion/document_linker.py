"""Linking purchase orders to the solicitations they award."""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import PurchaseOrder, Solicitation
from app.repositories.link_repository import LinkRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.solicitation_repository import SolicitationRepository
from app.utils.logging import get_logger
from app.utils.reference_numbers import normalize_solicitation_number

LOGGER = get_logger(__name__)

# Keys under which extractors have stored the awarded solicitation number
_EXTRACTED_REFERENCE_KEYS = (
    "solicitation_number",
    "solicitationNumber",
    "rfq_number",
    "rfqNumber",
    "reference_number",
)


@dataclass
class LinkReport:
    """Outcome of the link repair for one order."""

    order_id: int
    order_number: Optional[str]
    solicitation_id: Optional[int]
    solicitation_number: Optional[str]
    match_type: str  # legacy | exact | extracted | none
    created: bool = False


class DocumentLinker:
    """Maintains the order <-> solicitation relation.

    The relation table is the source of truth. The legacy
    ``purchase_orders.solicitation_id`` column is only read, and turned into a
    link row on demand.
    """

    def __init__(self, session: AsyncSession):
        self.links = LinkRepository(session)
        self.orders = OrderRepository(session)
        self.solicitations = SolicitationRepository(session)

    async def link(self, order_id: int, solicitation_id: int) -> bool:
        """Idempotently link an order to a solicitation.

        Returns:
            True if a new link row was created
        """
        created = await self.links.insert_if_absent(order_id, solicitation_id)
        if created:
            LOGGER.info(
                "Linked order to solicitation",
                extra={"order_id": order_id, "solicitation_id": solicitation_id},
            )
        return created

    async def resolve_legacy_link(self, order: PurchaseOrder, dry_run: bool = False) -> bool:
        """Turn the legacy single reference of an order into a link row.

        A reference to a solicitation that no longer exists is permanently
        invalid; it is logged and skipped.

        Args:
            order: Order whose legacy reference should be reconciled
            dry_run: Only report whether a link would be created

        Returns:
            True if a link was (or, in dry-run mode, would be) created
        """
        if order.solicitation_id is None:
            return False

        target = await self.solicitations.get_by_id(order.solicitation_id)
        if target is None:
            LOGGER.warning(
                "Legacy reference points at a missing solicitation, skipping",
                extra={"order_id": order.id, "solicitation_id": order.solicitation_id},
            )
            return False

        if dry_run:
            return not await self.links.exists(order.id, target.id)
        return await self.link(order.id, target.id)

    async def find_match(self, order: PurchaseOrder) -> Optional[Solicitation]:
        """Most recent solicitation whose number equals the order's reference."""
        reference = normalize_solicitation_number(order.solicitation_number)
        if reference is None:
            return None
        return await self.solicitations.get_latest_by_number(reference)

    async def match_order(self, order: PurchaseOrder) -> Optional[Solicitation]:
        """Link an order to its solicitation by reference number.

        Returns:
            The matched solicitation, or None when nothing matched
        """
        match = await self.find_match(order)
        if match is None:
            return None
        await self.link(order.id, match.id)
        return match

    async def backfill_links(self, dry_run: bool = False) -> List[LinkReport]:
        """Repair the relation table for every order.

        Legacy references are reconciled first; orders still without any link
        are then matched by the reference number on the order or in its
        extracted data.

        Args:
            dry_run: Compute the report without writing links

        Returns:
            One report per order that carries a legacy reference or has no link
        """
        reports: List[LinkReport] = []
        handled: set[int] = set()

        for order in await self.orders.list_with_legacy_reference():
            created = await self.resolve_legacy_link(order, dry_run=dry_run)
            target = await self.solicitations.get_by_id(order.solicitation_id)
            reports.append(
                LinkReport(
                    order_id=order.id,
                    order_number=order.order_number,
                    solicitation_id=target.id if target else None,
                    solicitation_number=target.solicitation_number if target else None,
                    match_type="legacy" if target else "none",
                    created=created,
                )
            )
            if target is not None:
                handled.add(order.id)

        linked = await self.links.linked_order_ids()
        for order in await self.orders.list_all():
            if order.id in handled or order.id in linked:
                continue

            match_type = "exact"
            match = await self.find_match(order)
            if match is None:
                match_type = "extracted"
                match = await self._match_extracted_reference(order)

            if match is None:
                reports.append(
                    LinkReport(
                        order_id=order.id,
                        order_number=order.order_number,
                        solicitation_id=None,
                        solicitation_number=None,
                        match_type="none",
                    )
                )
                continue

            created = True if dry_run else await self.link(order.id, match.id)
            reports.append(
                LinkReport(
                    order_id=order.id,
                    order_number=order.order_number,
                    solicitation_id=match.id,
                    solicitation_number=match.solicitation_number,
                    match_type=match_type,
                    created=created,
                )
            )

        LOGGER.info(
            "Link backfill finished",
            extra={
                "dry_run": dry_run,
                "orders_examined": len(reports),
                "links_created": sum(1 for r in reports if r.created),
            },
        )
        return reports

    async def _match_extracted_reference(self, order: PurchaseOrder) -> Optional[Solicitation]:
        data = order.extracted_data or {}
        for key in _EXTRACTED_REFERENCE_KEYS:
            value = data.get(key)
            reference = normalize_solicitation_number(value) if isinstance(value, str) else None
            if reference is None:
                continue
            match = await self.solicitations.get_latest_by_number(reference)
            if match is not None:
                return match
        return None
