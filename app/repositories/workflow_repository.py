"""Traversal of the solicitation <-> order link graph."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import (
    GeneratedLabel,
    PurchaseOrder,
    QualitySheet,
    ResponseQuote,
    Solicitation,
)
from app.repositories.link_repository import LinkRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.solicitation_repository import SolicitationRepository


@dataclass
class WorkflowGraph:
    """Documents that make up one deal, primary pair first."""

    solicitation: Optional[Solicitation] = None
    quote: Optional[ResponseQuote] = None
    order: Optional[PurchaseOrder] = None
    quality_sheet: Optional[QualitySheet] = None
    labels: List[GeneratedLabel] = field(default_factory=list)
    linked_orders: List[PurchaseOrder] = field(default_factory=list)
    linked_solicitations: List[Solicitation] = field(default_factory=list)


def most_recent_first(documents: Iterable) -> list:
    """De-duplicate by id and order by (created_at, id) descending."""
    unique = {doc.id: doc for doc in documents}
    return sorted(unique.values(), key=lambda doc: (doc.created_at, doc.id), reverse=True)


class WorkflowRepository:
    """Read-only graph traversal over solicitations, orders and their links.

    Relation rows and legacy order references are both followed; the legacy
    column is never written from here.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.solicitations = SolicitationRepository(session)
        self.orders = OrderRepository(session)
        self.links = LinkRepository(session)

    async def find_root(self, identifier: str) -> tuple[Optional[Solicitation], Optional[PurchaseOrder]]:
        """Resolve an identifier to a starting document.

        Tried in order: solicitation number, order number, numeric solicitation id.
        """
        solicitation = await self.solicitations.get_latest_by_number(identifier)
        if solicitation is not None:
            return solicitation, None

        order = await self.orders.get_latest_by_order_number(identifier)
        if order is not None:
            return None, order

        if identifier.isdigit():
            solicitation = await self.solicitations.get_by_id(int(identifier))
            if solicitation is not None:
                return solicitation, None

        return None, None

    async def orders_for_solicitation(self, solicitation: Solicitation) -> List[PurchaseOrder]:
        """Orders linked to a solicitation through relation rows or the legacy column."""
        order_ids = await self.links.order_ids_for_solicitation(solicitation.id)
        linked = await self.orders.get_many(order_ids)
        legacy = await self.orders.list_by_legacy_solicitation(solicitation.id)
        return most_recent_first([*linked, *legacy])

    async def solicitations_for_order(self, order: PurchaseOrder) -> List[Solicitation]:
        """Solicitations an order is linked to, legacy reference included."""
        solicitation_ids = await self.links.solicitation_ids_for_order(order.id)
        if order.solicitation_id is not None:
            solicitation_ids.append(order.solicitation_id)
        return most_recent_first(await self.solicitations.get_many(solicitation_ids))

    async def load_graph(
        self,
        solicitation: Optional[Solicitation],
        order: Optional[PurchaseOrder],
    ) -> WorkflowGraph:
        """Expand a starting document into the full deal.

        Args:
            solicitation: Starting solicitation, becomes primary when given
            order: Starting order, becomes primary when given

        Returns:
            WorkflowGraph with the primary pair and both link directions
        """
        graph = WorkflowGraph(solicitation=solicitation, order=order)

        if solicitation is not None:
            graph.linked_orders = await self.orders_for_solicitation(solicitation)
            if graph.order is None and graph.linked_orders:
                graph.order = graph.linked_orders[0]

        if graph.order is not None:
            graph.linked_solicitations = await self.solicitations_for_order(graph.order)
            if graph.solicitation is None and graph.linked_solicitations:
                graph.solicitation = graph.linked_solicitations[0]
                graph.linked_orders = await self.orders_for_solicitation(graph.solicitation)

        if graph.solicitation is not None:
            graph.quote = await self.solicitations.get_quote(graph.solicitation.id)

        if graph.order is not None:
            graph.quality_sheet = await self.orders.get_latest_quality_sheet(graph.order.id)
            graph.labels = await self.orders.get_labels(graph.order.id)

        return graph

    async def list_roots(self) -> tuple[List[Solicitation], List[PurchaseOrder]]:
        """Every solicitation, plus orders with no relation row and no legacy reference."""
        solicitations = await self.solicitations.list_all()
        linked = await self.links.linked_order_ids()
        orphans = [
            order
            for order in await self.orders.list_all()
            if order.id not in linked and order.solicitation_id is None
        ]
        return solicitations, orphans
