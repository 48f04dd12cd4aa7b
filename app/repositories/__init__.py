"""Repository layer modules."""

from app.repositories.checkpoint_repository import CheckpointRepository
from app.repositories.link_repository import LinkRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.solicitation_repository import SolicitationRepository
from app.repositories.workflow_repository import WorkflowGraph, WorkflowRepository

__all__ = [
    "CheckpointRepository",
    "LinkRepository",
    "OrderRepository",
    "SolicitationRepository",
    "WorkflowGraph",
    "WorkflowRepository",
]
