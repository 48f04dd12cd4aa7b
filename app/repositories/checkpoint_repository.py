"""Repository for ingestion checkpoints."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import IngestionCheckpoint
from app.repositories.base_repository import BaseRepository
from app.services.ingestion.lookback_planner import CheckpointState

_STATE_FIELDS = (
    "last_successful_run",
    "last_attempted_run",
    "consecutive_failures",
    "last_processed_external_id",
    "last_processed_external_date",
    "last_error",
)


class CheckpointRepository(BaseRepository[IngestionCheckpoint]):
    """Durable key/value store of ingestion progress, keyed by source."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, IngestionCheckpoint)

    async def get_state(self, source: str) -> CheckpointState:
        """Load the checkpoint for a source, or an empty one if none exists yet."""
        row = await self.session.get(IngestionCheckpoint, source, populate_existing=True)
        if row is None:
            return CheckpointState()
        return CheckpointState(**{field: getattr(row, field) for field in _STATE_FIELDS})

    async def save_state(self, source: str, state: CheckpointState) -> None:
        """Upsert the checkpoint for a source (last writer wins).

        Args:
            source: Ingestion source key
            state: Complete checkpoint to store
        """
        values: dict[str, Any] = {field: getattr(state, field) for field in _STATE_FIELDS}
        values["updated_at"] = datetime.now(timezone.utc)

        stmt = self.dialect_insert().values(source=source, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[IngestionCheckpoint.source],
            set_=values,
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error saving ingestion checkpoint for {source}: {str(e)}",
                exc_info=True
            )
            raise
