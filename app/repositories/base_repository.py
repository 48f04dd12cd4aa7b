from typing import Generic, TypeVar, Type, Optional, Any, Dict
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import DatabaseError
from app.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Shared persistence helpers for one model.

    Mutating calls commit before returning, so each one is its own unit of
    work. Webhook and poll producers rely on that: a document row is durable
    as soon as ``create_unique`` returns it.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    @property
    def dialect_name(self) -> str:
        return self.session.bind.dialect.name

    def _column(self, field: str):
        column = getattr(self.model, field, None)
        if column is None:
            raise DatabaseError(f"{self.model.__name__} has no column '{field}'")
        return column

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        try:
            return await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise

    async def exists_where(self, field: str, value: Any) -> bool:
        """Whether any row has ``field == value``."""
        column = self._column(field)
        result = await self.session.execute(select(column).where(column == value).limit(1))
        return result.first() is not None

    def dialect_insert(self):
        """INSERT construct with ON CONFLICT support for the bound dialect."""
        if self.dialect_name == "postgresql":
            return pg_insert(self.model)
        if self.dialect_name == "sqlite":
            return sqlite_insert(self.model)
        raise DatabaseError(f"ON CONFLICT inserts are not supported on {self.dialect_name}")

    async def create_unique(self, unique_field: str, **values) -> Optional[ModelType]:
        """Insert a row guarded by a UNIQUE column.

        Losing a race against another writer that stored the same value is
        not an error: the rollback is followed by a probe, and ``None`` is
        returned when the value is now taken. Other integrity failures, such
        as a missing foreign key, propagate.

        Args:
            unique_field: Name of the UNIQUE column guarding the insert
            **values: Column values for the new row

        Returns:
            The new row, or None if ``unique_field`` was already taken
        """
        instance = self.model(**values)
        self.session.add(instance)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            taken = values.get(unique_field)
            if taken is not None and await self.exists_where(unique_field, taken):
                self.logger.info(
                    f"{self.model.__name__} already stored, skipping",
                    extra={"field": unique_field, "value": taken},
                )
                return None
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}", exc_info=True)
            raise
        return instance

    async def update(self, id: Any, **values) -> Optional[ModelType]:
        """Set columns on an existing row and touch ``updated_at``.

        Returns:
            The updated row, or None if it does not exist
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return None

        for key, value in values.items():
            setattr(instance, self._column(key).key, value)
        if hasattr(instance, "updated_at"):
            instance.updated_at = datetime.now(timezone.utc)

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error updating {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise
        return instance

    async def delete(self, id: Any) -> bool:
        """Delete a row by id.

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id(id)
        if instance is None:
            return False

        try:
            await self.session.delete(instance)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error deleting {self.model.__name__} {id}: {str(e)}",
                exc_info=True
            )
            raise
        return True

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count rows whose columns equal the given values."""
        query = select(func.count()).select_from(self.model)
        for field, value in (filters or {}).items():
            query = query.where(self._column(field) == value)
        result = await self.session.execute(query)
        return result.scalar_one()
