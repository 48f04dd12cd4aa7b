import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for application services.

    Provides a standardized execution flow with validation and error handling.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        """Initialize the service.

        Args:
            session: Database session shared by the service's repositories
        """
        self.session = session
        self.logger = LOGGER

    @property
    def service_name(self) -> str:
        return self.__class__.__name__

    async def execute(self, *args, **kwargs) -> Any:
        """Execute the service logic.

        This template method handles:
        1. Input validation
        2. Core logic execution
        3. Wrapping unexpected failures in AppError

        Raises:
            AppError: If execution fails
        """
        start = time.perf_counter()
        try:
            self.validate(*args, **kwargs)
            result = await self.run(*args, **kwargs)
        except AppError:
            raise
        except Exception as e:
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.service_name}
            )
            raise AppError(f"{self.service_name} failed: {str(e)}", original_error=e)

        self.logger.debug(
            f"{self.service_name} finished",
            extra={"service": self.service_name, "duration_ms": round((time.perf_counter() - start) * 1000, 1)},
        )
        return result

    def validate(self, *args, **kwargs):
        """Validate service input.

        Override this method to implement custom validation logic.

        Raises:
            ValidationError: If input is invalid
        """

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Run the core service logic."""
