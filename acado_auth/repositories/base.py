"""
Base repository with generic lookups and the storage deadline guard.
"""
import asyncio
import functools
import logging
import uuid
from typing import TypeVar, Generic, Type, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from acado_auth.config import settings
from acado_auth.core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


def storage_call(func):
    """
    Run a repository coroutine under the repository's storage deadline.

    Timeouts and driver errors surface as StorageUnavailableError; the
    caller must treat the outcome as unknown.
    """
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.wait_for(func(self, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error(f"Storage deadline of {self.timeout}s exceeded in {func.__qualname__}")
            raise StorageUnavailableError() from exc
        except SQLAlchemyError as exc:
            logger.error(f"Storage error in {func.__qualname__}: {exc.__class__.__name__}")
            raise StorageUnavailableError() from exc
    return wrapper


class BaseRepository(Generic[ModelType]):
    """
    Generic repository.
    Inherit and specify the model class.
    """

    def __init__(
        self,
        model: Type[ModelType],
        session: AsyncSession,
        timeout: Optional[float] = None
    ):
        self.model = model
        self.session = session
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT_SECONDS

    @storage_call
    async def get(self, id: uuid.UUID) -> Optional[ModelType]:
        """Get a record by ID."""
        return await self.session.get(self.model, id)

    @storage_call
    async def commit(self) -> None:
        """Commit the unit of work staged on this session."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Discard staged changes after a failed unit of work."""
        try:
            await self.session.rollback()
        except SQLAlchemyError as exc:
            logger.warning(f"Rollback failed: {exc.__class__.__name__}")
