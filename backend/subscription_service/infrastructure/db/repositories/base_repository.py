"""
Base Repository for the Subscription Service

Generic async repository with the read operations every table needs.
Concrete repositories map rows to domain models and add their own writes.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, List, Optional, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variable for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)


class IReadRepository(ABC, Generic[ModelType]):
    """Interface for read operations."""

    @abstractmethod
    async def get_model(self, id: UUID) -> Optional[ModelType]:
        """Get a single row by ID."""
        pass


class BaseRepository(IReadRepository[ModelType], Generic[ModelType]):
    """
    Generic async repository.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_model(self, id: UUID) -> Optional[ModelType]:
        """
        Get a single row by its primary key.

        Args:
            id: UUID primary key

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def _insert(self, db_obj: ModelType) -> ModelType:
        """Add a row and flush so database defaults and constraints apply."""
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def _list(self, stmt) -> List[ModelType]:
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
