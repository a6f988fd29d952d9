"""Base Repository Pattern for the Lead CRM.

Provides generic CRUD operations with async SQLAlchemy support.
All specialized repositories inherit from BaseRepository.
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_crm.core.exceptions import RecordNotFoundError
from lead_crm.db.base import Base

# Type variable for model classes
ModelT = TypeVar("ModelT", bound=Base)


def as_uuid(value: UUID | str) -> UUID:
    """Coerce a string primary key to UUID."""
    return value if isinstance(value, UUID) else UUID(str(value))


class BaseRepository(Generic[ModelT]):
    """Generic base repository with async CRUD operations.

    Specialized repositories extend this with domain-specific queries
    and set `not_found_error` to the exception raised by get_or_raise.

    Usage:
        class TimeslotRepository(BaseRepository[TimeslotModel]):
            not_found_error = SlotNotFoundError

            def __init__(self, session: AsyncSession):
                super().__init__(TimeslotModel, session)
    """

    not_found_error: type[RecordNotFoundError] = RecordNotFoundError

    def __init__(self, model: type[ModelT], session: AsyncSession):
        """Initialize repository with model class and session.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current database session."""
        return self._session

    @property
    def model(self) -> type[ModelT]:
        """The mapped model class."""
        return self._model

    # ========================================================================
    # Basic CRUD Operations
    # ========================================================================

    async def get(self, id: UUID | str, *, for_update: bool = False) -> ModelT | None:
        """Get a single record by ID.

        Args:
            id: UUID or string primary key
            for_update: Take a row lock and reload the instance from the row

        Returns:
            Model instance or None if not found
        """
        stmt = select(self._model).where(self._model.id == as_uuid(id))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_raise(self, id: UUID | str, *, for_update: bool = False) -> ModelT:
        """Get a single record by ID, raising if not found.

        Raises:
            RecordNotFoundError: subclass configured on the repository
        """
        obj = await self.get(id, for_update=for_update)
        if obj is None:
            raise self.not_found_error(
                f"{self._model.__name__} with id {id} not found",
                details={"id": str(id)},
            )
        return obj

    async def create(self, obj_in: ModelT) -> ModelT:
        """Create a new record.

        Args:
            obj_in: Model instance to create

        Returns:
            Created model instance with generated ID
        """
        self._session.add(obj_in)
        await self._session.flush()
        await self._session.refresh(obj_in)
        return obj_in

    async def update(self, db_obj: ModelT, obj_in: dict[str, Any]) -> ModelT:
        """Apply field changes to a loaded record and flush.

        Args:
            db_obj: Instance to modify
            obj_in: Dictionary of fields to update

        Returns:
            The updated instance
        """
        for field, value in obj_in.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        await self._session.flush()
        return db_obj

    # ========================================================================
    # Query Helpers
    # ========================================================================

    async def count(self, **filters: Any) -> int:
        """Count records, optionally filtered by column equality."""
        stmt = select(func.count()).select_from(self._model)
        for field, value in filters.items():
            if hasattr(self._model, field):
                stmt = stmt.where(getattr(self._model, field) == value)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
