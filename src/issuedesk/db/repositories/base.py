"""Base repository pattern implementation for async SQLAlchemy.

Provides common session handling and CRUD operations that can be
shared across all repositories.
"""

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.db.models import Base

# Generic type variable for model classes
ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Base repository with common async session handling.

    Usage:
        class LabelRepository(BaseRepository[Label]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, Label)

            async def get_by_name(self, name: str) -> Label | None:
                return await self._get_by_field("name", name)
    """

    def __init__(
        self,
        session: AsyncSession,
        model_class: type[ModelT],
    ) -> None:
        """Initialize the repository with a session.

        Args:
            session: Async SQLAlchemy session (caller manages lifecycle)
            model_class: The SQLAlchemy model class this repository manages
        """
        self._session = session
        self._model_class = model_class

    @property
    def session(self) -> AsyncSession:
        """Access the underlying session."""
        return self._session

    # -------------------------------------------------------------------------
    # Common Read Operations
    # -------------------------------------------------------------------------

    async def get_by_id(self, id: str | int) -> ModelT | None:
        """Get an entity by its primary key.

        Args:
            id: Primary key

        Returns:
            Entity or None if not found
        """
        return await self._session.get(self._model_class, id)

    async def _get_by_field(self, field_name: str, value: object) -> ModelT | None:
        """Get an entity by a specific field value.

        Args:
            field_name: Name of the model field
            value: Value to match

        Returns:
            First matching entity or None
        """
        stmt = select(self._model_class).where(
            getattr(self._model_class, field_name) == value
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(self, limit: int | None = None) -> list[ModelT]:
        """Get all entities, optionally limited."""
        stmt = select(self._model_class)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Common Write Operations
    # -------------------------------------------------------------------------

    def add(self, entity: ModelT) -> ModelT:
        """Add an entity to the session (does not flush).

        Args:
            entity: Entity to add

        Returns:
            The same entity (for chaining)
        """
        self._session.add(entity)
        return entity

    async def flush(self) -> None:
        """Flush pending changes to the database."""
        await self._session.flush()

    async def refresh(self, entity: ModelT) -> ModelT:
        """Refresh an entity from the database."""
        await self._session.refresh(entity)
        return entity

    async def delete(self, entity: ModelT) -> None:
        """Mark an entity for deletion (happens on flush/commit)."""
        await self._session.delete(entity)

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    async def exists(self, id: str | int) -> bool:
        """Check if an entity with the given primary key exists."""
        entity = await self.get_by_id(id)
        return entity is not None

    async def count(self) -> int:
        """Count total entities of this type."""
        stmt = select(func.count()).select_from(self._model_class)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
