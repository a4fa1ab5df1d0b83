"""
Base repository.

Generic read and insert helpers shared by the referral repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic operations.

    Repositories never commit: transaction boundaries belong to the
    calling service.

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession):
                super().__init__(User, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get entity by primary key."""
        return await self.session.get(self.model, id)

    async def get_by(self, **filters: Any) -> ModelType | None:
        """
        Get single entity by column filters.

        Args:
            **filters: Column filters

        Returns:
            Matching entity or None
        """
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by(
        self,
        *criteria: ColumnElement[bool],
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find entities matching expressions and column filters.

        Args:
            *criteria: SQL expressions
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = select(self.model).where(*criteria).filter_by(**filters)

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Insert new entity and flush it.

        The flush surfaces unique-constraint violations as IntegrityError
        to the caller.

        Args:
            **data: Entity data

        Returns:
            Created entity with generated columns populated
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def count(
        self, *criteria: ColumnElement[bool], **filters: Any
    ) -> int:
        """Count entities matching expressions and column filters."""
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(*criteria)
            .filter_by(**filters)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(
        self, *criteria: ColumnElement[bool], **filters: Any
    ) -> bool:
        """Check if any entity matches."""
        stmt = (
            select(self.model.id)
            .where(*criteria)
            .filter_by(**filters)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None
