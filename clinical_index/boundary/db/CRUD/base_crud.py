"""
Base CRUD operations for SQLAlchemy models.

Provides generic read, delete and count operations keyed on the
model's single-column primary key. Model-specific CRUD classes inherit
and extend these.

Dependencies: sqlalchemy
System role: Foundation for all database CRUD operations
"""

from typing import Any, Generic, Iterator, Sequence, TypeVar

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinical_index.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)

# Bound parameters per IN clause; SQLite's default limit is 999
IN_CLAUSE_BATCH = 500


def batched(items: Sequence[Any], size: int = IN_CLAUSE_BATCH) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BaseCRUD(Generic[ModelT]):
    """
    Generic base class for CRUD operations.

    Type Parameters:
        ModelT: SQLAlchemy model class inheriting from Base

    Attributes:
        model: The SQLAlchemy model class to operate on
        pk: Primary key column of ``model``
    """

    def __init__(self, model: type[ModelT]) -> None:
        """
        Initialize CRUD with target model.

        Args:
            model: SQLAlchemy model class for database operations
        """
        self.model = model
        self.pk = inspect(model).primary_key[0]

    async def get_by_ids(self, session: AsyncSession, ids: Sequence[Any]) -> list[ModelT]:
        """Retrieve all records whose primary key is in ``ids`` (any order)."""
        found: list[ModelT] = []
        for batch in batched(list(ids)):
            stmt = select(self.model).where(self.pk.in_(batch))
            result = await session.execute(stmt)
            found.extend(result.scalars().all())
        return found

    async def existing_ids(self, session: AsyncSession, ids: Sequence[Any]) -> set[Any]:
        """Subset of ``ids`` already present in the table."""
        present: set[Any] = set()
        for batch in batched(list(ids)):
            result = await session.execute(select(self.pk).where(self.pk.in_(batch)))
            present.update(result.scalars().all())
        return present

    async def delete_by_id(self, session: AsyncSession, id: Any) -> bool:
        """
        Delete a record by primary key.

        Returns:
            True if record was deleted, False if not found
        """
        result = await session.execute(delete(self.model).where(self.pk == id))
        return result.rowcount > 0

    async def delete_by_ids(self, session: AsyncSession, ids: Sequence[Any]) -> int:
        """Delete every record whose primary key is in ``ids``; returns rows deleted."""
        deleted = 0
        for batch in batched(list(ids)):
            result = await session.execute(delete(self.model).where(self.pk.in_(batch)))
            deleted += result.rowcount or 0
        return deleted

    async def count(self, session: AsyncSession) -> int:
        result = await session.execute(select(func.count()).select_from(self.model))
        return int(result.scalar_one())
