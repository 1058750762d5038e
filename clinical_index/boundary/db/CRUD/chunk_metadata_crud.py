"""
Chunk metadata CRUD operations.

Adds idempotent batch insert and AND-composed, date-ordered filtering on
top of the generic BaseCRUD.

Dependencies: sqlalchemy, clinical_index.boundary.db.CRUD.base_crud
System role: Query layer for the chunk_metadata table
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinical_index.boundary.db.CRUD.base_crud import BaseCRUD
from clinical_index.boundary.db.models.chunk_metadata_model import ChunkMetadataModel
from clinical_index.models.chunk import Chunk, MetadataFilter


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class ChunkMetadataCRUD(BaseCRUD[ChunkMetadataModel]):
    """CRUD operations for ChunkMetadataModel."""

    def __init__(self) -> None:
        super().__init__(ChunkMetadataModel)

    async def insert_new(self, session: AsyncSession, chunks: Sequence[Chunk]) -> int:
        """
        Insert chunks whose id is not already stored.

        Ids repeated within ``chunks`` keep their first occurrence.

        Returns:
            int: Rows actually inserted
        """
        unique: dict[str, Chunk] = {}
        for chunk in chunks:
            unique.setdefault(chunk.chunk_id, chunk)
        if not unique:
            return 0

        present = await self.existing_ids(session, list(unique.keys()))
        rows = [
            ChunkMetadataModel.from_chunk(chunk)
            for chunk_id, chunk in unique.items()
            if chunk_id not in present
        ]
        session.add_all(rows)
        await session.flush()
        return len(rows)

    async def filter_ids(self, session: AsyncSession, criteria: MetadataFilter) -> list[str]:
        """
        Chunk ids matching every criterion, newest first.

        Ties on occurred_at are ordered by chunk_id ascending.
        """
        model = self.model
        stmt = select(model.chunk_id)

        if criteria.patient_id:
            stmt = stmt.where(model.patient_id == criteria.patient_id)
        if criteria.artifact_id:
            stmt = stmt.where(model.artifact_id == criteria.artifact_id)
        if criteria.artifact_types:
            stmt = stmt.where(model.artifact_type.in_(criteria.artifact_types))
        if criteria.day:
            start = _day_start(criteria.day)
            stmt = stmt.where(model.occurred_at >= start, model.occurred_at < start + timedelta(days=1))
        if criteria.date_from:
            stmt = stmt.where(model.occurred_at >= _day_start(criteria.date_from))
        if criteria.date_to:
            stmt = stmt.where(model.occurred_at < _day_start(criteria.date_to) + timedelta(days=1))

        stmt = stmt.order_by(model.occurred_at.desc(), model.chunk_id.asc()).offset(criteria.offset)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)

        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_ordered(self, session: AsyncSession) -> list[ChunkMetadataModel]:
        """Every row, newest first."""
        stmt = select(self.model).order_by(
            self.model.occurred_at.desc(), self.model.chunk_id.asc()
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())


chunk_metadata_crud = ChunkMetadataCRUD()
