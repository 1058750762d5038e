"""
Enrichment CRUD operations.

Dependencies: sqlalchemy, clinical_index.boundary.db.CRUD.base_crud
System role: Query layer for chunk_relationships and chunk_enrichments
"""

from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinical_index.boundary.db.CRUD.base_crud import BaseCRUD, batched
from clinical_index.boundary.db.models.enrichment_model import (
    ChunkEnrichmentModel,
    ChunkRelationshipModel,
)


class ChunkRelationshipCRUD(BaseCRUD[ChunkRelationshipModel]):
    """CRUD operations for ChunkRelationshipModel."""

    def __init__(self) -> None:
        super().__init__(ChunkRelationshipModel)

    async def get_by_sources(
        self, session: AsyncSession, chunk_ids: Sequence[str]
    ) -> list[ChunkRelationshipModel]:
        """Edges leaving any of ``chunk_ids``, in insertion order."""
        edges: list[ChunkRelationshipModel] = []
        for batch in batched(list(chunk_ids)):
            stmt = (
                select(self.model)
                .where(self.model.source_chunk_id.in_(batch))
                .order_by(self.model.id)
            )
            result = await session.execute(stmt)
            edges.extend(result.scalars().all())
        return edges

    async def delete_by_sources(self, session: AsyncSession, chunk_ids: Sequence[str]) -> int:
        deleted = 0
        for batch in batched(list(chunk_ids)):
            result = await session.execute(
                delete(self.model).where(self.model.source_chunk_id.in_(batch))
            )
            deleted += result.rowcount or 0
        return deleted


class ChunkEnrichmentCRUD(BaseCRUD[ChunkEnrichmentModel]):
    """CRUD operations for ChunkEnrichmentModel."""

    def __init__(self) -> None:
        super().__init__(ChunkEnrichmentModel)


chunk_relationship_crud = ChunkRelationshipCRUD()
chunk_enrichment_crud = ChunkEnrichmentCRUD()
