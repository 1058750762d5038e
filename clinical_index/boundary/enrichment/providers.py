"""
Relationship and enrichment providers.

Multi-hop retrieval reads chunk relationships and enrichment data through
the ``EnrichmentProvider`` protocol. Two implementations are provided: an
in-memory map (tests, small deployments) and a SQL-backed provider reading
the chunk_relationships and chunk_enrichments tables.

Dependencies: sqlalchemy, clinical_index.boundary.db
System role: Enrichment boundary for the multi-hop retriever
"""

import logging
from typing import Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinical_index.boundary.db.CRUD.enrichment_crud import (
    chunk_enrichment_crud,
    chunk_relationship_crud,
)
from clinical_index.boundary.db.models.enrichment_model import (
    ChunkEnrichmentModel,
    ChunkRelationshipModel,
)
from clinical_index.core.exceptions import StoreWriteError
from clinical_index.models.enrichment import ChunkEnrichment, RelationshipEdge

logger = logging.getLogger(__name__)

TEXT_WEIGHT = 0.4
ENTITY_WEIGHT = 0.3
PER_RELATIONSHIP_WEIGHT = 0.05
MAX_RELATIONSHIP_WEIGHT = 0.3


def compute_enrichment_score(
    enriched_text: str | None,
    entity_count: int,
    relationship_count: int,
) -> float:
    """
    Score how much enrichment a chunk carries, in 0.0-1.0.

    Rewritten text contributes 0.4, any entities 0.3, and each relationship
    0.05 up to 0.3.
    """
    score = 0.0
    if enriched_text and enriched_text.strip():
        score += TEXT_WEIGHT
    if entity_count > 0:
        score += ENTITY_WEIGHT
    score += min(MAX_RELATIONSHIP_WEIGHT, PER_RELATIONSHIP_WEIGHT * relationship_count)
    return round(min(score, 1.0), 6)


class EnrichmentProvider(Protocol):
    """Source of relationships and enrichment data for chunks."""

    async def get_enrichment(self, chunk_ids: Sequence[str]) -> dict[str, ChunkEnrichment]:
        """Enrichment for each known id; ids without data are absent from the result."""
        ...


class InMemoryEnrichmentProvider:
    """Dictionary-backed provider."""

    def __init__(self, enrichments: Sequence[ChunkEnrichment] = ()) -> None:
        self._data: dict[str, ChunkEnrichment] = {}
        for enrichment in enrichments:
            self.put(enrichment)

    def put(self, enrichment: ChunkEnrichment) -> None:
        self._data[enrichment.chunk_id] = enrichment

    def add_relationship(
        self,
        source_chunk_id: str,
        related_chunk_id: str,
        relation_type: str = "related",
        weight: float = 1.0,
    ) -> None:
        """Append an edge, creating an empty enrichment record when needed."""
        current = self._data.get(source_chunk_id) or ChunkEnrichment(chunk_id=source_chunk_id)
        edge = RelationshipEdge(
            related_chunk_id=related_chunk_id, relation_type=relation_type, weight=weight
        )
        self._data[source_chunk_id] = current.model_copy(
            update={"relationships": [*current.relationships, edge]}
        )

    def remove(self, chunk_ids: Sequence[str]) -> None:
        for chunk_id in chunk_ids:
            self._data.pop(chunk_id, None)

    async def get_enrichment(self, chunk_ids: Sequence[str]) -> dict[str, ChunkEnrichment]:
        return {cid: self._data[cid] for cid in chunk_ids if cid in self._data}


class SQLEnrichmentProvider:
    """Provider reading enrichment tables through async SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_enrichment(self, chunk_ids: Sequence[str]) -> dict[str, ChunkEnrichment]:
        if not chunk_ids:
            return {}
        ids = list(dict.fromkeys(chunk_ids))
        async with self._session_factory() as session:
            rows = await chunk_enrichment_crud.get_by_ids(session, ids)
            edges = await chunk_relationship_crud.get_by_sources(session, ids)

        relationships: dict[str, list[RelationshipEdge]] = {}
        for edge in edges:
            relationships.setdefault(edge.source_chunk_id, []).append(
                RelationshipEdge(
                    related_chunk_id=edge.related_chunk_id,
                    relation_type=edge.relation_type,
                    weight=edge.weight,
                )
            )

        result: dict[str, ChunkEnrichment] = {}
        for row in rows:
            result[row.chunk_id] = ChunkEnrichment(
                chunk_id=row.chunk_id,
                relationships=relationships.pop(row.chunk_id, []),
                enrichment_score=row.enrichment_score,
                enriched_text=row.enriched_text,
                entities=list(row.entities or []),
                related_artifact_ids=list(row.related_artifact_ids or []),
            )
        # Edges without an enrichment row still drive expansion
        for chunk_id, chunk_edges in relationships.items():
            result[chunk_id] = ChunkEnrichment(chunk_id=chunk_id, relationships=chunk_edges)
        return result

    async def save_enrichment(self, enrichment: ChunkEnrichment) -> None:
        """
        Replace the stored enrichment and outgoing edges of one chunk.

        A missing or zero ``enrichment_score`` is computed from the enrichment content.

        Raises:
            StoreWriteError: The transaction failed and was rolled back
        """
        score = enrichment.enrichment_score or compute_enrichment_score(
            enrichment.enriched_text,
            len(enrichment.entities),
            len(enrichment.relationships),
        )
        try:
            async with self._session_factory() as session, session.begin():
                await chunk_enrichment_crud.delete_by_id(session, enrichment.chunk_id)
                await chunk_relationship_crud.delete_by_sources(session, [enrichment.chunk_id])
                session.add(
                    ChunkEnrichmentModel(
                        chunk_id=enrichment.chunk_id,
                        enrichment_score=score,
                        enriched_text=enrichment.enriched_text,
                        entities=list(enrichment.entities),
                        related_artifact_ids=list(enrichment.related_artifact_ids),
                    )
                )
                session.add_all(
                    ChunkRelationshipModel(
                        source_chunk_id=enrichment.chunk_id,
                        related_chunk_id=edge.related_chunk_id,
                        relation_type=edge.relation_type,
                        weight=edge.weight,
                    )
                    for edge in enrichment.relationships
                )
        except SQLAlchemyError as e:
            logger.exception(
                f"{__name__}:save_enrichment - Failed to save enrichment",
                extra={"chunk_id": enrichment.chunk_id, "error": str(e)},
            )
            raise StoreWriteError(
                f"Failed to save enrichment: {e}",
                store="enrichment_store",
                details={"chunk_id": enrichment.chunk_id},
            ) from e

    async def delete_for_chunks(self, chunk_ids: Sequence[str]) -> int:
        """Remove enrichment rows and outgoing edges for ``chunk_ids``."""
        if not chunk_ids:
            return 0
        async with self._session_factory() as session, session.begin():
            deleted = await chunk_enrichment_crud.delete_by_ids(session, list(chunk_ids))
            await chunk_relationship_crud.delete_by_sources(session, list(chunk_ids))
        return deleted
