"""
Retrieval query, option and result models.

Dependencies: pydantic
System role: Input and output types for MultiHopRetriever
"""

import uuid
from datetime import date

from pydantic import BaseModel, Field

from clinical_index.models.chunk import Chunk, MetadataFilter


class QueryFilters(BaseModel):
    """Metadata restrictions extracted from the user's question."""

    artifact_id: str | None = None
    artifact_types: list[str] = Field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None


class StructuredQuery(BaseModel):
    """Pre-parsed query produced by the query-understanding step."""

    query_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    query_text: str = Field(description="Original user question")
    reformulated_text: str | None = Field(
        default=None, description="Rewritten question used for embedding when present"
    )
    intent: str | None = None
    patient_id: str | None = Field(default=None, description="Patient the question is scoped to")
    filters: QueryFilters = Field(default_factory=QueryFilters)

    @property
    def search_text(self) -> str:
        """Text that is embedded and keyword-matched."""
        return self.reformulated_text or self.query_text

    def to_metadata_filter(self) -> MetadataFilter | None:
        """Translate patient scope and filters into a cache filter, or None."""
        criteria = MetadataFilter(
            patient_id=self.patient_id,
            artifact_id=self.filters.artifact_id,
            artifact_types=self.filters.artifact_types or None,
            date_from=self.filters.date_from,
            date_to=self.filters.date_to,
        )
        return None if criteria.is_empty() else criteria


class MultiHopOptions(BaseModel):
    """Per-call retrieval options."""

    enable_multi_hop: bool = True
    max_hops: int = Field(default=1, ge=0, le=2)
    relationship_boost: float = Field(default=0.3, ge=0.0)
    use_enriched_text: bool = False
    keyword_weight: float = Field(default=0.0, ge=0.0, le=1.0)


class RetrievalCandidate(BaseModel):
    """Chunk proposed as relevant, with its scoring breakdown."""

    chunk: Chunk
    similarity_score: float = Field(description="Raw similarity from the vector store")
    score: float = Field(description="Blended score used for ranking")
    hop_distance: int = Field(default=0, ge=0, description="0 for direct matches")
    keyword_score: float | None = None
    enrichment_score: float | None = None
    enriched_text: str | None = None
    related_artifact_ids: list[str] = Field(default_factory=list)
    relationship_path: list[str] = Field(
        default_factory=list, description="Chunk ids traversed from the seed match"
    )

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id


class HopLevelStats(BaseModel):
    hop: int
    new_chunks: int = 0
    edges_followed: int = 0


class HopStats(BaseModel):
    """Expansion statistics for one retrieval."""

    initial_chunks: int = 0
    levels: list[HopLevelStats] = Field(default_factory=list)
    total_relationships_followed: int = 0


class EnrichmentStats(BaseModel):
    """Enrichment coverage over the returned candidates."""

    enriched_chunks: int = 0
    enriched_fraction: float = 0.0
    avg_enrichment_score: float = 0.0


class RetrievalResult(BaseModel):
    """Ranked candidates plus diagnostics."""

    query_id: str
    candidates: list[RetrievalCandidate] = Field(default_factory=list)
    hop_stats: HopStats = Field(default_factory=HopStats)
    enrichment_stats: EnrichmentStats = Field(default_factory=EnrichmentStats)
    errors: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def chunk_ids(self) -> list[str]:
        return [candidate.chunk_id for candidate in self.candidates]
