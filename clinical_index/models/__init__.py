"""Pydantic domain models for indexing and retrieval."""

from clinical_index.models.chunk import Chunk, MetadataFilter
from clinical_index.models.enrichment import ChunkEnrichment, RelationshipEdge
from clinical_index.models.indexing import (
    DateRange,
    IndexingError,
    IndexingProgress,
    IndexingResult,
    IndexingStage,
    IndexStats,
)
from clinical_index.models.retrieval import (
    EnrichmentStats,
    HopLevelStats,
    HopStats,
    MultiHopOptions,
    QueryFilters,
    RetrievalCandidate,
    RetrievalResult,
    StructuredQuery,
)

__all__ = [
    "Chunk",
    "ChunkEnrichment",
    "DateRange",
    "EnrichmentStats",
    "HopLevelStats",
    "HopStats",
    "IndexStats",
    "IndexingError",
    "IndexingProgress",
    "IndexingResult",
    "IndexingStage",
    "MetadataFilter",
    "MultiHopOptions",
    "QueryFilters",
    "RelationshipEdge",
    "RetrievalCandidate",
    "RetrievalResult",
    "StructuredQuery",
]
