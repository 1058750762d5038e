"""
Indexing pipeline result and progress models.

Dependencies: pydantic
System role: Return and event types for IndexingPipeline
"""

import enum
from datetime import date

from pydantic import BaseModel, Field


class IndexingStage(str, enum.Enum):
    """Named stages announced through progress events, in execution order."""

    VALIDATING = "validating"
    EMBEDDING = "embedding"
    STORING_VECTORS = "storing_vectors"
    STORING_METADATA = "storing_metadata"
    INDEXING_KEYWORDS = "indexing_keywords"
    UPDATING_CACHE = "updating_cache"
    PERSISTING = "persisting"
    COMPLETE = "complete"


STAGE_PERCENT: dict[IndexingStage, int] = {
    IndexingStage.VALIDATING: 0,
    IndexingStage.EMBEDDING: 10,
    IndexingStage.STORING_VECTORS: 40,
    IndexingStage.STORING_METADATA: 60,
    IndexingStage.INDEXING_KEYWORDS: 70,
    IndexingStage.UPDATING_CACHE: 80,
    IndexingStage.PERSISTING: 90,
    IndexingStage.COMPLETE: 100,
}


class IndexingError(BaseModel):
    """Per-item or per-stage failure collected during a pipeline run."""

    item_id: str = Field(description="Chunk id, artifact id, or stage sentinel")
    kind: str = Field(description="Error category (validation, store, not_found, ...)")
    error: str = Field(description="Human-readable error message")


class IndexingResult(BaseModel):
    """Outcome of one indexing call."""

    success: bool = Field(description="True when no errors were collected")
    chunks_indexed: int = Field(
        default=0, description="Chunks written to both the vector and metadata stores"
    )
    embeddings_generated: int = Field(default=0, description="Vectors returned by the embedder")
    errors: list[IndexingError] = Field(default_factory=list)
    duration_ms: float = Field(default=0.0, description="Wall-clock duration in milliseconds")


class IndexingProgress(BaseModel):
    """Stage transition event emitted to progress observers."""

    stage: IndexingStage
    chunks_processed: int = Field(default=0)
    chunks_total: int = Field(default=0)
    percent_complete: int = Field(default=0, ge=0, le=100)
    error: str | None = Field(default=None)


class DateRange(BaseModel):
    """Inclusive span of clinical days present in the index."""

    earliest: date | None = None
    latest: date | None = None


class IndexStats(BaseModel):
    """Aggregate counts across the stores and the cache."""

    total_chunks: int = Field(description="Rows in the metadata store")
    total_vectors: int = Field(description="Vectors in the vector store")
    keyword_documents: int = Field(default=0, description="Documents in the keyword index")
    patients: int = Field(description="Distinct patients in the cache")
    artifacts: int = Field(description="Distinct artifacts in the cache")
    artifact_types: list[str] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)
