"""
Vector database schemas.

Pydantic models for vector operations and the persisted sidecar.

Dependencies: pydantic
System role: Type definitions for vector operations
"""

from pydantic import BaseModel, Field

SIDECAR_VERSION = 1


class VectorSearchResult(BaseModel):
    """Single result from vector search."""

    chunk_id: str = Field(description="External chunk identifier")
    score: float = Field(description="Cosine similarity (inner product of unit vectors)")


class VectorIndexSidecar(BaseModel):
    """
    JSON sidecar persisted next to the FAISS index file.

    The FAISS file holds vectors keyed by internal int64 ids; the sidecar
    maps those back to chunk ids and records the dimension for validation.
    """

    version: int = Field(default=SIDECAR_VERSION)
    dimension: int = Field(gt=0)
    next_id: int = Field(ge=0)
    id_map: list[tuple[str, int]] = Field(
        default_factory=list, description="[chunk_id, internal_id] pairs"
    )
