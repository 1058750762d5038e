"""
Relationship and enrichment models.

Enrichment is produced by an upstream analysis step: typed edges between
chunks plus an optional rewritten text and a quality score.

Dependencies: pydantic
System role: Input to multi-hop expansion and enrichment scoring
"""

from pydantic import BaseModel, Field


class RelationshipEdge(BaseModel):
    """Directed edge from one chunk to a related chunk."""

    related_chunk_id: str = Field(description="Target chunk id")
    relation_type: str = Field(default="related", description="Edge label, e.g. follow_up")
    weight: float = Field(default=1.0, description="Edge strength reported by the provider")


class ChunkEnrichment(BaseModel):
    """Enrichment data attached to a single chunk."""

    chunk_id: str
    relationships: list[RelationshipEdge] = Field(default_factory=list)
    enrichment_score: float | None = Field(
        default=None, ge=0.0, le=1.0, description="None when only relationship edges are known"
    )
    enriched_text: str | None = None
    entities: list[str] = Field(default_factory=list, description="Clinical entities found in the chunk")
    related_artifact_ids: list[str] = Field(default_factory=list)
