"""
Enrichment ORM models.

Relationship edges between chunks and per-chunk enrichment output written
by the upstream enrichment step and read during multi-hop retrieval.

Dependencies: sqlalchemy, clinical_index.boundary.db.base
System role: Storage for the SQL-backed enrichment provider
"""

from sqlalchemy import JSON, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clinical_index.boundary.db.base import Base, CreatedAtMixin


class ChunkRelationshipModel(Base, CreatedAtMixin):
    """Directed relationship edge from ``source_chunk_id`` to ``related_chunk_id``."""

    __tablename__ = "chunk_relationships"
    __table_args__ = (
        UniqueConstraint(
            "source_chunk_id", "related_chunk_id", "relation_type",
            name="uq_chunk_relationship_edge",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_chunk_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    related_chunk_id: Mapped[str] = mapped_column(String(255), nullable=False)
    relation_type: Mapped[str] = mapped_column(String(100), nullable=False, default="related")
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)


class ChunkEnrichmentModel(Base, CreatedAtMixin):
    """Enrichment output for one chunk."""

    __tablename__ = "chunk_enrichments"

    chunk_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    enrichment_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    enriched_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    entities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    related_artifact_ids: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Artifact ids referenced by the enriched text",
    )
