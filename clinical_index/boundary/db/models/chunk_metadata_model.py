"""
Chunk metadata ORM model.

Durable record of every indexed chunk: provenance, clinical timestamp and
text. The vector store and the in-memory cache are derived from this table.

Dependencies: sqlalchemy, clinical_index.boundary.db.base
System role: Source of truth for chunk records
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clinical_index.boundary.db.base import Base, CreatedAtMixin
from clinical_index.models.chunk import Chunk


class ChunkMetadataModel(Base, CreatedAtMixin):
    """
    Chunk metadata ORM model.

    Attributes:
        chunk_id: Primary key supplied by the chunking step
        artifact_id: Source artifact; indexed for reindex and delete
        patient_id: Owning patient; indexed for patient-scoped filters
        artifact_type: Artifact category (note, lab, imaging, ...)
        occurred_at: Clinical timestamp (UTC), indexed for date filters and ordering
        author: Optional artifact author
        chunk_text: Chunk content
        char_start / char_end: Character span within the artifact
        source_url: Optional link back to the artifact
    """

    __tablename__ = "chunk_metadata"
    __table_args__ = (
        Index("ix_chunk_metadata_patient_occurred", "patient_id", "occurred_at"),
    )

    chunk_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    artifact_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    artifact_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    char_start: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    char_end: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ChunkMetadataModel":
        start, end = chunk.char_offset_range
        return cls(
            chunk_id=chunk.chunk_id,
            artifact_id=chunk.artifact_id,
            patient_id=chunk.patient_id,
            artifact_type=chunk.artifact_type,
            occurred_at=chunk.occurred_at,
            author=chunk.author,
            chunk_text=chunk.text,
            char_start=start,
            char_end=end,
            source_url=chunk.source_url,
        )

    def to_chunk(self) -> Chunk:
        occurred_at = self.occurred_at
        # SQLite drops tzinfo; stored values are always UTC
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)
        return Chunk(
            chunk_id=self.chunk_id,
            artifact_id=self.artifact_id,
            patient_id=self.patient_id,
            artifact_type=self.artifact_type,
            occurred_at=occurred_at,
            author=self.author,
            text=self.chunk_text,
            char_offset_range=(self.char_start, self.char_end),
            source_url=self.source_url,
        )
