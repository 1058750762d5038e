"""
Chunk models for the clinical index.

A chunk is a contiguous text fragment of a patient artifact (note, lab report,
imaging read). Chunks are produced upstream and are immutable once stored;
reindexing supersedes them rather than editing them in place.

Dependencies: pydantic
System role: Core record flowing through indexing, cache and retrieval
"""

from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Chunk(BaseModel):
    """Immutable clinical text fragment with its provenance."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique chunk identifier", min_length=1)
    artifact_id: str = Field(description="Source artifact (document) identifier", min_length=1)
    patient_id: str = Field(description="Patient the artifact belongs to", min_length=1)
    artifact_type: str = Field(description="Artifact category, e.g. note, lab, imaging")
    occurred_at: datetime = Field(description="Clinical timestamp of the artifact (UTC)")
    author: str | None = Field(default=None, description="Author of the artifact")
    text: str = Field(description="Chunk text content")
    char_offset_range: tuple[int, int] = Field(
        description="Start and end character offsets within the artifact",
    )
    source_url: str | None = Field(default=None, description="Link back to the source artifact")

    @field_validator("occurred_at")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_offsets(self) -> "Chunk":
        start, end = self.char_offset_range
        if start < 0 or end < start:
            raise ValueError(
                f"char_offset_range must satisfy 0 <= start <= end, got ({start}, {end})"
            )
        return self

    @property
    def day(self) -> str:
        """ISO calendar date (YYYY-MM-DD) of ``occurred_at`` in UTC."""
        return self.occurred_at.date().isoformat()


class MetadataFilter(BaseModel):
    """
    AND-composed filter over chunk metadata.

    Every criterion left as None is ignored. ``artifact_types`` matches any
    of the listed types. Date bounds are inclusive and compare calendar days.
    """

    patient_id: str | None = Field(default=None, description="Restrict to one patient")
    artifact_id: str | None = Field(default=None, description="Restrict to one artifact")
    artifact_types: list[str] | None = Field(
        default=None, description="Restrict to any of these artifact types"
    )
    day: date | None = Field(default=None, description="Restrict to a single calendar day")
    date_from: date | None = Field(default=None, description="Inclusive lower day bound")
    date_to: date | None = Field(default=None, description="Inclusive upper day bound")
    limit: int | None = Field(default=None, description="Maximum ids returned", ge=1)
    offset: int = Field(default=0, description="Number of ids skipped", ge=0)

    def is_empty(self) -> bool:
        """True when no criterion restricts the result."""
        return not any(
            (
                self.patient_id,
                self.artifact_id,
                self.artifact_types,
                self.day,
                self.date_from,
                self.date_to,
            )
        )
