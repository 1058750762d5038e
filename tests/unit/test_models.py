"""
Unit tests for chunk and retrieval models.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from clinical_index.models import (
    Chunk,
    MetadataFilter,
    QueryFilters,
    RetrievalCandidate,
    RetrievalResult,
    StructuredQuery,
)
from tests.factories import make_chunk


def _chunk_payload(**overrides) -> dict:
    payload = {
        "chunk_id": "c1",
        "artifact_id": "A1",
        "patient_id": "P1",
        "artifact_type": "note",
        "occurred_at": datetime(2024, 1, 15, 10, tzinfo=timezone.utc),
        "text": "Assessment and plan",
        "char_offset_range": (0, 19),
    }
    payload.update(overrides)
    return payload


class TestChunk:
    """Test suite for Chunk validation."""

    def test_naive_timestamp_should_be_treated_as_utc(self) -> None:
        chunk = Chunk(**_chunk_payload(occurred_at=datetime(2024, 1, 15, 23, 30)))
        assert chunk.occurred_at == datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)

    def test_offset_timestamp_should_be_converted_to_utc(self) -> None:
        """Test the day key follows the UTC date, not the local one."""
        # Arrange
        eastern = timezone(timedelta(hours=-5))

        # Act
        chunk = Chunk(**_chunk_payload(occurred_at=datetime(2024, 1, 15, 21, 0, tzinfo=eastern)))

        # Assert
        assert chunk.occurred_at.tzinfo == timezone.utc
        assert chunk.day == "2024-01-16"

    @pytest.mark.parametrize("offsets", [(-1, 5), (10, 5)])
    def test_invalid_offsets_should_raise(self, offsets: tuple[int, int]) -> None:
        with pytest.raises(ValidationError):
            Chunk(**_chunk_payload(char_offset_range=offsets))

    def test_empty_offset_range_should_be_allowed(self) -> None:
        assert Chunk(**_chunk_payload(char_offset_range=(4, 4))).char_offset_range == (4, 4)

    def test_chunk_should_be_immutable(self) -> None:
        chunk = make_chunk("c1")
        with pytest.raises(ValidationError):
            chunk.text = "edited"


class TestMetadataFilter:
    def test_is_empty_should_ignore_pagination(self) -> None:
        assert MetadataFilter(limit=5, offset=2).is_empty()
        assert not MetadataFilter(artifact_types=["lab"]).is_empty()

    def test_limit_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MetadataFilter(limit=0)


class TestStructuredQuery:
    """Test suite for StructuredQuery helpers."""

    def test_search_text_should_prefer_reformulation(self) -> None:
        query = StructuredQuery(query_text="bp meds?", reformulated_text="antihypertensive medications")
        assert query.search_text == "antihypertensive medications"

    def test_search_text_should_fall_back_to_query_text(self) -> None:
        assert StructuredQuery(query_text="bp meds?").search_text == "bp meds?"

    def test_unscoped_query_should_have_no_metadata_filter(self) -> None:
        assert StructuredQuery(query_text="anything").to_metadata_filter() is None

    def test_to_metadata_filter_should_carry_scope_and_filters(self) -> None:
        # Arrange
        query = StructuredQuery(
            query_text="recent labs",
            patient_id="P1",
            filters=QueryFilters(artifact_types=["lab"], date_from=date(2024, 1, 1)),
        )

        # Act
        criteria = query.to_metadata_filter()

        # Assert
        assert criteria.patient_id == "P1"
        assert criteria.artifact_types == ["lab"]
        assert criteria.date_from == date(2024, 1, 1)
        assert criteria.date_to is None

    def test_query_id_should_be_generated(self) -> None:
        first = StructuredQuery(query_text="q")
        second = StructuredQuery(query_text="q")
        assert first.query_id and first.query_id != second.query_id


class TestRetrievalResult:
    def test_chunk_ids_should_follow_candidate_order(self) -> None:
        # Arrange
        candidates = [
            RetrievalCandidate(chunk=make_chunk(cid), similarity_score=0.5, score=0.5)
            for cid in ("c2", "c1")
        ]

        # Act
        result = RetrievalResult(query_id="q1", candidates=candidates)

        # Assert
        assert result.chunk_ids == ["c2", "c1"]
