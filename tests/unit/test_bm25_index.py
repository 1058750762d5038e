"""
Unit tests for BM25KeywordIndex and tokenize().
"""

import json
from pathlib import Path

import pytest

from clinical_index.boundary.keyword.bm25_index import BM25KeywordIndex, tokenize
from clinical_index.core.exceptions import CacheSnapshotError
from tests.factories import make_chunk


@pytest.fixture
def index() -> BM25KeywordIndex:
    keyword_index = BM25KeywordIndex()
    keyword_index.add_documents([
        make_chunk("c1", text="Patient started on metformin 500mg twice daily"),
        make_chunk("c2", text="Chest x-ray shows no acute cardiopulmonary process"),
        make_chunk("c3", text="Hemoglobin A1c elevated at 8.2 percent"),
        make_chunk("c4", text="Follow up in clinic after discharge"),
    ])
    return keyword_index


class TestTokenize:
    """Test suite for tokenize()."""

    def test_tokenize_should_lowercase_and_drop_stop_words(self) -> None:
        assert tokenize("The Patient is on Metformin") == ["patient", "metformin"]

    def test_tokenize_should_keep_clinical_compounds(self) -> None:
        """Test dotted numbers and hyphenated terms survive as one token."""
        assert tokenize("A1c 8.2 x-ray") == ["a1c", "8.2", "x-ray"]


class TestBM25KeywordIndexSearch:
    """Test suite for search() and scores_for()."""

    def test_search_should_rank_matching_document_first(self, index: BM25KeywordIndex) -> None:
        """Test the only document containing the term is returned with score 1.0."""
        # Act
        results = index.search("metformin dose")

        # Assert
        assert [r.chunk_id for r in results] == ["c1"]
        assert results[0].score == pytest.approx(1.0)

    def test_search_should_normalise_scores_to_best_hit(self, index: BM25KeywordIndex) -> None:
        """Test every score lies in (0, 1] and the best is exactly 1."""
        # Act
        results = index.search("hemoglobin chest")

        # Assert
        assert {r.chunk_id for r in results} == {"c2", "c3"}
        assert max(r.score for r in results) == pytest.approx(1.0)
        assert all(0.0 < r.score <= 1.0 for r in results)

    def test_search_without_match_should_return_empty(self, index: BM25KeywordIndex) -> None:
        assert index.search("warfarin") == []

    def test_search_stop_words_only_should_return_empty(self, index: BM25KeywordIndex) -> None:
        assert index.search("the and of") == []

    def test_search_empty_index_should_return_empty(self) -> None:
        assert BM25KeywordIndex().search("metformin") == []

    def test_scores_for_should_fill_missing_with_zero(self, index: BM25KeywordIndex) -> None:
        """Test restricted scoring returns every requested id."""
        # Act
        scores = index.scores_for("metformin", ["c1", "c2", "unknown"])

        # Assert
        assert scores["c1"] == pytest.approx(1.0)
        assert scores["c2"] == 0.0
        assert scores["unknown"] == 0.0


class TestBM25KeywordIndexMutation:
    """Test suite for add_documents(), remove() and clear()."""

    def test_add_documents_should_replace_existing_text(self, index: BM25KeywordIndex) -> None:
        """Test re-adding an id replaces its tokens."""
        # Act
        index.add_documents([make_chunk("c1", text="Lisinopril for hypertension")])

        # Assert
        assert index.size == 4
        assert index.search("metformin") == []
        assert index.search("lisinopril")[0].chunk_id == "c1"

    def test_remove_should_drop_documents(self, index: BM25KeywordIndex) -> None:
        # Act
        removed = index.remove(["c1", "nope"])

        # Assert
        assert removed == 1
        assert not index.contains("c1")
        assert index.search("metformin") == []

    def test_clear_should_empty_index(self, index: BM25KeywordIndex) -> None:
        index.clear()
        assert index.size == 0
        assert index.search("hemoglobin") == []


class TestBM25KeywordIndexPersistence:
    """Test suite for save() and load()."""

    def test_save_then_load_should_restore_corpus(
        self, index: BM25KeywordIndex, tmp_path: Path
    ) -> None:
        # Arrange
        path = tmp_path / "keywords.json"
        index.save(path)
        restored = BM25KeywordIndex(path)

        # Act
        loaded = restored.load()

        # Assert
        assert loaded is True
        assert restored.size == 4
        assert restored.search("hemoglobin")[0].chunk_id == "c3"

    def test_load_missing_snapshot_should_return_false(self, tmp_path: Path) -> None:
        assert BM25KeywordIndex(tmp_path / "absent.json").load() is False

    def test_load_unknown_version_should_raise(self, tmp_path: Path) -> None:
        # Arrange
        path = tmp_path / "keywords.json"
        path.write_text(json.dumps({"version": 2, "documents": []}), encoding="utf-8")

        # Act / Assert
        with pytest.raises(CacheSnapshotError):
            BM25KeywordIndex(path).load()

    def test_load_corrupt_file_should_raise(self, tmp_path: Path) -> None:
        # Arrange
        path = tmp_path / "keywords.json"
        path.write_text("{not json", encoding="utf-8")

        # Act / Assert
        with pytest.raises(CacheSnapshotError):
            BM25KeywordIndex(path).load()

    def test_save_without_path_should_raise(self, index: BM25KeywordIndex) -> None:
        with pytest.raises(ValueError):
            index.save()
