"""
Integration tests for MultiHopRetriever.

Chunks are indexed through the real pipeline with pinned embeddings so
similarities against the query vector [1, 0, 0, 0] are known:

    c1 -> 0.9   c2 -> 0.8   c3 -> 0.0   c4 -> 0.5   c5 -> 0.0

c3 and c5 are lab results; the rest are notes.
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from clinical_index.boundary.embeddings.embedding_client import EmbeddingClient
from clinical_index.boundary.enrichment.providers import InMemoryEnrichmentProvider
from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.core.exceptions import EmbeddingError
from clinical_index.core.indexing.pipeline import IndexingPipeline
from clinical_index.core.retrieval.multi_hop_retriever import MultiHopRetriever
from clinical_index.models import ChunkEnrichment, MultiHopOptions, QueryFilters, StructuredQuery
from tests.factories import make_chunk, unit

QUERY = "metformin"

TEXTS = {
    "c1": "Cardiology consult for palpitations",
    "c2": "Metformin dose increased to 1000mg",
    "c3": "Lipid panel within normal limits",
    "c4": "Follow up visit scheduled",
    "c5": "Renal function panel unremarkable",
}

VECTORS = {
    QUERY: [1.0, 0.0, 0.0, 0.0],
    TEXTS["c1"]: unit(0.9, 0.43589, 0.0, 0.0),
    TEXTS["c2"]: [0.8, 0.0, 0.6, 0.0],
    TEXTS["c3"]: [0.0, 0.0, 0.0, 1.0],
    TEXTS["c4"]: [0.5, 0.0, 0.0, 0.866],
    TEXTS["c5"]: [0.0, 1.0, 0.0, 0.0],
}

ARTIFACT_TYPES = {"c1": "note", "c2": "note", "c3": "lab", "c4": "note", "c5": "lab"}


@pytest_asyncio.fixture
async def indexed(embeddings, pipeline: IndexingPipeline) -> IndexingPipeline:
    """Index c1..c5 for patient P1, one artifact per chunk."""
    embeddings.vectors.update(VECTORS)
    chunks = [
        make_chunk(
            chunk_id,
            artifact_id=f"A-{chunk_id}",
            artifact_type=ARTIFACT_TYPES[chunk_id],
            text=text,
        )
        for chunk_id, text in TEXTS.items()
    ]
    result = await pipeline.index(chunks)
    assert result.success, result.errors
    return pipeline


class _FailingProvider:
    async def get_enrichment(self, chunk_ids):
        raise ConnectionError("enrichment service unavailable")


class TestBaselineRetrieval:
    """Test suite for similarity search without expansion."""

    @pytest.mark.asyncio
    async def test_retrieve_should_rank_by_similarity(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever
    ) -> None:
        # Act
        result = await retriever.retrieve(QUERY, k=3, options=MultiHopOptions(max_hops=0))

        # Assert
        assert result.errors == []
        assert result.chunk_ids == ["c1", "c2", "c4"]
        assert [c.score for c in result.candidates] == pytest.approx([0.9, 0.8, 0.5], abs=1e-4)
        assert all(c.hop_distance == 0 for c in result.candidates)
        assert result.candidates[0].relationship_path == ["c1"]
        assert result.hop_stats.initial_chunks == 3

    @pytest.mark.asyncio
    async def test_disabled_expansion_should_equal_zero_hops(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
        vector_store: FAISSVectorStore,
    ) -> None:
        """Test both ways of turning expansion off give plain similarity search."""
        # Arrange
        enrichment_provider.add_relationship("c1", "c3")

        # Act
        disabled = await retriever.retrieve(QUERY, k=4, options=MultiHopOptions(enable_multi_hop=False))
        zero_hops = await retriever.retrieve(QUERY, k=4, options=MultiHopOptions(max_hops=0))
        direct = vector_store.search(VECTORS[QUERY], k=4)

        # Assert
        assert disabled.chunk_ids == zero_hops.chunk_ids == [hit.chunk_id for hit in direct]
        assert [c.score for c in disabled.candidates] == [c.score for c in zero_hops.candidates]
        assert disabled.hop_stats.levels == []

    @pytest.mark.asyncio
    async def test_structured_query_filters_should_restrict_baseline(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever
    ) -> None:
        # Arrange
        query = StructuredQuery(query_text=QUERY, filters=QueryFilters(artifact_types=["lab"]))

        # Act
        result = await retriever.retrieve(query, k=5, options=MultiHopOptions(max_hops=0))

        # Assert
        assert sorted(result.chunk_ids) == ["c3", "c5"]

    @pytest.mark.asyncio
    async def test_unknown_patient_should_return_nothing(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever
    ) -> None:
        query = StructuredQuery(query_text=QUERY, patient_id="P404")
        result = await retriever.retrieve(query, k=5)
        assert result.candidates == []
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_empty_index_should_return_nothing(self, retriever: MultiHopRetriever) -> None:
        result = await retriever.retrieve(QUERY, k=5)
        assert result.candidates == []

    @pytest.mark.asyncio
    async def test_reformulated_text_should_drive_embedding(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever, embeddings
    ) -> None:
        # Arrange
        embeddings.vectors["heart rhythm"] = VECTORS[TEXTS["c1"]]
        query = StructuredQuery(query_text=QUERY, reformulated_text="heart rhythm")

        # Act
        result = await retriever.retrieve(query, k=1, options=MultiHopOptions(max_hops=0))

        # Assert
        assert result.chunk_ids == ["c1"]
        assert result.candidates[0].score == pytest.approx(1.0, abs=1e-4)


class TestRelationshipExpansion:
    """Test suite for multi-hop expansion."""

    @pytest.mark.asyncio
    async def test_one_hop_should_surface_related_chunk(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        """Test a zero-similarity chunk reached from c1 outranks c4."""
        # Arrange
        enrichment_provider.add_relationship("c1", "c3", relation_type="follow_up")

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=MultiHopOptions(max_hops=1))

        # Assert
        assert result.chunk_ids == ["c1", "c2", "c3"]
        related = result.candidates[2]
        assert related.hop_distance == 1
        assert related.score == pytest.approx(0.6, abs=1e-4)
        assert related.similarity_score == pytest.approx(0.9, abs=1e-4)
        assert related.relationship_path == ["c1", "c3"]
        assert result.hop_stats.levels[0].new_chunks == 1
        assert result.hop_stats.total_relationships_followed == 1

    @pytest.mark.asyncio
    async def test_expanded_score_should_not_exceed_best_parent(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        """Test a chunk with two parents takes the better parent's similarity."""
        # Arrange
        enrichment_provider.add_relationship("c4", "c3")
        enrichment_provider.add_relationship("c1", "c3")

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=MultiHopOptions(max_hops=1))

        # Assert
        related = next(c for c in result.candidates if c.chunk_id == "c3")
        assert related.score == pytest.approx(0.9 - 0.3, abs=1e-4)
        assert related.relationship_path == ["c1", "c3"]

    @pytest.mark.asyncio
    async def test_baseline_chunks_should_not_be_rediscovered(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        # Arrange
        enrichment_provider.add_relationship("c1", "c2")

        # Act
        result = await retriever.retrieve(QUERY, k=5, options=MultiHopOptions(max_hops=2))

        # Assert
        assert result.chunk_ids.count("c2") == 1
        assert next(c for c in result.candidates if c.chunk_id == "c2").hop_distance == 0

    @pytest.mark.asyncio
    async def test_more_hops_should_never_return_fewer_chunks(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        """Test result size grows with max_hops when filters exclude the lab chain."""
        # Arrange
        enrichment_provider.add_relationship("c1", "c3")
        enrichment_provider.add_relationship("c3", "c5")
        query = StructuredQuery(query_text=QUERY, filters=QueryFilters(artifact_types=["note"]))

        # Act
        counts = []
        for max_hops in (0, 1, 2):
            result = await retriever.retrieve(query, k=5, options=MultiHopOptions(max_hops=max_hops))
            counts.append(len(result.candidates))

        # Assert
        assert counts == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_second_hop_should_apply_double_penalty(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        # Arrange
        enrichment_provider.add_relationship("c1", "c3")
        enrichment_provider.add_relationship("c3", "c5")
        query = StructuredQuery(query_text=QUERY, filters=QueryFilters(artifact_types=["note"]))

        # Act
        result = await retriever.retrieve(query, k=10, options=MultiHopOptions(max_hops=2))

        # Assert
        second = next(c for c in result.candidates if c.chunk_id == "c5")
        assert second.hop_distance == 2
        assert second.score == pytest.approx(0.9 - 0.6, abs=1e-4)
        assert second.relationship_path == ["c1", "c3", "c5"]
        assert [level.hop for level in result.hop_stats.levels] == [1, 2]

    @pytest.mark.asyncio
    async def test_expansion_should_not_cross_patients(
        self,
        indexed: IndexingPipeline,
        pipeline: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
        embeddings,
    ) -> None:
        # Arrange
        embeddings.vectors["Other patient note"] = [1.0, 0.0, 0.0, 0.0]
        await pipeline.index([
            make_chunk("p2", artifact_id="A-p2", patient_id="P2", text="Other patient note")
        ])
        enrichment_provider.add_relationship("c1", "p2")

        # Act
        scoped = await retriever.retrieve(
            StructuredQuery(query_text=QUERY, patient_id="P1"),
            k=10,
            options=MultiHopOptions(max_hops=2),
        )
        unscoped = await retriever.retrieve(QUERY, k=10, options=MultiHopOptions(max_hops=2))

        # Assert
        assert "p2" not in scoped.chunk_ids
        assert all(c.chunk.patient_id == "P1" for c in scoped.candidates)
        assert unscoped.chunk_ids[0] == "p2"

    @pytest.mark.asyncio
    async def test_provider_failure_should_degrade_to_baseline(
        self,
        indexed: IndexingPipeline,
        embedding_client: EmbeddingClient,
        vector_store: FAISSVectorStore,
    ) -> None:
        # Arrange
        retriever = MultiHopRetriever(
            embedding_client=embedding_client,
            vector_store=vector_store,
            cache=indexed.cache,
            enrichment_provider=_FailingProvider(),
        )

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=MultiHopOptions(max_hops=2))

        # Assert
        assert result.chunk_ids == ["c1", "c2", "c4"]
        assert len(result.errors) == 1
        assert "unavailable" in result.errors[0]


class TestScoreBlending:
    """Test suite for enrichment and keyword scoring."""

    @pytest.mark.asyncio
    async def test_enrichment_bonus_should_reorder_candidates(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        # Arrange
        enrichment_provider.put(
            ChunkEnrichment(
                chunk_id="c2",
                enrichment_score=1.0,
                enriched_text="Metformin (biguanide) dose increased to 1000 mg",
                related_artifact_ids=["A-c5"],
            )
        )
        options = MultiHopOptions(max_hops=0, use_enriched_text=True)

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=options)

        # Assert
        assert result.chunk_ids == ["c2", "c1", "c4"]
        top = result.candidates[0]
        assert top.score == pytest.approx(0.8 + 0.2, abs=1e-4)
        assert top.enriched_text.startswith("Metformin (biguanide)")
        assert top.related_artifact_ids == ["A-c5"]
        assert result.enrichment_stats.enriched_chunks == 1
        assert result.enrichment_stats.enriched_fraction == pytest.approx(1 / 3)
        assert result.enrichment_stats.avg_enrichment_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_edge_only_chunks_should_not_count_as_enriched(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        """Test a chunk known only through relationship edges gets no enrichment score."""
        # Arrange
        enrichment_provider.add_relationship("c1", "c3")
        enrichment_provider.put(ChunkEnrichment(chunk_id="c2", enrichment_score=0.6))
        options = MultiHopOptions(max_hops=0, use_enriched_text=True)

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=options)

        # Assert
        assert result.chunk_ids == ["c2", "c1", "c4"]
        by_id = {c.chunk_id: c for c in result.candidates}
        assert by_id["c1"].enrichment_score is None
        assert by_id["c1"].score == pytest.approx(0.9, abs=1e-4)
        assert by_id["c2"].score == pytest.approx(0.8 + 0.2 * 0.6, abs=1e-4)
        assert result.enrichment_stats.enriched_chunks == 1
        assert result.enrichment_stats.avg_enrichment_score == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_enrichment_should_be_ignored_unless_requested(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        enrichment_provider: InMemoryEnrichmentProvider,
    ) -> None:
        # Arrange
        enrichment_provider.put(ChunkEnrichment(chunk_id="c2", enrichment_score=1.0))

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=MultiHopOptions(max_hops=0))

        # Assert
        assert result.chunk_ids == ["c1", "c2", "c4"]
        assert result.candidates[1].enrichment_score is None
        assert result.enrichment_stats.enriched_chunks == 0

    @pytest.mark.asyncio
    async def test_keyword_weight_should_blend_bm25_scores(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever
    ) -> None:
        # Arrange
        options = MultiHopOptions(max_hops=0, keyword_weight=0.5)

        # Act
        result = await retriever.retrieve(QUERY, k=3, options=options)

        # Assert
        assert result.chunk_ids == ["c2", "c1", "c4"]
        top = result.candidates[0]
        assert top.keyword_score == pytest.approx(1.0)
        assert top.score == pytest.approx(0.5 * 0.8 + 0.5 * 1.0, abs=1e-4)
        assert result.candidates[1].keyword_score == 0.0


class TestRetrievalErrors:
    @pytest.mark.asyncio
    async def test_query_embedding_failure_should_be_reported(
        self,
        indexed: IndexingPipeline,
        retriever: MultiHopRetriever,
        embedding_client: EmbeddingClient,
    ) -> None:
        # Arrange
        failing = AsyncMock(side_effect=EmbeddingError("Embedding embed timed out after 5.0s"))

        # Act
        with patch.object(embedding_client, "embed", failing):
            result = await retriever.retrieve(QUERY, k=3)

        # Assert
        assert result.candidates == []
        assert len(result.errors) == 1
        assert "timed out" in result.errors[0]

    @pytest.mark.asyncio
    async def test_hydration_should_fall_back_to_metadata_store(
        self, indexed: IndexingPipeline, retriever: MultiHopRetriever
    ) -> None:
        """Test ids missing from the cache are read from the metadata store."""
        # Arrange
        indexed.cache.remove("c1")

        # Act
        result = await retriever.retrieve(QUERY, k=1, options=MultiHopOptions(max_hops=0))

        # Assert
        assert result.chunk_ids == ["c1"]
        assert result.candidates[0].chunk.text == TEXTS["c1"]
