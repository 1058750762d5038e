"""
Multi-hop retriever.

Retrieval runs in four steps:

1. Baseline similarity search, optionally restricted to the ids the
   metadata cache allows for the query's patient and filters.
2. Relationship expansion for up to two hops. A chunk first reached at
   hop ``h`` inherits the best similarity among its parents and is scored
   ``similarity - relationship_boost * h``.
3. Optional enrichment bonus of ``enrichment_weight * enrichment_score``.
4. Stable sort by score descending, then hop distance, then truncation to k.

With expansion disabled (or ``max_hops=0``) and no enrichment or keyword
weighting the result is plain similarity search. ``retrieve`` never raises;
failures are reported in ``RetrievalResult.errors``.

Dependencies: clinical_index.boundary, clinical_index.core.metadata_cache
System role: Candidate generation for downstream answer synthesis
"""

import logging
import time
from typing import Sequence

from clinical_index.boundary.db.metadata_store import SQLMetadataStore
from clinical_index.boundary.embeddings.embedding_client import EmbeddingClient
from clinical_index.boundary.enrichment.providers import EnrichmentProvider
from clinical_index.boundary.keyword.bm25_index import BM25KeywordIndex
from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.configs.retrieval import RetrievalSettings
from clinical_index.core.exceptions import RetrievalError
from clinical_index.core.metadata_cache import MetadataCache
from clinical_index.models.chunk import Chunk
from clinical_index.models.enrichment import ChunkEnrichment
from clinical_index.models.retrieval import (
    EnrichmentStats,
    HopLevelStats,
    HopStats,
    MultiHopOptions,
    RetrievalCandidate,
    RetrievalResult,
    StructuredQuery,
)
from clinical_index.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)


class MultiHopRetriever:
    """Similarity search with relationship expansion and score blending."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: FAISSVectorStore,
        cache: MetadataCache,
        metadata_store: SQLMetadataStore | None = None,
        enrichment_provider: EnrichmentProvider | None = None,
        keyword_index: BM25KeywordIndex | None = None,
        settings: RetrievalSettings | None = None,
    ) -> None:
        """
        Args:
            embedding_client: Embeds the query text
            vector_store: Baseline similarity search
            cache: Filtering and record hydration
            metadata_store: Hydration fallback for ids missing from the cache
            enrichment_provider: Relationships and enrichment; expansion is skipped without it
            keyword_index: Optional BM25 index for hybrid scoring
            settings: Default options and scoring weights
        """
        self._embedder = embedding_client
        self._vector_store = vector_store
        self._cache = cache
        self._metadata_store = metadata_store
        self._enrichment = enrichment_provider
        self._keyword_index = keyword_index
        self._settings = settings or RetrievalSettings()

    def default_options(self) -> MultiHopOptions:
        return MultiHopOptions(
            max_hops=self._settings.max_hops,
            relationship_boost=self._settings.relationship_boost,
            keyword_weight=self._settings.keyword_weight,
        )

    async def retrieve(
        self,
        query: StructuredQuery | str,
        k: int | None = None,
        options: MultiHopOptions | None = None,
    ) -> RetrievalResult:
        """
        Retrieve the top-k candidates for a query.

        Args:
            query: Structured query, or plain text treated as an unscoped query
            k: Number of candidates returned (settings default when None)
            options: Expansion and scoring options (settings defaults when None)

        Returns:
            RetrievalResult: Ranked candidates, hop and enrichment statistics, errors
        """
        start_time = time.perf_counter()
        if isinstance(query, str):
            query = StructuredQuery(query_text=query)
        k = k or self._settings.top_k
        options = options or self.default_options()
        result = RetrievalResult(query_id=query.query_id)

        try:
            await self._retrieve(query, k, options, result)
        except Exception as e:
            error = RetrievalError(f"Retrieval failed: {e}", query_id=query.query_id)
            log_exception_with_context(logger, f"{__name__}:retrieve - {error.message}", e)
            result.candidates = []
            result.errors.append(error.message)

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"{__name__}:retrieve - Returned {len(result.candidates)} candidates",
            extra={
                "query_id": query.query_id,
                "initial": result.hop_stats.initial_chunks,
                "errors": len(result.errors),
                "duration_ms": round(result.duration_ms, 1),
            },
        )
        return result

    async def _retrieve(
        self,
        query: StructuredQuery,
        k: int,
        options: MultiHopOptions,
        result: RetrievalResult,
    ) -> None:
        try:
            query_vector = await self._embedder.embed(query.search_text)
        except Exception as e:
            result.errors.append(f"Query embedding failed: {e}")
            return

        baseline = await self._baseline(query, query_vector, k, result.errors)
        if options.keyword_weight > 0 and self._keyword_index is not None:
            self._blend_keyword_scores(query, baseline, options.keyword_weight)

        result.hop_stats = HopStats(initial_chunks=len(baseline))
        candidates = list(baseline)
        enrichment: dict[str, ChunkEnrichment] = {}

        if (
            options.enable_multi_hop
            and options.max_hops > 0
            and self._enrichment is not None
            and baseline
        ):
            candidates.extend(
                await self._expand(query, baseline, options, enrichment, result)
            )

        if options.use_enriched_text and self._enrichment is not None and candidates:
            await self._apply_enrichment(candidates, enrichment, result.errors)

        # Stable sort keeps discovery order for equal (score, hop) pairs
        candidates.sort(key=lambda c: (-c.score, c.hop_distance))
        result.candidates = candidates[:k]
        result.enrichment_stats = self._enrichment_stats(result.candidates)

    async def _hydrate(self, chunk_ids: Sequence[str], errors: list[str]) -> dict[str, Chunk]:
        """Records from the cache, falling back to the metadata store."""
        found = {chunk.chunk_id: chunk for chunk in self._cache.get_many(chunk_ids)}
        missing = [cid for cid in chunk_ids if cid not in found]
        if missing and self._metadata_store is not None:
            try:
                for chunk in await self._metadata_store.get_by_ids(missing):
                    found[chunk.chunk_id] = chunk
            except Exception as e:
                errors.append(f"Metadata lookup failed: {e}")
        return found

    async def _baseline(
        self,
        query: StructuredQuery,
        query_vector: list[float],
        k: int,
        errors: list[str],
    ) -> list[RetrievalCandidate]:
        criteria = query.to_metadata_filter()
        allowed: set[str] | None = None
        search_k = k
        if criteria is not None:
            allowed = set(self._cache.filter(criteria))
            if not allowed:
                return []
            # Filtered ids can rank anywhere, so search the whole index
            search_k = self._vector_store.size

        try:
            hits = self._vector_store.search(query_vector, search_k)
        except Exception as e:
            errors.append(f"Vector search failed: {e}")
            return []

        if allowed is not None:
            hits = [hit for hit in hits if hit.chunk_id in allowed]
        hits = hits[:k]

        records = await self._hydrate([hit.chunk_id for hit in hits], errors)
        return [
            RetrievalCandidate(
                chunk=records[hit.chunk_id],
                similarity_score=hit.score,
                score=hit.score,
                hop_distance=0,
                relationship_path=[hit.chunk_id],
            )
            for hit in hits
            if hit.chunk_id in records
        ]

    def _blend_keyword_scores(
        self,
        query: StructuredQuery,
        candidates: list[RetrievalCandidate],
        weight: float,
    ) -> None:
        scores = self._keyword_index.scores_for(
            query.search_text, [c.chunk_id for c in candidates]
        )
        for candidate in candidates:
            keyword_score = scores.get(candidate.chunk_id, 0.0)
            candidate.keyword_score = keyword_score
            candidate.score = (1 - weight) * candidate.similarity_score + weight * keyword_score

    async def _fetch_enrichment(
        self,
        chunk_ids: Sequence[str],
        enrichment: dict[str, ChunkEnrichment],
    ) -> None:
        wanted = [cid for cid in chunk_ids if cid not in enrichment]
        if wanted:
            enrichment.update(await self._enrichment.get_enrichment(wanted))

    async def _expand(
        self,
        query: StructuredQuery,
        baseline: list[RetrievalCandidate],
        options: MultiHopOptions,
        enrichment: dict[str, ChunkEnrichment],
        result: RetrievalResult,
    ) -> list[RetrievalCandidate]:
        seen: dict[str, RetrievalCandidate] = {c.chunk_id: c for c in baseline}
        frontier = [c.chunk_id for c in baseline]
        discovered: list[RetrievalCandidate] = []

        for hop in range(1, options.max_hops + 1):
            if not frontier:
                break
            try:
                await self._fetch_enrichment(frontier, enrichment)
            except Exception as e:
                result.errors.append(f"Enrichment provider failed at hop {hop}: {e}")
                logger.warning(f"{__name__}:_expand - Stopping expansion at hop {hop}: {e}")
                break

            # Best parent per newly reached chunk
            parents: dict[str, RetrievalCandidate] = {}
            edges_followed = 0
            for parent_id in frontier:
                data = enrichment.get(parent_id)
                if data is None:
                    continue
                parent = seen[parent_id]
                for edge in data.relationships:
                    edges_followed += 1
                    target = edge.related_chunk_id
                    if target in seen:
                        continue
                    best = parents.get(target)
                    if best is None or parent.similarity_score > best.similarity_score:
                        parents[target] = parent

            records = await self._hydrate(list(parents), result.errors)
            level: list[str] = []
            for target, parent in parents.items():
                chunk = records.get(target)
                if chunk is None:
                    continue
                if query.patient_id and chunk.patient_id != query.patient_id:
                    continue
                candidate = RetrievalCandidate(
                    chunk=chunk,
                    similarity_score=parent.similarity_score,
                    score=parent.similarity_score - options.relationship_boost * hop,
                    hop_distance=hop,
                    relationship_path=[*parent.relationship_path, target],
                )
                seen[target] = candidate
                discovered.append(candidate)
                level.append(target)

            result.hop_stats.levels.append(
                HopLevelStats(hop=hop, new_chunks=len(level), edges_followed=edges_followed)
            )
            result.hop_stats.total_relationships_followed += edges_followed
            frontier = level

        return discovered

    async def _apply_enrichment(
        self,
        candidates: list[RetrievalCandidate],
        enrichment: dict[str, ChunkEnrichment],
        errors: list[str],
    ) -> None:
        try:
            await self._fetch_enrichment([c.chunk_id for c in candidates], enrichment)
        except Exception as e:
            errors.append(f"Enrichment provider failed: {e}")
            return

        weight = self._settings.enrichment_weight
        for candidate in candidates:
            data = enrichment.get(candidate.chunk_id)
            if data is None or data.enrichment_score is None:
                continue
            candidate.enrichment_score = data.enrichment_score
            candidate.enriched_text = data.enriched_text
            candidate.related_artifact_ids = list(data.related_artifact_ids)
            candidate.score += weight * data.enrichment_score

    def _enrichment_stats(self, candidates: list[RetrievalCandidate]) -> EnrichmentStats:
        scored = [c.enrichment_score for c in candidates if c.enrichment_score is not None]
        if not candidates or not scored:
            return EnrichmentStats()
        enriched = sum(1 for score in scored if score > self._settings.enriched_threshold)
        return EnrichmentStats(
            enriched_chunks=enriched,
            enriched_fraction=enriched / len(candidates),
            avg_enrichment_score=sum(scored) / len(scored),
        )
