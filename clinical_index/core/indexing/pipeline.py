"""
Chunk indexing pipeline orchestrator.

Runs a batch of chunks through validation, embedding, the vector store, the
metadata store, the keyword index and the metadata cache, then persists the
on-disk snapshots. A failing stage is recorded in the result and the run
continues wherever the remaining stages still make sense; ``index`` and
``reindex_artifact`` never raise.

Dependencies: clinical_index.boundary, clinical_index.core.metadata_cache
System role: Pipeline orchestration (coordinates only)
"""

import logging
import time
from typing import Iterable, Sequence

from clinical_index.boundary.db.metadata_store import SQLMetadataStore
from clinical_index.boundary.embeddings.embedding_client import EmbeddingClient
from clinical_index.boundary.keyword.bm25_index import BM25KeywordIndex
from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.configs.indexing import IndexingSettings
from clinical_index.core.exceptions import CacheSnapshotError, NotFoundError
from clinical_index.core.indexing.progress import ProgressReporter, ProgressSink
from clinical_index.core.metadata_cache import MetadataCache
from clinical_index.models.chunk import Chunk, MetadataFilter
from clinical_index.models.indexing import (
    IndexingError,
    IndexingResult,
    IndexingStage,
    IndexStats,
)
from clinical_index.observability.log_utils import (
    log_exception_with_context,
    log_with_context,
)

logger = logging.getLogger(__name__)

# Stage sentinels used as IndexingError.item_id
EMBEDDING = "embedding"
VECTOR_STORE = "vector_store"
METADATA_STORE = "metadata_store"
KEYWORD_INDEX = "keyword_index"
VECTOR_STORE_SAVE = "vector_store_save"
KEYWORD_INDEX_SAVE = "keyword_index_save"
METADATA_CACHE_SAVE = "metadata_cache_save"
PIPELINE = "pipeline"


class IndexingPipeline:
    """Orchestrate chunk indexing: validate -> embed -> stores -> cache -> persist."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: FAISSVectorStore,
        metadata_store: SQLMetadataStore,
        cache: MetadataCache,
        keyword_index: BM25KeywordIndex | None = None,
        settings: IndexingSettings | None = None,
        observers: Iterable[ProgressSink] = (),
    ) -> None:
        """
        Initialize pipeline with its collaborators.

        Args:
            embedding_client: Produces one vector per chunk text
            vector_store: Receives vectors keyed by chunk id
            metadata_store: Durable chunk records
            cache: In-memory secondary indices, updated after metadata writes
            keyword_index: Optional BM25 index for hybrid retrieval
            settings: Snapshot paths (uses defaults if None)
            observers: Progress observers notified on every run
        """
        self._embedder = embedding_client
        self._vector_store = vector_store
        self._metadata_store = metadata_store
        self._cache = cache
        self._keyword_index = keyword_index
        self._settings = settings or IndexingSettings()
        self._observers = list(observers)

    @property
    def cache(self) -> MetadataCache:
        return self._cache

    def _error(
        self,
        errors: list[IndexingError],
        item_id: str,
        kind: str,
        exc: BaseException | str,
    ) -> None:
        message = exc if isinstance(exc, str) else f"{type(exc).__name__}: {exc}"
        errors.append(IndexingError(item_id=item_id, kind=kind, error=message))
        if isinstance(exc, BaseException):
            log_exception_with_context(
                logger, f"{__name__} - Stage {item_id} failed", exc, item_id=item_id, kind=kind
            )
        else:
            log_with_context(logger, logging.WARNING, f"{__name__} - {message}", item_id=item_id)

    def _validate(self, chunks: Sequence[Chunk], errors: list[IndexingError]) -> list[Chunk]:
        """Drop empty-text chunks and ids repeated within the batch."""
        valid: list[Chunk] = []
        seen: set[str] = set()
        for chunk in chunks:
            if not chunk.text or not chunk.text.strip():
                self._error(errors, chunk.chunk_id, "validation", "Chunk text is empty")
                continue
            if chunk.chunk_id in seen:
                logger.warning(
                    f"{__name__}:_validate - Duplicate chunk id in batch, keeping first",
                    extra={"chunk_id": chunk.chunk_id},
                )
                continue
            seen.add(chunk.chunk_id)
            valid.append(chunk)
        return valid

    async def _prefer_stored(self, chunks: list[Chunk]) -> list[Chunk]:
        """
        Swap in the stored record for ids the metadata store already holds.

        Metadata inserts ignore existing ids, so every derived store is fed
        the stored version to stay reconstructable from the metadata store.
        """
        stored = {
            chunk.chunk_id: chunk
            for chunk in await self._metadata_store.get_by_ids([c.chunk_id for c in chunks])
        }
        if not stored:
            return chunks

        changed = [
            c.chunk_id for c in chunks if c.chunk_id in stored and stored[c.chunk_id] != c
        ]
        if changed:
            log_with_context(
                logger,
                logging.WARNING,
                f"{__name__}:_prefer_stored - Keeping stored version of already indexed chunks",
                chunk_ids=changed,
            )
        return [stored.get(chunk.chunk_id, chunk) for chunk in chunks]

    async def _persist(self, errors: list[IndexingError]) -> None:
        try:
            if self._vector_store.is_initialized:
                self._vector_store.save()
        except Exception as e:
            self._error(errors, VECTOR_STORE_SAVE, "persist", e)

        if self._keyword_index is not None:
            try:
                self._keyword_index.save(self._settings.keyword_index_path)
            except Exception as e:
                self._error(errors, KEYWORD_INDEX_SAVE, "persist", e)

        try:
            self._cache.save(self._settings.cache_snapshot_path)
        except Exception as e:
            self._error(errors, METADATA_CACHE_SAVE, "persist", e)

    async def index(
        self,
        chunks: Sequence[Chunk],
        on_progress: ProgressSink | None = None,
    ) -> IndexingResult:
        """
        Index a batch of chunks.

        Args:
            chunks: Chunks to index; an id the metadata store already holds
                is indexed from its stored record everywhere
            on_progress: Optional observer for this call only

        Returns:
            IndexingResult: success is True only when no error was collected
        """
        start_time = time.perf_counter()
        errors: list[IndexingError] = []
        reporter = ProgressReporter([*self._observers, on_progress])
        embeddings_generated = 0
        chunks_indexed = 0

        try:
            embeddings_generated, chunks_indexed = await self._run(chunks, reporter, errors)
        except Exception as e:
            self._error(errors, PIPELINE, "pipeline", e)
            reporter.emit(IndexingStage.COMPLETE, 0, len(chunks), error=str(e))

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        result = IndexingResult(
            success=not errors,
            chunks_indexed=chunks_indexed,
            embeddings_generated=embeddings_generated,
            errors=errors,
            duration_ms=elapsed_ms,
        )
        logger.info(
            f"{__name__}:index - Indexed {chunks_indexed}/{len(chunks)} chunks",
            extra={"success": result.success, "errors": len(errors), "duration_ms": round(elapsed_ms, 1)},
        )
        return result

    async def _run(
        self,
        chunks: Sequence[Chunk],
        reporter: ProgressReporter,
        errors: list[IndexingError],
    ) -> tuple[int, int]:
        total = len(chunks)

        reporter.emit(IndexingStage.VALIDATING, 0, total)
        valid = self._validate(chunks, errors)
        if not valid:
            self._error(errors, PIPELINE, "validation", "No valid chunks to index")
            reporter.emit(IndexingStage.COMPLETE, 0, total, error="No valid chunks to index")
            return 0, 0

        try:
            valid = await self._prefer_stored(valid)
        except Exception as e:
            self._error(errors, METADATA_STORE, "store", e)
            reporter.emit(IndexingStage.COMPLETE, 0, len(valid), error=str(e))
            return 0, 0

        reporter.emit(IndexingStage.EMBEDDING, 0, len(valid))
        try:
            vectors = await self._embedder.embed_batch([chunk.text for chunk in valid])
        except Exception as e:
            self._error(errors, EMBEDDING, "embedding", e)
            reporter.emit(IndexingStage.COMPLETE, 0, len(valid), error=str(e))
            return 0, 0

        chunk_ids = [chunk.chunk_id for chunk in valid]

        reporter.emit(IndexingStage.STORING_VECTORS, 0, len(valid))
        vectors_ok = True
        try:
            self._vector_store.add(vectors, chunk_ids)
        except Exception as e:
            vectors_ok = False
            self._error(errors, VECTOR_STORE, "store", e)

        reporter.emit(IndexingStage.STORING_METADATA, 0, len(valid))
        metadata_ok = True
        try:
            await self._metadata_store.insert_batch(valid)
        except Exception as e:
            metadata_ok = False
            self._error(errors, METADATA_STORE, "store", e)

        if self._keyword_index is not None:
            reporter.emit(IndexingStage.INDEXING_KEYWORDS, 0, len(valid))
            try:
                self._keyword_index.add_documents(valid)
            except Exception as e:
                self._error(errors, KEYWORD_INDEX, "store", e)

        # The cache must never reference ids the metadata store lacks
        if metadata_ok:
            reporter.emit(IndexingStage.UPDATING_CACHE, 0, len(valid))
            self._cache.add(valid)

        reporter.emit(IndexingStage.PERSISTING, len(valid), len(valid))
        await self._persist(errors)

        chunks_indexed = len(valid) if vectors_ok and metadata_ok else 0
        reporter.emit(
            IndexingStage.COMPLETE,
            chunks_indexed,
            total,
            error=errors[-1].error if errors else None,
        )
        return len(vectors), chunks_indexed

    async def _remove_everywhere(self, chunk_ids: Sequence[str]) -> int:
        """Delete from the metadata store first, then from the derived indices."""
        deleted = await self._metadata_store.delete_by_ids(chunk_ids)
        self._cache.remove_many(chunk_ids)
        self._vector_store.remove(chunk_ids)
        if self._keyword_index is not None:
            self._keyword_index.remove(chunk_ids)
        return deleted

    async def reindex_artifact(
        self,
        artifact_id: str,
        chunks: Sequence[Chunk] | None = None,
        on_progress: ProgressSink | None = None,
    ) -> IndexingResult:
        """
        Replace every chunk of an artifact.

        Existing chunks are removed from all stores, then ``chunks`` are
        indexed; when ``chunks`` is None the stored records are re-embedded
        and indexed again.
        Replacement chunks of another artifact are rejected as validation
        errors before anything is removed.

        Args:
            artifact_id: Artifact whose chunks are replaced
            chunks: Replacement chunks (None re-indexes the stored ones)
            on_progress: Optional observer for the indexing run

        Returns:
            IndexingResult: A not_found error when the artifact is unknown
        """
        start_time = time.perf_counter()
        errors: list[IndexingError] = []

        chunk_ids = self._cache.chunk_ids_for_artifact(artifact_id)
        if not chunk_ids:
            error = NotFoundError("artifact", artifact_id)
            errors.append(IndexingError(item_id=artifact_id, kind="not_found", error=error.message))
            logger.warning(f"{__name__}:reindex_artifact - {error.message}")
            return IndexingResult(
                success=False,
                errors=errors,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        foreign = [c for c in chunks or () if c.artifact_id != artifact_id]
        if foreign:
            for chunk in foreign:
                self._error(
                    errors,
                    chunk.chunk_id,
                    "validation",
                    f"Chunk belongs to artifact {chunk.artifact_id}, not {artifact_id}",
                )
            return IndexingResult(
                success=False,
                errors=errors,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        try:
            existing = await self._metadata_store.get_by_ids(chunk_ids)
            await self._remove_everywhere(chunk_ids)
        except Exception as e:
            self._error(errors, METADATA_STORE, "store", e)
            return IndexingResult(
                success=False,
                errors=errors,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        replacement = list(chunks) if chunks is not None else existing
        logger.info(
            f"{__name__}:reindex_artifact - Removed {len(chunk_ids)} chunks, indexing {len(replacement)}",
            extra={"artifact_id": artifact_id},
        )

        if not replacement:
            await self._persist(errors)
            return IndexingResult(
                success=not errors,
                errors=errors,
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        result = await self.index(replacement, on_progress=on_progress)
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result

    async def delete_chunks(self, chunk_ids: Sequence[str]) -> int:
        """
        Remove chunks from every store and the cache, then persist.

        Returns:
            int: Rows deleted from the metadata store

        Raises:
            StoreWriteError: Metadata store delete failed (nothing else is touched)
        """
        ids = list(dict.fromkeys(chunk_ids))
        if not ids:
            return 0
        deleted = await self._remove_everywhere(ids)
        await self._persist([])
        return deleted

    async def delete_artifact(self, artifact_id: str) -> int:
        """
        Remove every chunk of an artifact.

        Raises:
            NotFoundError: No chunks are stored for the artifact
        """
        ids = set(self._cache.chunk_ids_for_artifact(artifact_id))
        ids.update(await self._metadata_store.filter(MetadataFilter(artifact_id=artifact_id)))
        if not ids:
            raise NotFoundError("artifact", artifact_id)
        return await self.delete_chunks(sorted(ids))

    async def get_index_stats(self) -> IndexStats:
        """Counts from the metadata store (authoritative) and the cache."""
        return IndexStats(
            total_chunks=await self._metadata_store.count(),
            total_vectors=self._vector_store.size,
            keyword_documents=self._keyword_index.size if self._keyword_index else 0,
            patients=self._cache.patient_count,
            artifacts=self._cache.artifact_count,
            artifact_types=self._cache.artifact_types,
            date_range=self._cache.date_range(),
        )

    async def clear_index(self) -> None:
        """Empty the vector store, keyword index and cache; the metadata store is kept."""
        self._vector_store.clear()
        if self._keyword_index is not None:
            self._keyword_index.clear()
        self._cache.clear()
        await self._persist([])
        logger.info(f"{__name__}:clear_index - Cleared vector store, keyword index and cache")

    async def warm_start(self) -> None:
        """
        Restore in-memory state from disk, falling back to the metadata store.

        The vector snapshot must match the embedding dimension. A missing or
        unreadable cache or keyword snapshot is rebuilt from stored chunks.

        Raises:
            DimensionMismatchError: Vector snapshot has a different dimension
            VectorStoreError: Vector snapshot is unreadable
        """
        if not self._vector_store.load(expected_dimension=self._embedder.dimension):
            if not self._vector_store.is_initialized:
                self._vector_store.initialize(self._embedder.dimension)

        try:
            cache_loaded = self._cache.load(self._settings.cache_snapshot_path)
        except CacheSnapshotError as e:
            logger.warning(f"{__name__}:warm_start - Discarding cache snapshot: {e}")
            cache_loaded = False

        keyword_loaded = True
        if self._keyword_index is not None:
            try:
                keyword_loaded = self._keyword_index.load(self._settings.keyword_index_path)
            except CacheSnapshotError as e:
                logger.warning(f"{__name__}:warm_start - Discarding keyword snapshot: {e}")
                keyword_loaded = False

        if cache_loaded and keyword_loaded:
            return

        stored = await self._metadata_store.get_all()
        if not cache_loaded:
            self._cache.rebuild(stored)
        if not keyword_loaded and self._keyword_index is not None:
            self._keyword_index.clear()
            self._keyword_index.add_documents(stored)
        logger.info(
            f"{__name__}:warm_start - Rebuilt from metadata store",
            extra={"chunks": len(stored), "cache": not cache_loaded, "keyword": not keyword_loaded},
        )
