"""
Shared test fixtures and configuration for entire test suite.

Provides: deterministic embeddings, in-memory SQLite sessions, and fully wired
pipeline/retriever instances on temp directories.
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clinical_index.boundary.db import models  # noqa: F401
from clinical_index.boundary.db.base import Base
from clinical_index.boundary.db.metadata_store import SQLMetadataStore
from clinical_index.boundary.embeddings.embedding_client import EmbeddingClient
from clinical_index.boundary.enrichment.providers import InMemoryEnrichmentProvider
from clinical_index.boundary.keyword.bm25_index import BM25KeywordIndex
from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.configs import IndexingSettings, RetrievalSettings
from clinical_index.core.indexing.pipeline import IndexingPipeline
from clinical_index.core.metadata_cache import MetadataCache
from clinical_index.core.retrieval.multi_hop_retriever import MultiHopRetriever
from tests.factories import DIMENSION, MappedEmbeddings


@pytest.fixture
def embeddings() -> MappedEmbeddings:
    """Provide deterministic embeddings; tests pin vectors via ``.vectors``."""
    return MappedEmbeddings()


@pytest.fixture
def embedding_client(embeddings: MappedEmbeddings) -> EmbeddingClient:
    return EmbeddingClient(embeddings, dimension=DIMENSION, timeout_seconds=5.0)


@pytest_asyncio.fixture
async def session_factory():
    """
    Create in-memory SQLite async database for testing.

    Yields:
        async_sessionmaker: Factory bound to a fresh database with all tables
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def metadata_store(session_factory) -> SQLMetadataStore:
    return SQLMetadataStore(session_factory)


@pytest.fixture
def indexing_settings(tmp_path: Path) -> IndexingSettings:
    return IndexingSettings(
        cache_snapshot_path=tmp_path / "metadata_cache.json",
        keyword_index_path=tmp_path / "keyword_index.json",
    )


@pytest.fixture
def vector_store(tmp_path: Path) -> FAISSVectorStore:
    return FAISSVectorStore(tmp_path / "index.faiss", dimension=DIMENSION)


@pytest.fixture
def keyword_index(indexing_settings: IndexingSettings) -> BM25KeywordIndex:
    return BM25KeywordIndex(indexing_settings.keyword_index_path)


@pytest.fixture
def cache() -> MetadataCache:
    return MetadataCache()


@pytest.fixture
def pipeline(
    embedding_client: EmbeddingClient,
    vector_store: FAISSVectorStore,
    metadata_store: SQLMetadataStore,
    cache: MetadataCache,
    keyword_index: BM25KeywordIndex,
    indexing_settings: IndexingSettings,
) -> IndexingPipeline:
    """Provide a pipeline wired to SQLite, FAISS and BM25 on temp paths."""
    return IndexingPipeline(
        embedding_client=embedding_client,
        vector_store=vector_store,
        metadata_store=metadata_store,
        cache=cache,
        keyword_index=keyword_index,
        settings=indexing_settings,
    )


@pytest.fixture
def enrichment_provider() -> InMemoryEnrichmentProvider:
    return InMemoryEnrichmentProvider()


@pytest.fixture
def retriever(
    embedding_client: EmbeddingClient,
    vector_store: FAISSVectorStore,
    cache: MetadataCache,
    metadata_store: SQLMetadataStore,
    enrichment_provider: InMemoryEnrichmentProvider,
    keyword_index: BM25KeywordIndex,
) -> MultiHopRetriever:
    """Provide a retriever sharing stores and cache with ``pipeline``."""
    return MultiHopRetriever(
        embedding_client=embedding_client,
        vector_store=vector_store,
        cache=cache,
        metadata_store=metadata_store,
        enrichment_provider=enrichment_provider,
        keyword_index=keyword_index,
        settings=RetrievalSettings(),
    )
