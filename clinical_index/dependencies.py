"""
Dependency injection container.

Builds the stores, cache, pipeline and retriever once per process and hands
them out together. Every collaborator can be overridden, which is how tests
swap in SQLite sessions and deterministic embeddings.

Dependencies: clinical_index.configs, clinical_index.boundary, clinical_index.core
System role: DI container for service wiring
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from langchain_core.embeddings import Embeddings
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from clinical_index.boundary.db.connection import get_async_engine, get_async_session_factory
from clinical_index.boundary.db.metadata_store import SQLMetadataStore
from clinical_index.boundary.embeddings.embedding_client import EmbeddingClient, create_embeddings
from clinical_index.boundary.enrichment.providers import EnrichmentProvider, SQLEnrichmentProvider
from clinical_index.boundary.keyword.bm25_index import BM25KeywordIndex
from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.configs import Settings, get_settings
from clinical_index.core.indexing.pipeline import IndexingPipeline
from clinical_index.core.metadata_cache import MetadataCache
from clinical_index.core.retrieval.multi_hop_retriever import MultiHopRetriever
from clinical_index.observability import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide collaborators for indexing and retrieval."""

    settings: Settings
    embedding_client: EmbeddingClient
    vector_store: FAISSVectorStore
    metadata_store: SQLMetadataStore
    keyword_index: BM25KeywordIndex | None
    cache: MetadataCache
    enrichment_provider: EnrichmentProvider | None
    pipeline: IndexingPipeline
    retriever: MultiHopRetriever
    engine: AsyncEngine | None = None

    async def warm_start(self) -> None:
        """Create tables if needed and restore in-memory state."""
        await self.metadata_store.create_schema()
        await self.pipeline.warm_start()
        logger.info(
            f"{__name__}:warm_start - Ready",
            extra={"vectors": self.vector_store.size, "cached_chunks": len(self.cache)},
        )

    async def close(self) -> None:
        """Dispose the database engine when the container created it."""
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    embeddings: Embeddings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    enrichment_provider: EnrichmentProvider | None = None,
) -> ServiceContainer:
    """
    Wire every collaborator from settings.

    Args:
        settings: Application settings (defaults to get_settings())
        embeddings: LangChain embeddings backend (built from settings when None)
        session_factory: Metadata database sessions (built from settings when None)
        enrichment_provider: Relationship source (SQL-backed when None)

    Returns:
        ServiceContainer: Not yet warm-started
    """
    settings = settings or get_settings()
    vs_settings = settings.vector_store

    embedding_client = EmbeddingClient(
        embeddings or create_embeddings(vs_settings),
        dimension=vs_settings.embedding_dimension,
        timeout_seconds=vs_settings.embedding_timeout_seconds,
    )
    vector_store = FAISSVectorStore(vs_settings.index_path, dimension=vs_settings.embedding_dimension)

    engine = None
    if session_factory is None:
        engine = get_async_engine(settings.database)
        session_factory = get_async_session_factory(engine)
    metadata_store = SQLMetadataStore(session_factory)
    keyword_index = (
        BM25KeywordIndex(settings.indexing.keyword_index_path)
        if settings.indexing.enable_keyword_index
        else None
    )
    cache = MetadataCache()
    if enrichment_provider is None:
        enrichment_provider = SQLEnrichmentProvider(session_factory)

    pipeline = IndexingPipeline(
        embedding_client=embedding_client,
        vector_store=vector_store,
        metadata_store=metadata_store,
        cache=cache,
        keyword_index=keyword_index,
        settings=settings.indexing,
    )
    retriever = MultiHopRetriever(
        embedding_client=embedding_client,
        vector_store=vector_store,
        cache=cache,
        metadata_store=metadata_store,
        enrichment_provider=enrichment_provider,
        keyword_index=keyword_index,
        settings=settings.retrieval,
    )

    return ServiceContainer(
        settings=settings,
        embedding_client=embedding_client,
        vector_store=vector_store,
        metadata_store=metadata_store,
        keyword_index=keyword_index,
        cache=cache,
        enrichment_provider=enrichment_provider,
        pipeline=pipeline,
        retriever=retriever,
        engine=engine,
    )


@lru_cache
def get_services() -> ServiceContainer:
    """Get the process-wide service container built from application settings."""
    settings = get_settings()
    configure_logging(settings.log_level)
    return build_services(settings)
