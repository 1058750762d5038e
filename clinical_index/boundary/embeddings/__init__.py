"""Embedding service boundary."""

from clinical_index.boundary.embeddings.embedding_client import (
    EmbeddingClient,
    FixedDimensionEmbeddings,
    create_embeddings,
)

__all__ = ["EmbeddingClient", "FixedDimensionEmbeddings", "create_embeddings"]
