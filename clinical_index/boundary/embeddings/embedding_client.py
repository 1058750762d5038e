"""
Embedding client for chunk and query vectors.

Wraps any LangChain ``Embeddings`` implementation behind a small async
contract with a per-call timeout and dimension enforcement. The blocking
``embed_documents``/``embed_query`` calls run in a worker thread so the event
loop stays free during model round-trips.

Dependencies: langchain_core, langchain_google_genai, python-dotenv
System role: Embedding service boundary used by indexing and retrieval
"""

import asyncio
import logging
from typing import Sequence

from dotenv import load_dotenv
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_google_genai import GoogleGenerativeAIEmbeddings

from clinical_index.configs.vector_store import VectorStoreSettings
from clinical_index.core.exceptions import DimensionMismatchError, EmbeddingError

logger = logging.getLogger(__name__)


class FixedDimensionEmbeddings(GoogleGenerativeAIEmbeddings):
    """
    GoogleGenerativeAIEmbeddings with a fixed output dimensionality.

    The base class ignores output_dimensionality in the constructor, so every
    embed call is forced to the configured dimension here.
    """

    _output_dimensionality: int = 768

    def __init__(
        self,
        model: str = "models/gemini-embedding-001",
        output_dimensionality: int = 768,
        **kwargs,
    ) -> None:
        super().__init__(model=model, **kwargs)
        self._output_dimensionality = output_dimensionality
        logger.info(
            f"{__name__}:__init__ - Initialized with model={model}, "
            f"output_dimensionality={output_dimensionality}"
        )

    def embed_documents(self, texts: list[str], **kwargs) -> list[list[float]]:
        kwargs.setdefault("output_dimensionality", self._output_dimensionality)
        return super().embed_documents(texts, **kwargs)

    def embed_query(self, text: str, **kwargs) -> list[float]:
        kwargs.setdefault("output_dimensionality", self._output_dimensionality)
        return super().embed_query(text, **kwargs)


def create_embeddings(settings: VectorStoreSettings) -> Embeddings:
    """
    Build the LangChain embeddings backend named in settings.

    Args:
        settings: Vector store settings (provider, model, dimension)

    Returns:
        Embeddings: Google Gemini embeddings, or deterministic fake vectors

    Raises:
        ValueError: Unknown provider
    """
    provider = settings.embedding_provider.lower()
    if provider == "fake":
        return DeterministicFakeEmbedding(size=settings.embedding_dimension)
    if provider == "google":
        load_dotenv()
        return FixedDimensionEmbeddings(
            model=settings.embedding_model,
            output_dimensionality=settings.embedding_dimension,
        )
    raise ValueError(f"Unknown embedding provider: {settings.embedding_provider}")


class EmbeddingClient:
    """Async, dimension-checked facade over a LangChain Embeddings object."""

    def __init__(
        self,
        embeddings: Embeddings,
        dimension: int,
        timeout_seconds: float = 30.0,
    ) -> None:
        """
        Args:
            embeddings: Backend producing the vectors
            dimension: Vector length every result must have
            timeout_seconds: Upper bound on a single backend call
        """
        self._embeddings = embeddings
        self._dimension = dimension
        self._timeout = timeout_seconds

    @property
    def dimension(self) -> int:
        return self._dimension

    def _check_dimension(self, vector: Sequence[float]) -> list[float]:
        if len(vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(vector))
        return [float(v) for v in vector]

    async def _call(self, func, arg, operation: str):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, arg), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(
                f"Embedding {operation} timed out after {self._timeout}s",
                {"operation": operation},
            ) from e
        except Exception as e:
            logger.exception(
                f"{__name__}:{operation} - Embedding backend failed",
                extra={"error": str(e)},
            )
            raise EmbeddingError(
                f"Embedding {operation} failed: {e}", {"operation": operation}
            ) from e

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed many texts in one backend call.

        Raises:
            EmbeddingError: Backend failure, timeout, or wrong vector count
            DimensionMismatchError: Any vector has the wrong length
        """
        if not texts:
            return []

        vectors = await self._call(self._embeddings.embed_documents, list(texts), "embed_batch")
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding backend returned {len(vectors)} vectors for {len(texts)} texts",
                {"expected": len(texts), "actual": len(vectors)},
            )
        return [self._check_dimension(v) for v in vectors]

    async def embed(self, text: str) -> list[float]:
        """Embed a single query text."""
        vector = await self._call(self._embeddings.embed_query, text, "embed")
        return self._check_dimension(vector)
