"""
Vector store configuration settings.

Manages the local FAISS index location and the embedding model
used to produce chunk and query vectors.

Dependencies: pydantic, pydantic_settings
System role: Vector index configuration for indexing and retrieval
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from clinical_index.configs.base import BaseSettings


class VectorStoreSettings(BaseSettings):
    """FAISS vector store and embedding model configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="VECTOR_STORE_",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path = Field(
        default=Path("./data/index"),
        description="Directory holding the FAISS index and its JSON sidecar",
    )
    index_name: str = Field(default="index", description="Base file name of the FAISS index")

    embedding_provider: str = Field(
        default="google",
        description="Embedding backend: 'google' for Gemini, 'fake' for deterministic local vectors",
    )
    embedding_model: str = Field(
        default="models/gemini-embedding-001",
        description="Google Gemini embedding model ID",
    )
    embedding_dimension: int = Field(
        default=768,
        description="Embedding vector dimension; fixed for the life of an index",
        gt=0,
    )
    embedding_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound on a single embedding call",
        gt=0,
    )

    @property
    def index_path(self) -> Path:
        """Path of the FAISS index file."""
        return self.data_dir / f"{self.index_name}.faiss"
