"""
Configuration settings for multi-hop retrieval.

Dependencies: pydantic, pydantic_settings
System role: Scoring constants and defaults for the retriever
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from clinical_index.configs.base import BaseSettings


class RetrievalSettings(BaseSettings):
    """Retriever defaults and scoring weights."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RETRIEVAL_",
        case_sensitive=False,
        extra="ignore",
    )

    top_k: int = Field(default=10, description="Default number of candidates returned", ge=1)
    max_hops: int = Field(default=1, description="Default relationship expansion depth", ge=0, le=2)
    relationship_boost: float = Field(
        default=0.3,
        description="Score penalty per hop applied to expanded chunks",
        ge=0.0,
    )
    enrichment_weight: float = Field(
        default=0.2,
        description="Weight of the enrichment score added to the blended score",
        ge=0.0,
    )
    keyword_weight: float = Field(
        default=0.0,
        description="Weight of the normalised BM25 score in hybrid scoring (0 disables)",
        ge=0.0,
        le=1.0,
    )
    enriched_threshold: float = Field(
        default=0.4,
        description="Enrichment score above which a candidate counts as enriched",
        ge=0.0,
        le=1.0,
    )
