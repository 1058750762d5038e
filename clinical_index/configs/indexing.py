"""
Configuration settings for the indexing pipeline.

Dependencies: pydantic, pydantic_settings
System role: Snapshot locations and pipeline toggles
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from clinical_index.configs.base import BaseSettings


class IndexingSettings(BaseSettings):
    """Settings for the chunk indexing pipeline."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INDEXING_",
        case_sensitive=False,
        extra="ignore",
    )

    cache_snapshot_path: Path = Field(
        default=Path("./data/index/metadata_cache.json"),
        description="JSON snapshot of the in-memory metadata cache",
    )
    keyword_index_path: Path = Field(
        default=Path("./data/index/keyword_index.json"),
        description="JSON snapshot of the BM25 keyword index",
    )
    enable_keyword_index: bool = Field(
        default=True,
        description="Build the BM25 keyword index alongside vectors",
    )
    progress_queue_size: int = Field(
        default=100,
        description="Capacity of queue-based progress observers",
        gt=0,
    )
