"""
Configuration management module.

Provides centralized, type-safe configuration using Pydantic Settings.
All config modules support environment variable mapping with validation.
"""

from clinical_index.configs.database import DatabaseSettings
from clinical_index.configs.indexing import IndexingSettings
from clinical_index.configs.retrieval import RetrievalSettings
from clinical_index.configs.settings import Settings, get_settings
from clinical_index.configs.vector_store import VectorStoreSettings

__all__ = [
    "DatabaseSettings",
    "IndexingSettings",
    "RetrievalSettings",
    "Settings",
    "VectorStoreSettings",
    "get_settings",
]
