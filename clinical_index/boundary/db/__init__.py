"""
Database boundary module.

Exports ORM base, connection factories and the SQL metadata store.
"""

from clinical_index.boundary.db.base import Base
from clinical_index.boundary.db.connection import get_async_engine, get_async_session_factory
from clinical_index.boundary.db.metadata_store import SQLMetadataStore

__all__ = ["Base", "SQLMetadataStore", "get_async_engine", "get_async_session_factory"]
