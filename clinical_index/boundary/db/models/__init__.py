"""ORM models registered with Base.metadata."""

from clinical_index.boundary.db.models.chunk_metadata_model import ChunkMetadataModel
from clinical_index.boundary.db.models.enrichment_model import (
    ChunkEnrichmentModel,
    ChunkRelationshipModel,
)

__all__ = ["ChunkEnrichmentModel", "ChunkMetadataModel", "ChunkRelationshipModel"]
