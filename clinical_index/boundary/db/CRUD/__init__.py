from clinical_index.boundary.db.CRUD.base_crud import BaseCRUD
from clinical_index.boundary.db.CRUD.chunk_metadata_crud import (
    ChunkMetadataCRUD,
    chunk_metadata_crud,
)
from clinical_index.boundary.db.CRUD.enrichment_crud import (
    ChunkEnrichmentCRUD,
    ChunkRelationshipCRUD,
    chunk_enrichment_crud,
    chunk_relationship_crud,
)

__all__ = [
    "BaseCRUD",
    "ChunkEnrichmentCRUD",
    "ChunkMetadataCRUD",
    "ChunkRelationshipCRUD",
    "chunk_enrichment_crud",
    "chunk_metadata_crud",
    "chunk_relationship_crud",
]
