"""Vector store boundary: FAISS index keyed by chunk id."""

from clinical_index.boundary.vdb.faiss_vector_store import FAISSVectorStore
from clinical_index.boundary.vdb.vector_schemas import VectorIndexSidecar, VectorSearchResult

__all__ = ["FAISSVectorStore", "VectorIndexSidecar", "VectorSearchResult"]
