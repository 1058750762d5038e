"""Multi-hop retrieval over the clinical index."""

from clinical_index.core.retrieval.multi_hop_retriever import MultiHopRetriever

__all__ = ["MultiHopRetriever"]
