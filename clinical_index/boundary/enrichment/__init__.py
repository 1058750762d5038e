"""Enrichment boundary: relationship and enrichment providers."""

from clinical_index.boundary.enrichment.providers import (
    EnrichmentProvider,
    InMemoryEnrichmentProvider,
    SQLEnrichmentProvider,
    compute_enrichment_score,
)

__all__ = [
    "EnrichmentProvider",
    "InMemoryEnrichmentProvider",
    "SQLEnrichmentProvider",
    "compute_enrichment_score",
]
