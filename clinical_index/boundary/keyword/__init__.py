"""Keyword index boundary: BM25 over chunk text."""

from clinical_index.boundary.keyword.bm25_index import (
    BM25KeywordIndex,
    KeywordSearchResult,
    tokenize,
)

__all__ = ["BM25KeywordIndex", "KeywordSearchResult", "tokenize"]
