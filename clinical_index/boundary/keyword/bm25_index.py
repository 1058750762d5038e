"""
BM25 keyword index over chunk text.

Keeps tokenised documents keyed by chunk id and rebuilds the BM25Okapi
model lazily on the first search after a change. Scores are normalised to
0.0-1.0 against the best match so they blend with cosine similarities.

Dependencies: rank_bm25, pydantic
System role: Keyword Index Port for hybrid scoring
"""

import json
import logging
import re
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, Field
from rank_bm25 import BM25Okapi

from clinical_index.core.exceptions import CacheSnapshotError
from clinical_index.models.chunk import Chunk

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:[.'/-][a-z0-9]+)*")

STOP_WORDS: frozenset[str] = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
    "had", "has", "have", "he", "her", "his", "i", "if", "in", "into", "is",
    "it", "its", "of", "on", "or", "she", "so", "that", "the", "their", "then",
    "there", "these", "they", "this", "to", "was", "were", "which", "will",
    "with",
})


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-word characters, drop stop words."""
    return [t for t in _TOKEN_PATTERN.findall(text.lower()) if t not in STOP_WORDS]


class KeywordSearchResult(BaseModel):
    """Single result from keyword search."""

    chunk_id: str
    score: float = Field(description="BM25 score normalised to the best hit (0.0-1.0)")


class BM25KeywordIndex:
    """In-memory BM25 index with JSON persistence."""

    def __init__(self, snapshot_path: str | Path | None = None) -> None:
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._documents: dict[str, list[str]] = {}
        self._bm25: BM25Okapi | None = None
        self._corpus_ids: list[str] = []
        self._dirty = True

    @property
    def size(self) -> int:
        return len(self._documents)

    def contains(self, chunk_id: str) -> bool:
        return chunk_id in self._documents

    def add_documents(self, chunks: Sequence[Chunk]) -> int:
        """
        Add or replace documents for the given chunks.

        Returns:
            int: Number of documents written
        """
        for chunk in chunks:
            self._documents[chunk.chunk_id] = tokenize(chunk.text)
        if chunks:
            self._dirty = True
        logger.debug(f"{__name__}:add_documents - Indexed {len(chunks)} documents")
        return len(chunks)

    def remove(self, chunk_ids: Sequence[str]) -> int:
        removed = 0
        for chunk_id in chunk_ids:
            if self._documents.pop(chunk_id, None) is not None:
                removed += 1
        if removed:
            self._dirty = True
        return removed

    def clear(self) -> None:
        self._documents.clear()
        self._bm25 = None
        self._corpus_ids = []
        self._dirty = True

    def _ensure_model(self) -> BM25Okapi | None:
        if not self._dirty:
            return self._bm25

        self._corpus_ids = list(self._documents.keys())
        corpus = [self._documents[cid] for cid in self._corpus_ids]
        # BM25Okapi divides by corpus size and average length
        if not corpus or not any(corpus):
            self._bm25 = None
        else:
            self._bm25 = BM25Okapi(corpus)
        self._dirty = False
        return self._bm25

    def search(self, query: str, k: int = 10) -> list[KeywordSearchResult]:
        """
        Score every document against the query and return the best k.

        Args:
            query: Free-text query
            k: Maximum number of results

        Returns:
            list[KeywordSearchResult]: Positive-scoring matches, best first
        """
        model = self._ensure_model()
        query_tokens = tokenize(query)
        if model is None or not query_tokens or k <= 0:
            return []

        scores = model.get_scores(query_tokens)
        max_score = float(max(scores))
        if max_score <= 0:
            return []

        scored = [
            KeywordSearchResult(chunk_id=chunk_id, score=float(score) / max_score)
            for chunk_id, score in zip(self._corpus_ids, scores)
            if score > 0
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:k]

    def scores_for(self, query: str, chunk_ids: Sequence[str]) -> dict[str, float]:
        """Normalised scores restricted to ``chunk_ids``; missing ids score 0."""
        wanted = set(chunk_ids)
        hits = self.search(query, k=self.size)
        found = {hit.chunk_id: hit.score for hit in hits if hit.chunk_id in wanted}
        return {chunk_id: found.get(chunk_id, 0.0) for chunk_id in chunk_ids}

    def save(self, path: str | Path | None = None) -> Path:
        """Write the tokenised corpus as versioned JSON."""
        target = Path(path) if path else self._snapshot_path
        if target is None:
            raise ValueError("No snapshot path configured for keyword index")

        payload = {
            "version": SNAPSHOT_VERSION,
            "documents": [[chunk_id, tokens] for chunk_id, tokens in self._documents.items()],
        }
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        logger.info(f"{__name__}:save - Saved {self.size} documents to {target}")
        return target

    def load(self, path: str | Path | None = None) -> bool:
        """
        Replace the in-memory corpus with a saved snapshot.

        Returns:
            bool: False when no snapshot exists

        Raises:
            CacheSnapshotError: Snapshot is unreadable or has an unknown version
        """
        source = Path(path) if path else self._snapshot_path
        if source is None or not source.exists():
            return False

        try:
            with open(source, encoding="utf-8") as f:
                payload = json.load(f)
            version = payload.get("version")
            documents = {str(cid): list(tokens) for cid, tokens in payload["documents"]}
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise CacheSnapshotError(
                f"Unreadable keyword index snapshot: {e}", {"path": str(source)}
            ) from e

        if version != SNAPSHOT_VERSION:
            raise CacheSnapshotError(
                f"Unsupported keyword index snapshot version {version}",
                {"path": str(source)},
            )

        self._documents = documents
        self._dirty = True
        logger.info(f"{__name__}:load - Loaded {self.size} documents from {source}")
        return True
