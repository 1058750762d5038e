"""
FAISS vector store for chunk embeddings.

Exact inner-product search over L2-normalised vectors, so scores are cosine
similarities. Chunk ids are mapped to FAISS int64 ids through IndexIDMap2,
which also allows removing and replacing individual vectors.

Persistence is two files written together: ``<name>.faiss`` (the index) and
``<name>.metadata.json`` (dimension, id counter and id map).

Dependencies: faiss-cpu, numpy, pydantic
System role: Vector Store Port used by indexing and retrieval
"""

import json
import logging
from pathlib import Path
from typing import Sequence

import faiss
import numpy as np
from pydantic import ValidationError as PydanticValidationError

from clinical_index.boundary.vdb.vector_schemas import (
    SIDECAR_VERSION,
    VectorIndexSidecar,
    VectorSearchResult,
)
from clinical_index.core.exceptions import DimensionMismatchError, VectorStoreError

logger = logging.getLogger(__name__)


def normalize_vectors(vectors: np.ndarray) -> np.ndarray:
    """Return a row-wise unit-length copy; zero rows stay zero."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (vectors / norms).astype(np.float32)


class FAISSVectorStore:
    """
    Local FAISS vector store keyed by chunk id.

    Dimensionality is fixed by ``initialize`` (or by ``load``) and every later
    add or search with a different vector length raises DimensionMismatchError.
    """

    def __init__(self, index_path: str | Path, dimension: int | None = None) -> None:
        """
        Initialize the store.

        Args:
            index_path: Path of the ``.faiss`` file used by save/load
            dimension: Initialise an empty index immediately when given
        """
        self._index_path = Path(index_path)
        self._index: faiss.IndexIDMap2 | None = None
        self._dimension: int | None = None
        self._id_map: dict[str, int] = {}
        self._reverse_map: dict[int, str] = {}
        self._next_id = 0

        if dimension is not None:
            self.initialize(dimension)

    @property
    def sidecar_path(self) -> Path:
        return self._index_path.with_suffix(".metadata.json")

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @property
    def is_initialized(self) -> bool:
        return self._index is not None

    @property
    def size(self) -> int:
        """Number of vectors currently stored."""
        return 0 if self._index is None else int(self._index.ntotal)

    def contains(self, chunk_id: str) -> bool:
        return chunk_id in self._id_map

    def initialize(self, dimension: int) -> None:
        """
        Create an empty index with a fixed dimension.

        Args:
            dimension: Vector length accepted by this index

        Raises:
            ValueError: When dimension is not positive
        """
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")

        self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self._dimension = dimension
        self._id_map = {}
        self._reverse_map = {}
        self._next_id = 0
        logger.info(f"{__name__}:initialize - Created IndexFlatIP with dimension={dimension}")

    def _require_index(self, operation: str) -> faiss.IndexIDMap2:
        if self._index is None:
            raise VectorStoreError("Vector store is not initialized", operation=operation)
        return self._index

    def _to_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        for vector in vectors:
            if len(vector) != self._dimension:
                raise DimensionMismatchError(self._dimension or 0, len(vector))
        matrix = np.asarray(vectors, dtype=np.float32).reshape(len(vectors), self._dimension)
        return normalize_vectors(matrix)

    def add(self, vectors: Sequence[Sequence[float]], chunk_ids: Sequence[str]) -> int:
        """
        Add vectors for chunk ids, replacing any vector already stored for an id.

        Args:
            vectors: One embedding per chunk id
            chunk_ids: External chunk identifiers

        Returns:
            int: Number of vectors written

        Raises:
            VectorStoreError: Store not initialised or vectors/ids length differ
            DimensionMismatchError: Any vector has the wrong length
        """
        index = self._require_index("add")
        if len(vectors) != len(chunk_ids):
            raise VectorStoreError(
                f"Got {len(vectors)} vectors for {len(chunk_ids)} ids",
                operation="add",
            )
        if not chunk_ids:
            return 0

        # Last occurrence wins for ids repeated within the batch
        latest: dict[str, int] = {}
        for position, chunk_id in enumerate(chunk_ids):
            latest[chunk_id] = position
        positions = list(latest.values())
        matrix = self._to_matrix([vectors[p] for p in positions])

        replaced = [cid for cid in latest if cid in self._id_map]
        if replaced:
            self.remove(replaced)

        internal_ids = np.arange(self._next_id, self._next_id + len(positions), dtype=np.int64)
        index.add_with_ids(matrix, internal_ids)

        for chunk_id, internal_id in zip(latest.keys(), internal_ids.tolist()):
            self._id_map[chunk_id] = internal_id
            self._reverse_map[internal_id] = chunk_id
        self._next_id += len(positions)

        logger.info(
            f"{__name__}:add - Added {len(positions)} vectors",
            extra={"replaced": len(replaced), "total": self.size},
        )
        return len(positions)

    def remove(self, chunk_ids: Sequence[str]) -> int:
        """
        Remove vectors for chunk ids; unknown ids are ignored.

        Returns:
            int: Number of vectors removed
        """
        if self._index is None:
            return 0
        internal_ids = [self._id_map[cid] for cid in chunk_ids if cid in self._id_map]
        if not internal_ids:
            return 0

        removed = int(self._index.remove_ids(np.asarray(internal_ids, dtype=np.int64)))
        for internal_id in internal_ids:
            chunk_id = self._reverse_map.pop(internal_id, None)
            if chunk_id is not None:
                self._id_map.pop(chunk_id, None)
        logger.debug(f"{__name__}:remove - Removed {removed} vectors")
        return removed

    def search(self, vector: Sequence[float], k: int = 10) -> list[VectorSearchResult]:
        """
        Return the k nearest chunks by cosine similarity, best first.

        Args:
            vector: Query embedding
            k: Number of results requested

        Returns:
            list[VectorSearchResult]: At most min(k, size) results

        Raises:
            DimensionMismatchError: Query vector has the wrong length
        """
        if self._index is None or self.size == 0 or k <= 0:
            return []

        query = self._to_matrix([vector])
        k = min(k, self.size)
        scores, ids = self._index.search(query, k)

        results = []
        for score, internal_id in zip(scores[0].tolist(), ids[0].tolist()):
            if internal_id == -1:
                continue
            chunk_id = self._reverse_map.get(internal_id)
            if chunk_id is None:
                continue
            results.append(VectorSearchResult(chunk_id=chunk_id, score=float(score)))
        return results

    def clear(self) -> None:
        """Drop all vectors, keeping the configured dimension."""
        if self._dimension is not None:
            self.initialize(self._dimension)

    def save(self, path: str | Path | None = None) -> Path:
        """
        Persist the index and its sidecar.

        Args:
            path: Target ``.faiss`` path (defaults to the configured path)

        Returns:
            Path: Index file written

        Raises:
            VectorStoreError: Store not initialised or write failed
        """
        index = self._require_index("save")
        index_path = Path(path) if path else self._index_path
        sidecar_path = index_path.with_suffix(".metadata.json")

        sidecar = VectorIndexSidecar(
            dimension=self._dimension,
            next_id=self._next_id,
            id_map=sorted(self._id_map.items(), key=lambda item: item[1]),
        )
        try:
            index_path.parent.mkdir(parents=True, exist_ok=True)
            faiss.write_index(index, str(index_path))
            with open(sidecar_path, "w", encoding="utf-8") as f:
                json.dump(sidecar.model_dump(), f, indent=2, ensure_ascii=False)
        except (OSError, RuntimeError) as e:
            raise VectorStoreError(
                f"Failed to save vector index: {e}",
                operation="save",
                details={"path": str(index_path)},
            ) from e

        logger.info(f"{__name__}:save - Saved {self.size} vectors to {index_path}")
        return index_path

    def load(
        self,
        path: str | Path | None = None,
        expected_dimension: int | None = None,
    ) -> bool:
        """
        Load a previously saved index and sidecar.

        Args:
            path: Source ``.faiss`` path (defaults to the configured path)
            expected_dimension: Reject the snapshot unless it has this dimension

        Returns:
            bool: False when no snapshot exists, True when loaded

        Raises:
            DimensionMismatchError: Snapshot dimension differs from expected
            VectorStoreError: Snapshot is unreadable or inconsistent
        """
        index_path = Path(path) if path else self._index_path
        sidecar_path = index_path.with_suffix(".metadata.json")
        if not index_path.exists() or not sidecar_path.exists():
            logger.info(f"{__name__}:load - No snapshot at {index_path}")
            return False

        try:
            with open(sidecar_path, encoding="utf-8") as f:
                sidecar = VectorIndexSidecar.model_validate(json.load(f))
            index = faiss.read_index(str(index_path))
        except (OSError, RuntimeError, json.JSONDecodeError, PydanticValidationError) as e:
            raise VectorStoreError(
                f"Failed to load vector index: {e}",
                operation="load",
                details={"path": str(index_path)},
            ) from e

        if sidecar.version != SIDECAR_VERSION:
            raise VectorStoreError(
                f"Unsupported sidecar version {sidecar.version}",
                operation="load",
            )
        if index.d != sidecar.dimension:
            raise DimensionMismatchError(sidecar.dimension, index.d)
        if expected_dimension is not None and sidecar.dimension != expected_dimension:
            raise DimensionMismatchError(expected_dimension, sidecar.dimension)
        if index.ntotal != len(sidecar.id_map):
            raise VectorStoreError(
                f"Index holds {index.ntotal} vectors but sidecar maps {len(sidecar.id_map)}",
                operation="load",
            )

        self._index = index
        self._dimension = sidecar.dimension
        self._next_id = sidecar.next_id
        self._id_map = {chunk_id: internal_id for chunk_id, internal_id in sidecar.id_map}
        self._reverse_map = {internal_id: chunk_id for chunk_id, internal_id in sidecar.id_map}

        logger.info(
            f"{__name__}:load - Loaded {self.size} vectors (dimension={self._dimension})"
        )
        return True
