"""
In-memory metadata cache with four secondary indices.

Maps patient id, artifact id, artifact type and calendar day to sets of
chunk ids, next to a chunk id to record map for point lookups. The cache is
derived from the metadata store: it can always be rebuilt from it, and a JSON
snapshot is only a warm-start shortcut.

Every id is present in all four indices or in none. Removing the last id
under a key deletes the key.

Dependencies: pydantic
System role: Fast filtering and hydration for indexing and retrieval
"""

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Iterable, Sequence

from pydantic import ValidationError as PydanticValidationError

from clinical_index.core.exceptions import CacheSnapshotError
from clinical_index.models.chunk import Chunk, MetadataFilter
from clinical_index.models.indexing import DateRange

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_INDEX_NAMES = ("patient_index", "artifact_index", "type_index", "day_index")


def _index_add(index: dict[str, set[str]], key: str, chunk_id: str) -> None:
    index.setdefault(key, set()).add(chunk_id)


def _index_discard(index: dict[str, set[str]], key: str, chunk_id: str) -> None:
    ids = index.get(key)
    if ids is None:
        return
    ids.discard(chunk_id)
    if not ids:
        del index[key]


class MetadataCache:
    """Four coordinated secondary indices over cached chunk records."""

    def __init__(self) -> None:
        self._chunks: dict[str, Chunk] = {}
        self._patient_index: dict[str, set[str]] = {}
        self._artifact_index: dict[str, set[str]] = {}
        self._type_index: dict[str, set[str]] = {}
        self._day_index: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks

    def _indices_for(self, chunk: Chunk) -> Iterable[tuple[dict[str, set[str]], str]]:
        return (
            (self._patient_index, chunk.patient_id),
            (self._artifact_index, chunk.artifact_id),
            (self._type_index, chunk.artifact_type),
            (self._day_index, chunk.day),
        )

    def add(self, chunks: Iterable[Chunk]) -> int:
        """
        Insert chunks into the record map and all four indices.

        A chunk id already cached is removed first, so re-adding replaces.

        Returns:
            int: Number of chunks added
        """
        added = 0
        for chunk in chunks:
            if chunk.chunk_id in self._chunks:
                self.remove(chunk.chunk_id)
            self._chunks[chunk.chunk_id] = chunk
            for index, key in self._indices_for(chunk):
                _index_add(index, key, chunk.chunk_id)
            added += 1
        return added

    def remove(self, chunk_id: str) -> bool:
        """Remove one chunk from every index; False when it was not cached."""
        chunk = self._chunks.pop(chunk_id, None)
        if chunk is None:
            return False
        for index, key in self._indices_for(chunk):
            _index_discard(index, key, chunk_id)
        return True

    def remove_many(self, chunk_ids: Iterable[str]) -> int:
        return sum(1 for chunk_id in chunk_ids if self.remove(chunk_id))

    def clear(self) -> None:
        self._chunks.clear()
        for name in _INDEX_NAMES:
            getattr(self, f"_{name}").clear()

    def rebuild(self, chunks: Iterable[Chunk]) -> int:
        """Replace the whole cache with ``chunks``."""
        self.clear()
        count = self.add(chunks)
        logger.info(f"{__name__}:rebuild - Rebuilt cache with {count} chunks")
        return count

    def get(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    def get_many(self, chunk_ids: Sequence[str]) -> list[Chunk]:
        """Cached chunks in the requested order; uncached ids are skipped."""
        return [self._chunks[cid] for cid in chunk_ids if cid in self._chunks]

    def _ordered(self, chunk_ids: Iterable[str]) -> list[str]:
        # Two stable sorts: chunk_id ascending within occurred_at descending
        ordered = sorted(chunk_ids)
        ordered.sort(key=lambda cid: self._chunks[cid].occurred_at, reverse=True)
        return ordered

    def chunk_ids_for_artifact(self, artifact_id: str) -> list[str]:
        return self._ordered(self._artifact_index.get(artifact_id, ()))

    def _days_between(self, date_from: date | None, date_to: date | None) -> set[str]:
        low = date_from.isoformat() if date_from else None
        high = date_to.isoformat() if date_to else None
        ids: set[str] = set()
        for day_key, day_ids in self._day_index.items():
            if low is not None and day_key < low:
                continue
            if high is not None and day_key > high:
                continue
            ids |= day_ids
        return ids

    def filter(
        self,
        criteria: MetadataFilter | None = None,
        *,
        patient_id: str | None = None,
        artifact_id: str | None = None,
        artifact_type: str | None = None,
        day: date | str | None = None,
    ) -> list[str]:
        """
        Chunk ids matching every given criterion.

        Each criterion is resolved to an id set independently and the sets
        are intersected. An empty set for any criterion short-circuits to an
        empty result. With no criteria every cached id is returned. Results
        are ordered by occurred_at descending, then chunk_id.

        Args:
            criteria: Full filter; keyword shortcuts are used when omitted
            patient_id: Restrict to one patient
            artifact_id: Restrict to one artifact
            artifact_type: Restrict to one artifact type
            day: Restrict to one calendar day (date or YYYY-MM-DD)
        """
        if criteria is None:
            criteria = MetadataFilter(
                patient_id=patient_id,
                artifact_id=artifact_id,
                artifact_types=[artifact_type] if artifact_type else None,
                day=day,
            )

        candidate_sets: list[set[str]] = []
        if criteria.patient_id:
            candidate_sets.append(self._patient_index.get(criteria.patient_id, set()))
        if criteria.artifact_id:
            candidate_sets.append(self._artifact_index.get(criteria.artifact_id, set()))
        if criteria.artifact_types:
            types: set[str] = set()
            for artifact_type_key in criteria.artifact_types:
                types |= self._type_index.get(artifact_type_key, set())
            candidate_sets.append(types)
        if criteria.day:
            candidate_sets.append(self._day_index.get(criteria.day.isoformat(), set()))
        if criteria.date_from or criteria.date_to:
            candidate_sets.append(self._days_between(criteria.date_from, criteria.date_to))

        if not candidate_sets:
            matched: set[str] = set(self._chunks)
        elif any(not ids for ids in candidate_sets):
            return []
        else:
            candidate_sets.sort(key=len)
            matched = set(candidate_sets[0])
            for ids in candidate_sets[1:]:
                matched &= ids
                if not matched:
                    return []

        ordered = self._ordered(matched)
        end = None if criteria.limit is None else criteria.offset + criteria.limit
        return ordered[criteria.offset : end]

    @property
    def patient_count(self) -> int:
        return len(self._patient_index)

    @property
    def artifact_count(self) -> int:
        return len(self._artifact_index)

    @property
    def artifact_types(self) -> list[str]:
        return sorted(self._type_index)

    def has_patient(self, patient_id: str) -> bool:
        return patient_id in self._patient_index

    def date_range(self) -> DateRange:
        if not self._day_index:
            return DateRange()
        days = sorted(self._day_index)
        return DateRange(earliest=date.fromisoformat(days[0]), latest=date.fromisoformat(days[-1]))

    def save(self, path: str | Path) -> Path:
        """
        Write a versioned JSON snapshot.

        The file is written next to the target and renamed into place so a
        crash never leaves a half-written snapshot.
        """
        target = Path(path)
        payload = {
            "version": SNAPSHOT_VERSION,
            "chunks": [
                [chunk_id, chunk.model_dump(mode="json")]
                for chunk_id, chunk in self._chunks.items()
            ],
        }
        for name in _INDEX_NAMES:
            index: dict[str, set[str]] = getattr(self, f"_{name}")
            payload[name] = [[key, sorted(ids)] for key, ids in index.items()]

        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(target.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(tmp_path, target)

        logger.info(f"{__name__}:save - Saved {len(self)} chunks to {target}")
        return target

    def load(self, path: str | Path) -> bool:
        """
        Replace the cache with a saved snapshot.

        Returns:
            bool: False when no snapshot exists

        Raises:
            CacheSnapshotError: Unknown version, malformed file, or indices that
                disagree with the chunk records
        """
        source = Path(path)
        if not source.exists():
            return False

        try:
            with open(source, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CacheSnapshotError(
                f"Unreadable cache snapshot: {e}", {"path": str(source)}
            ) from e

        version = payload.get("version") if isinstance(payload, dict) else None
        if version != SNAPSHOT_VERSION:
            raise CacheSnapshotError(
                f"Unsupported cache snapshot version {version}", {"path": str(source)}
            )

        try:
            chunks = {
                str(chunk_id): Chunk.model_validate(record)
                for chunk_id, record in payload["chunks"]
            }
            indices = {
                name: {str(key): set(ids) for key, ids in payload[name]}
                for name in _INDEX_NAMES
            }
        except (KeyError, TypeError, ValueError, PydanticValidationError) as e:
            raise CacheSnapshotError(
                f"Malformed cache snapshot: {e}", {"path": str(source)}
            ) from e

        for name, index in indices.items():
            indexed_ids = set().union(*index.values()) if index else set()
            if indexed_ids != set(chunks) or any(not ids for ids in index.values()):
                raise CacheSnapshotError(
                    f"Cache snapshot {name} is inconsistent with its chunk records",
                    {"path": str(source)},
                )

        self._chunks = chunks
        for name, index in indices.items():
            setattr(self, f"_{name}", index)

        logger.info(f"{__name__}:load - Loaded {len(self)} chunks from {source}")
        return True
