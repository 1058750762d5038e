"""
SQL-backed chunk metadata store.

Each public call runs in its own transaction. Writes are idempotent on
chunk_id: inserting an id that already exists is silently skipped.

Dependencies: sqlalchemy, clinical_index.boundary.db.CRUD
System role: Metadata Store Port used by indexing, cache rebuild and retrieval
"""

import logging
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinical_index.boundary.db import models  # noqa: F401
from clinical_index.boundary.db.base import Base
from clinical_index.boundary.db.CRUD.chunk_metadata_crud import chunk_metadata_crud
from clinical_index.core.exceptions import StoreWriteError
from clinical_index.models.chunk import Chunk, MetadataFilter

logger = logging.getLogger(__name__)

STORE_NAME = "metadata_store"


class SQLMetadataStore:
    """Durable chunk records behind async SQLAlchemy sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Args:
            session_factory: Factory producing sessions bound to the metadata database
        """
        self._session_factory = session_factory
        self._crud = chunk_metadata_crud

    async def create_schema(self) -> None:
        """Create the metadata tables if they do not exist."""
        async with self._session_factory() as session, session.begin():
            conn = await session.connection()
            await conn.run_sync(Base.metadata.create_all)

    async def insert_batch(self, chunks: Sequence[Chunk]) -> int:
        """
        Insert chunks in one transaction, skipping ids already stored.

        Returns:
            int: Rows inserted

        Raises:
            StoreWriteError: The transaction failed and was rolled back
        """
        if not chunks:
            return 0
        try:
            async with self._session_factory() as session, session.begin():
                inserted = await self._crud.insert_new(session, chunks)
        except SQLAlchemyError as e:
            logger.exception(
                f"{__name__}:insert_batch - Failed to insert chunk metadata",
                extra={"chunk_count": len(chunks), "error": str(e)},
            )
            raise StoreWriteError(
                f"Failed to insert chunk metadata: {e}",
                store=STORE_NAME,
                details={"chunk_count": len(chunks)},
            ) from e

        logger.info(
            f"{__name__}:insert_batch - Inserted {inserted} of {len(chunks)} chunks",
            extra={"skipped": len(chunks) - inserted},
        )
        return inserted

    async def filter(self, criteria: MetadataFilter | None = None) -> list[str]:
        """Chunk ids matching every criterion, ordered by occurred_at desc then chunk_id."""
        async with self._session_factory() as session:
            return await self._crud.filter_ids(session, criteria or MetadataFilter())

    async def get_by_ids(self, chunk_ids: Sequence[str]) -> list[Chunk]:
        """Chunks for ``chunk_ids`` in the requested order; unknown ids are skipped."""
        if not chunk_ids:
            return []
        async with self._session_factory() as session:
            rows = await self._crud.get_by_ids(session, list(dict.fromkeys(chunk_ids)))
        by_id = {row.chunk_id: row.to_chunk() for row in rows}
        return [by_id[cid] for cid in dict.fromkeys(chunk_ids) if cid in by_id]

    async def get_all(self) -> list[Chunk]:
        """Every stored chunk, newest first."""
        async with self._session_factory() as session:
            rows = await self._crud.get_ordered(session)
        return [row.to_chunk() for row in rows]

    async def delete_by_ids(self, chunk_ids: Sequence[str]) -> int:
        """
        Delete chunks by id in one transaction.

        Returns:
            int: Rows deleted

        Raises:
            StoreWriteError: The transaction failed and was rolled back
        """
        if not chunk_ids:
            return 0
        try:
            async with self._session_factory() as session, session.begin():
                deleted = await self._crud.delete_by_ids(session, list(chunk_ids))
        except SQLAlchemyError as e:
            logger.exception(
                f"{__name__}:delete_by_ids - Failed to delete chunk metadata",
                extra={"chunk_count": len(chunk_ids), "error": str(e)},
            )
            raise StoreWriteError(
                f"Failed to delete chunk metadata: {e}",
                store=STORE_NAME,
                details={"chunk_count": len(chunk_ids)},
            ) from e

        logger.info(f"{__name__}:delete_by_ids - Deleted {deleted} chunks")
        return deleted

    async def count(self) -> int:
        async with self._session_factory() as session:
            return await self._crud.count(session)
