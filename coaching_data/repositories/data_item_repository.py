"""
Persistence for ingested transcripts and their chunks.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.core.exceptions import ChunkPersistenceError
from coaching_data.database.models.data_item import DataItem, DataChunk
from coaching_data.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def parse_session_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable session date: {value!r}")
        return None


class DataItemRepository(BaseRepository[DataItem]):
    """Repository for DataItem and DataChunk rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(DataItem, session)

    async def create_item(
        self,
        coach_id: str,
        raw_content: str,
        metadata: Dict[str, Any],
        client_id: Optional[str] = None,
        client_organization_id: Optional[str] = None,
        session_date: Optional[str] = None,
    ) -> DataItem:
        return await self.create(
            data_type="transcript",
            coach_id=coach_id,
            client_id=client_id,
            client_organization_id=client_organization_id,
            raw_content=raw_content,
            metadata_=metadata,
            session_date=parse_session_date(session_date),
        )

    async def add_chunk(
        self,
        data_item_id: str,
        chunk_index: int,
        content: str,
        embedding: List[float],
        metadata: Dict[str, Any],
    ) -> DataChunk:
        """
        Insert one chunk inside a savepoint.

        A failed insert only rolls back the savepoint, leaving the parent
        item and earlier chunks in the transaction.
        """
        chunk = DataChunk(
            id=str(uuid.uuid4()),
            data_item_id=data_item_id,
            chunk_index=chunk_index,
            content=content,
            embedding=embedding,
            metadata_=metadata,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(chunk)
                await self.session.flush()
        except SQLAlchemyError as e:
            raise ChunkPersistenceError(data_item_id, chunk_index, str(e)) from e
        return chunk
