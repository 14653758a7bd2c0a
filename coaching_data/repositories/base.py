"""
Shared repository plumbing for string-keyed models.
"""

from typing import TypeVar, Generic, Type, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from coaching_data.database.models import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Lookup by primary key and insert-with-flush for a single model."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get_by_id(self, entity_id: str) -> Optional[ModelType]:
        if not entity_id:
            return None
        result = await self.session.execute(
            select(self.model).where(getattr(self.model, "id") == entity_id)
        )
        return result.scalar_one_or_none()

    async def create(self, **values) -> ModelType:
        """
        Add a row and flush it so server defaults (``created_at``) are loaded.

        Nothing is committed; the caller owns the transaction.
        """
        values.setdefault("id", str(uuid.uuid4()))

        entity = self.model(**values)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity
