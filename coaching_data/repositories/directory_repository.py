"""
Read-only lookups against the coach and client directory.
"""

from __future__ import annotations

from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.database.models.directory import Coach, Client


class DirectoryRepository:
    """Coach / client lookups. Email matches ignore case and surrounding whitespace."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _normalize(email: Optional[str]) -> Optional[str]:
        if not email:
            return None
        email = email.strip().lower()
        return email or None

    async def find_coach_by_email(self, email: Optional[str]) -> Optional[Coach]:
        email = self._normalize(email)
        if not email:
            return None
        query = select(Coach).where(func.lower(Coach.email) == email).limit(1)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_coach_by_id(self, coach_id: Optional[str]) -> Optional[Coach]:
        if not coach_id:
            return None
        result = await self.session.execute(select(Coach).where(Coach.id == coach_id))
        return result.scalar_one_or_none()

    async def find_client_by_email(self, email: Optional[str]) -> Optional[Client]:
        email = self._normalize(email)
        if not email:
            return None
        query = select(Client).where(func.lower(Client.email) == email).limit(1)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_client_by_id(self, client_id: Optional[str]) -> Optional[Client]:
        if not client_id:
            return None
        result = await self.session.execute(select(Client).where(Client.id == client_id))
        return result.scalar_one_or_none()
