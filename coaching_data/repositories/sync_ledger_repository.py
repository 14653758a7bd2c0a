"""
Sync ledger: the idempotence record for Fireflies meetings.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.core.exceptions import LedgerWriteConflict
from coaching_data.database.models.sync_ledger import SyncLedgerEntry, SyncStatus

logger = logging.getLogger(__name__)

# Rows in these states are final; a ``failed`` row may be retried.
SETTLED_STATUSES = frozenset({SyncStatus.SYNCED, SyncStatus.SKIPPED})


class SyncLedgerRepository:
    """
    Ledger keyed by Fireflies meeting id.

    ``synced`` and ``skipped`` rows are final. A ``failed`` row carries no
    DataItem, so a later attempt rewrites it in place. When two runs race on
    the same id the loser either hits the unique key (insert) or finds the
    row no longer ``failed`` (retry); both are logged and return ``None``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, meeting_id: str) -> Optional[SyncLedgerEntry]:
        query = select(SyncLedgerEntry).where(SyncLedgerEntry.fireflies_meeting_id == meeting_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def is_settled(self, meeting_id: str) -> bool:
        """True when the meeting was already synced or skipped."""
        entry = await self.get(meeting_id)
        return entry is not None and entry.status in SETTLED_STATUSES

    async def record(
        self,
        meeting_id: str,
        status: SyncStatus,
        data_item_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[SyncLedgerEntry]:
        """
        Write the outcome for a meeting. Returns ``None`` if another writer got there first.
        """
        existing = await self.get(meeting_id)
        if existing is not None:
            if existing.status in SETTLED_STATUSES:
                self._log_conflict(meeting_id, f"already {existing.status.value}")
                return None
            return await self._retry_failed(existing, status, data_item_id, error_message)

        entry = SyncLedgerEntry(
            id=str(uuid.uuid4()),
            fireflies_meeting_id=meeting_id,
            status=status,
            data_item_id=data_item_id,
            error_message=error_message,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
                await self.session.flush()
        except IntegrityError as e:
            self._log_conflict(meeting_id, str(e.orig))
            return None

        logger.debug(f"Ledger: {meeting_id} -> {status.value}")
        return entry

    async def _retry_failed(
        self,
        entry: SyncLedgerEntry,
        status: SyncStatus,
        data_item_id: Optional[str],
        error_message: Optional[str],
    ) -> Optional[SyncLedgerEntry]:
        # Conditional on the row still being ``failed`` so concurrent retries cannot both win
        result = await self.session.execute(
            update(SyncLedgerEntry)
            .where(
                SyncLedgerEntry.id == entry.id,
                SyncLedgerEntry.status == SyncStatus.FAILED,
            )
            .values(status=status, data_item_id=data_item_id, error_message=error_message)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._log_conflict(entry.fireflies_meeting_id, "retried by another run")
            return None

        await self.session.refresh(entry)
        logger.debug(f"Ledger: {entry.fireflies_meeting_id} failed -> {status.value}")
        return entry

    @staticmethod
    def _log_conflict(meeting_id: str, reason: str) -> None:
        conflict = LedgerWriteConflict(meeting_id)
        logger.info(f"{conflict.message}; keeping existing entry ({reason})")

    async def attach_data_item(self, meeting_id: str, data_item_id: str) -> Optional[SyncLedgerEntry]:
        """Link the DataItem created for a skipped meeting after operator assignment."""
        entry = await self.get(meeting_id)
        if entry is None:
            return None
        entry.data_item_id = data_item_id
        await self.session.flush()
        return entry
