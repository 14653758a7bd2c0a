"""
Pending-assignment queue storage.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.database.models.pending import PendingTranscript, PendingStatus
from coaching_data.repositories.base import BaseRepository
from coaching_data.repositories.data_item_repository import parse_session_date
from coaching_data.schemas.transcript import FormattedTranscript


def session_timestamp(value: Optional[str]) -> Optional[datetime]:
    """``fireflies_pending.session_date`` is TIMESTAMPTZ; store the session day at UTC midnight."""
    day = parse_session_date(value)
    return datetime.combine(day, time.min, tzinfo=timezone.utc) if day else None


class PendingTranscriptRepository(BaseRepository[PendingTranscript]):

    def __init__(self, session: AsyncSession):
        super().__init__(PendingTranscript, session)

    async def create_entry(
        self,
        transcript: FormattedTranscript,
        candidate_emails: Sequence[str],
        unmatched_emails: Sequence[str],
    ) -> PendingTranscript:
        return await self.create(
            meeting_id=transcript.external_id,
            title=transcript.title,
            host_email=transcript.host_email,
            organizer_email=transcript.organizer_email,
            candidate_emails=list(candidate_emails),
            unmatched_emails=list(unmatched_emails),
            session_date=session_timestamp(transcript.session_date),
            transcript_data=transcript.model_dump(mode="json"),
            status=PendingStatus.PENDING_COACH_ASSIGNMENT,
        )

    async def list_pending(self, limit: int = 100) -> List[PendingTranscript]:
        """Entries still awaiting a coach, newest first."""
        query = (
            select(PendingTranscript)
            .where(PendingTranscript.status == PendingStatus.PENDING_COACH_ASSIGNMENT)
            .order_by(PendingTranscript.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_processed(
        self,
        entry: PendingTranscript,
        coach_id: str,
        client_id: Optional[str] = None,
    ) -> PendingTranscript:
        entry.status = PendingStatus.PROCESSED
        entry.assigned_coach_id = coach_id
        entry.assigned_client_id = client_id
        entry.processed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return entry
