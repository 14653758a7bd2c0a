"""
Pending-assignment queue: transcripts nobody could be matched to.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from coaching_data.core.exceptions import ConflictError, LedgerWriteConflict, NotFoundError
from coaching_data.database.models.pending import PendingTranscript
from coaching_data.database.models.sync_ledger import SyncStatus
from coaching_data.schemas.ingest import AssignmentResult
from coaching_data.schemas.transcript import FormattedTranscript
from coaching_data.services.ingestion_service import IngestionService

logger = logging.getLogger(__name__)


class PendingAssignmentService:
    """Lists queued transcripts and feeds operator assignments back into persistence."""

    def __init__(self, ingestion: IngestionService) -> None:
        self.ingestion = ingestion
        self.session = ingestion.session
        self.pending = ingestion.pending
        self.ledger = ingestion.ledger

    async def list_pending(self, limit: int = 100) -> List[PendingTranscript]:
        return await self.pending.list_pending(limit=limit)

    async def assign(
        self,
        entry_id: str,
        coach_id: str,
        client_id: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Persist a queued transcript under an operator-chosen coach (and client).

        Raises:
            NotFoundError: unknown entry, coach or client
            ConflictError: entry was already processed, or the meeting was
                synced by another run
        """
        entry = await self.pending.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Pending transcript", entry_id)
        if entry.is_processed:
            raise ConflictError(
                f"Pending transcript '{entry_id}' was already processed",
                resource="pending_transcript",
            )

        ledger_entry = await self.ledger.get(entry.meeting_id)
        if ledger_entry is not None and (
            ledger_entry.status == SyncStatus.SYNCED or ledger_entry.data_item_id
        ):
            raise ConflictError(
                f"Meeting '{entry.meeting_id}' already has a DataItem in the sync ledger",
                resource="sync_ledger",
            )

        transcript = FormattedTranscript.model_validate(entry.transcript_data)
        match = await self.ingestion.resolver.explicit(
            coach_id,
            client_id,
            candidates=entry.candidate_emails or [],
            unmatched=entry.unmatched_emails or [],
        )
        session_type = self.ingestion.classifier.classify(transcript.title, match.client is not None)

        try:
            result = await self.ingestion.persist_transcript(
                transcript, match, session_type, sync_method="pending_assignment"
            )
            await self.pending.mark_processed(entry, coach_id=coach_id, client_id=match.client_id)

            if ledger_entry is not None and ledger_entry.status == SyncStatus.SKIPPED:
                await self.ledger.attach_data_item(entry.meeting_id, result.data_item_id)
            elif await self.ledger.record(
                entry.meeting_id,
                SyncStatus.SYNCED,
                data_item_id=result.data_item_id,
            ) is None:
                raise LedgerWriteConflict(entry.meeting_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        self.ingestion.emit_ingested(transcript, match, session_type, "pending_assignment", result)
        logger.info(
            f"Assigned pending {entry_id} ({entry.meeting_id}) to coach {coach_id}: "
            f"data item {result.data_item_id}"
        )

        return AssignmentResult(
            pending_id=entry.id,
            meeting_id=entry.meeting_id,
            data_item_id=result.data_item_id,
            coach_id=coach_id,
            client_id=match.client_id,
            session_type=session_type,
            chunks_processed=result.chunks_processed,
            total_chunks=result.total_chunks,
        )
