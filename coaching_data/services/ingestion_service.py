"""
Ingestion orchestrator.

Runs one Fireflies meeting through fetch, resolve, classify and persist,
recording the outcome in the sync ledger. Every failure is turned into a
returned ``IngestionOutcome`` so that batch callers (the scheduler, the
webhook) can carry on with the next meeting.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.core.config import Credential, SyncConfig
from coaching_data.core.exceptions import ChunkPersistenceError
from coaching_data.database.models.sync_ledger import SyncStatus
from coaching_data.embeddings.client import EmbeddingClient
from coaching_data.ingestion.chunker import chunk_text
from coaching_data.ingestion.loaders.fireflies_loader import FirefliesLoader
from coaching_data.ingestion.normalizer import format_transcript
from coaching_data.repositories.data_item_repository import DataItemRepository
from coaching_data.repositories.directory_repository import DirectoryRepository
from coaching_data.repositories.pending_repository import PendingTranscriptRepository
from coaching_data.repositories.sync_ledger_repository import SyncLedgerRepository
from coaching_data.schemas.ingest import (
    IngestionOutcome,
    IngestionStage,
    IngestionStatus,
    PersistResult,
)
from coaching_data.schemas.transcript import FormattedTranscript
from coaching_data.services.identity_resolver import IdentityResolver, MatchResult
from coaching_data.services.notification_service import (
    ClientNotFound,
    EventOutbox,
    TranscriptIngested,
    TranscriptQueued,
)
from coaching_data.utils.session_type import SessionTypeClassifier, get_session_classifier

logger = logging.getLogger(__name__)


class IngestionService:
    """Fetches, resolves, classifies and stores Fireflies transcripts."""

    def __init__(
        self,
        session: AsyncSession,
        config: SyncConfig,
        loader: Optional[FirefliesLoader] = None,
        embedder: Optional[EmbeddingClient] = None,
        directory: Optional[DirectoryRepository] = None,
        ledger: Optional[SyncLedgerRepository] = None,
        data_items: Optional[DataItemRepository] = None,
        pending: Optional[PendingTranscriptRepository] = None,
        outbox: Optional[EventOutbox] = None,
        classifier: Optional[SessionTypeClassifier] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.loader = loader or FirefliesLoader()
        self.embedder = embedder or EmbeddingClient()
        self.directory = directory or DirectoryRepository(session)
        self.ledger = ledger or SyncLedgerRepository(session)
        self.data_items = data_items or DataItemRepository(session)
        self.pending = pending or PendingTranscriptRepository(session)
        self.outbox = outbox if outbox is not None else EventOutbox()
        self.classifier = classifier or get_session_classifier()
        self.resolver = IdentityResolver(self.directory)

    # -----------------------------
    # Entry point
    # -----------------------------

    async def ingest_transcript(
        self,
        external_id: str,
        credential: Optional[Credential] = None,
        sync_method: str = "manual",
        override_coach_id: Optional[str] = None,
        override_client_id: Optional[str] = None,
    ) -> IngestionOutcome:
        """
        Ingest one meeting.

        Args:
            external_id: Fireflies transcript id
            credential: Credential to fetch with (defaults to the first configured)
            sync_method: How the meeting arrived: webhook, poll or manual
            override_coach_id: Skip resolution and assign this coach
            override_client_id: Client to assign alongside the override coach

        Raises:
            NotFoundError: an override coach or client id does not exist
        """
        credential = credential or self.config.default_credential
        label = credential.display_name if credential else None
        logger.info(f"[{external_id}] received via {sync_method} (credential={label})")

        existing = await self.ledger.get(external_id)
        if existing is not None and existing.status != SyncStatus.FAILED:
            logger.info(f"[{external_id}] already in ledger as {existing.status.value}, skipping")
            return IngestionOutcome(
                external_id=external_id,
                status=IngestionStatus.DUPLICATE,
                stage=IngestionStage.RECEIVED,
                data_item_id=existing.data_item_id,
                reason=f"ledger:{existing.status.value}",
                credential=label,
            )
        if existing is not None:
            logger.info(f"[{external_id}] retrying after earlier failure: {existing.error_message}")

        if credential is None:
            logger.error(f"[{external_id}] no Fireflies credential configured")
            return IngestionOutcome(
                external_id=external_id,
                status=IngestionStatus.FAILED,
                stage=IngestionStage.RECEIVED,
                reason="no_credential",
            )

        try:
            raw = await self.loader.get_transcript(external_id, credential)
        except Exception as e:
            logger.error(f"[{external_id}] fetch failed: {e}")
            return await self._fail(external_id, str(e), label)

        formatted = format_transcript(raw)
        logger.info(f"[{external_id}] fetched '{formatted.title}'")

        if override_coach_id:
            match = await self.resolver.explicit(override_coach_id, override_client_id)
        else:
            match = await self.resolver.resolve(formatted, fallback_coach_id=credential.coach_id)

        session_type = self.classifier.classify(formatted.title, match.client is not None)
        logger.info(f"[{external_id}] classified as {session_type}")

        if not match.resolved:
            return await self._queue(formatted, match, session_type, label)

        try:
            result = await self.persist_transcript(formatted, match, session_type, sync_method)
        except Exception as e:
            logger.error(f"[{external_id}] persist failed: {e}")
            await self.session.rollback()
            return await self._fail(external_id, str(e), label)

        entry = await self.ledger.record(
            external_id,
            SyncStatus.SYNCED,
            data_item_id=result.data_item_id,
        )
        if entry is None:
            # Lost a race with another run that already synced this meeting
            await self.session.rollback()
            return IngestionOutcome(
                external_id=external_id,
                status=IngestionStatus.DUPLICATE,
                stage=IngestionStage.PERSISTED,
                reason="ledger_conflict",
                credential=label,
            )
        await self.session.commit()

        self.emit_ingested(formatted, match, session_type, sync_method, result)
        logger.info(
            f"[{external_id}] persisted as {result.data_item_id} "
            f"({result.chunks_processed}/{result.total_chunks} chunks)"
        )

        return IngestionOutcome(
            external_id=external_id,
            status=IngestionStatus.PERSISTED,
            stage=IngestionStage.PERSISTED,
            title=formatted.title,
            data_item_id=result.data_item_id,
            coach_id=match.coach_id,
            client_id=match.client_id,
            session_type=session_type,
            matched_via=match.matched_via.value if match.matched_via else None,
            unmatched_emails=match.unmatched_emails,
            chunks_processed=result.chunks_processed,
            total_chunks=result.total_chunks,
            credential=label,
        )

    # -----------------------------
    # Persistence path
    # -----------------------------

    async def persist_transcript(
        self,
        transcript: FormattedTranscript,
        match: MatchResult,
        session_type: str,
        sync_method: str,
    ) -> PersistResult:
        """
        Create the DataItem, then embed and store each chunk in order.

        A chunk that fails to embed or insert is logged and skipped; the item
        and the other chunks are kept. Does not commit.
        """
        metadata: Dict[str, Any] = {
            **transcript.metadata,
            "title": transcript.title,
            "slug": f"fireflies-{transcript.external_id}",
            "session_type": session_type,
            "unmatched_emails": list(match.unmatched_emails),
            "other_client_emails": list(match.other_client_emails),
            "matched_via": match.matched_via.value if match.matched_via else None,
            "synced_via": sync_method,
        }

        item = await self.data_items.create_item(
            coach_id=match.coach_id,
            client_id=match.client_id,
            client_organization_id=match.organization_id,
            raw_content=transcript.content,
            metadata=metadata,
            session_date=transcript.session_date,
        )

        chunks = chunk_text(transcript.content, self.config.chunk_size, self.config.chunk_overlap)
        chunk_metadata = {"source": "fireflies", "meeting_id": transcript.external_id}

        processed = 0
        failed = []
        for index, text in enumerate(chunks):
            try:
                embedding = await self.embedder.embed(text)
                await self.data_items.add_chunk(item.id, index, text, embedding, dict(chunk_metadata))
                processed += 1
            except Exception as e:
                error = e if isinstance(e, ChunkPersistenceError) else ChunkPersistenceError(
                    transcript.external_id, index, str(e)
                )
                logger.warning(f"[{transcript.external_id}] {error.message}")
                failed.append(index)

        return PersistResult(
            data_item_id=item.id,
            chunks_processed=processed,
            total_chunks=len(chunks),
            failed_chunks=failed,
        )

    # -----------------------------
    # Terminal branches
    # -----------------------------

    async def _queue(
        self,
        transcript: FormattedTranscript,
        match: MatchResult,
        session_type: str,
        credential_label: Optional[str],
    ) -> IngestionOutcome:
        external_id = transcript.external_id
        emails = match.unmatched_emails or match.candidate_emails
        reason = f"no_coach_match: {', '.join(emails) if emails else 'no participant emails'}"
        logger.warning(f"[{external_id}] unresolved, queueing for assignment ({reason})")

        try:
            entry = await self.pending.create_entry(
                transcript,
                candidate_emails=match.candidate_emails,
                unmatched_emails=match.unmatched_emails,
            )
            ledger_entry = await self.ledger.record(
                external_id,
                SyncStatus.SKIPPED,
                error_message=reason,
            )
            if ledger_entry is None:
                await self.session.rollback()
            else:
                await self.session.commit()
        except Exception as e:
            logger.error(f"[{external_id}] failed to queue: {e}")
            await self.session.rollback()
            return await self._fail(external_id, str(e), credential_label)

        if ledger_entry is None:
            logger.info(f"[{external_id}] settled by another run, dropping pending entry")
            return IngestionOutcome(
                external_id=external_id,
                status=IngestionStatus.DUPLICATE,
                stage=IngestionStage.QUEUED,
                reason="ledger_conflict",
                credential=credential_label,
            )

        self.outbox.emit(
            TranscriptQueued(
                meeting_id=external_id,
                pending_id=entry.id,
                title=transcript.title,
                candidate_emails=list(match.candidate_emails),
            )
        )

        return IngestionOutcome(
            external_id=external_id,
            status=IngestionStatus.QUEUED,
            stage=IngestionStage.QUEUED,
            title=transcript.title,
            pending_id=entry.id,
            client_id=match.client_id,
            session_type=session_type,
            unmatched_emails=match.unmatched_emails,
            reason=reason,
            credential=credential_label,
        )

    async def _fail(
        self,
        external_id: str,
        reason: str,
        credential_label: Optional[str],
    ) -> IngestionOutcome:
        try:
            await self.ledger.record(
                external_id,
                SyncStatus.FAILED,
                error_message=reason[:2000],
            )
            await self.session.commit()
        except Exception as e:
            logger.error(f"[{external_id}] could not record failure in ledger: {e}")
            await self.session.rollback()

        return IngestionOutcome(
            external_id=external_id,
            status=IngestionStatus.FAILED,
            stage=IngestionStage.FAILED,
            reason=reason,
            credential=credential_label,
        )

    def emit_ingested(
        self,
        transcript: FormattedTranscript,
        match: MatchResult,
        session_type: str,
        sync_method: str,
        result: PersistResult,
    ) -> None:
        self.outbox.emit(
            TranscriptIngested(
                meeting_id=transcript.external_id,
                data_item_id=result.data_item_id,
                title=transcript.title,
                coach_name=match.coach.name,
                client_name=match.client.name if match.client else None,
                session_type=session_type,
                session_date=transcript.session_date,
                chunks_processed=result.chunks_processed,
                total_chunks=result.total_chunks,
                sync_method=sync_method,
            )
        )
        if match.client is None:
            self.outbox.emit(
                ClientNotFound(
                    meeting_id=transcript.external_id,
                    data_item_id=result.data_item_id,
                    title=transcript.title,
                    coach_name=match.coach.name,
                    unmatched_emails=list(match.unmatched_emails),
                )
            )
