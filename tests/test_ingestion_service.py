"""
Tests for the ingestion orchestrator.

Tests cover:
- Resolved transcripts are stored with chunks and a synced ledger entry
- Unresolved transcripts go to the pending queue
- Duplicate deliveries never create a second DataItem
- Per-chunk failures are counted, not fatal
- Fetch failures become failed ledger entries
"""

import pytest
from unittest.mock import AsyncMock

from coaching_data.core.config import Credential, SyncConfig
from coaching_data.core.exceptions import EmbeddingError, NotFoundError, ProviderError
from coaching_data.database.models import PendingStatus, SyncStatus
from coaching_data.schemas.ingest import IngestionStage, IngestionStatus
from coaching_data.services.ingestion_service import IngestionService
from coaching_data.services.notification_service import (
    ClientNotFound,
    TranscriptIngested,
    TranscriptQueued,
)

LONG_SENTENCES = [("Ryan", "one two three four five six seven eight nine ten eleven twelve")]


class TestResolvedTranscripts:
    """Transcripts with an identifiable coach."""

    @pytest.mark.asyncio
    async def test_coach_and_client_by_email(
        self, ingestion_service, raw_transcript, mock_loader, directory, ledger, data_items, outbox, mock_session
    ):
        coach = directory.add_coach("ryan@coaching.co", "Ryan")
        client = directory.add_client("jake@acme.com", "Jake Krask", organization_id="org-1")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-a",
            title="Jake Krask and Ryan Session Jan 7 2026",
            organizer_email="ryan@coaching.co",
            attendees=["jake@acme.com"],
        )

        outcome = await ingestion_service.ingest_transcript("ff-a")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.stage == IngestionStage.PERSISTED
        assert outcome.coach_id == coach.id
        assert outcome.client_id == client.id
        assert outcome.session_type == "client_coaching"
        assert outcome.matched_via == "email"
        assert outcome.is_success

        item = data_items.items[0]
        assert item.coach_id == coach.id
        assert item.client_id == client.id
        assert item.client_organization_id == "org-1"
        assert item.metadata_["session_type"] == "client_coaching"
        assert item.metadata_["slug"] == "fireflies-ff-a"
        assert item.metadata_["synced_via"] == "manual"
        assert item.metadata_["matched_via"] == "email"

        assert ledger.entries["ff-a"].status == SyncStatus.SYNCED
        assert ledger.entries["ff-a"].data_item_id == item.id
        assert outcome.credential == "primary"
        mock_session.commit.assert_awaited()

        events = outbox.pending
        assert len(events) == 1
        assert isinstance(events[0], TranscriptIngested)
        assert events[0].client_name == "Jake Krask"

    @pytest.mark.asyncio
    async def test_untagged_title_still_ingested(self, ingestion_service, raw_transcript, mock_loader, directory, data_items):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-b", title="New FS Thing Weekly", organizer_email="ryan@coaching.co"
        )

        outcome = await ingestion_service.ingest_transcript("ff-b")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.session_type == "untagged"
        assert data_items.items[0].metadata_["session_type"] == "untagged"

    @pytest.mark.asyncio
    async def test_credential_owner_fallback(self, ingestion_service, raw_transcript, mock_loader, directory, data_items, pending):
        owner = directory.add_coach("owner@coaching.co", "Owner")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-c", organizer_email="stranger@x.com", attendees=["who@else.com"]
        )
        credential = Credential(api_key="owner-key-0000", coach_id=owner.id, label="owner")

        outcome = await ingestion_service.ingest_transcript("ff-c", credential=credential, sync_method="poll")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.coach_id == owner.id
        assert outcome.matched_via == "credential_owner"
        assert outcome.unmatched_emails == ["stranger@x.com", "who@else.com"]
        assert outcome.credential == "owner"
        assert len(data_items.items) == 1
        assert pending.entries == {}
        mock_loader.get_transcript.assert_awaited_once_with("ff-c", credential)

    @pytest.mark.asyncio
    async def test_no_client_emits_client_not_found(self, ingestion_service, raw_transcript, mock_loader, directory, outbox):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-d", organizer_email="ryan@coaching.co", attendees=["unknown@x.com"]
        )

        await ingestion_service.ingest_transcript("ff-d")

        kinds = [type(e) for e in outbox.pending]
        assert kinds == [TranscriptIngested, ClientNotFound]
        assert outbox.pending[1].unmatched_emails == ["unknown@x.com"]

    @pytest.mark.asyncio
    async def test_explicit_override_skips_resolution(self, ingestion_service, raw_transcript, mock_loader, directory):
        directory.add_coach("ryan@coaching.co")
        chosen = directory.add_coach("other@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-e", organizer_email="ryan@coaching.co"
        )

        outcome = await ingestion_service.ingest_transcript("ff-e", override_coach_id=chosen.id)

        assert outcome.coach_id == chosen.id
        assert outcome.matched_via == "explicit_override"

    @pytest.mark.asyncio
    async def test_unknown_override_coach_raises(self, ingestion_service, ledger):
        with pytest.raises(NotFoundError):
            await ingestion_service.ingest_transcript("ff-f", override_coach_id="missing")

        assert ledger.entries == {}


class TestUnresolvedTranscripts:
    """Transcripts nobody can be matched to."""

    @pytest.mark.asyncio
    async def test_queued_for_assignment(self, ingestion_service, raw_transcript, mock_loader, ledger, data_items, pending, outbox):
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-q", organizer_email="stranger@x.com", attendees=["who@else.com"]
        )

        outcome = await ingestion_service.ingest_transcript("ff-q")

        assert outcome.status == IngestionStatus.QUEUED
        assert outcome.stage == IngestionStage.QUEUED
        assert outcome.is_success
        assert data_items.items == []

        entry = pending.entries[outcome.pending_id]
        assert entry.status == PendingStatus.PENDING_COACH_ASSIGNMENT
        assert entry.meeting_id == "ff-q"
        assert entry.unmatched_emails == ["stranger@x.com", "who@else.com"]
        assert entry.transcript_data["external_id"] == "ff-q"

        ledger_entry = ledger.entries["ff-q"]
        assert ledger_entry.status == SyncStatus.SKIPPED
        assert "stranger@x.com" in ledger_entry.error_message
        assert ledger_entry.error_message.startswith("no_coach_match")

        assert [type(e) for e in outbox.pending] == [TranscriptQueued]

    @pytest.mark.asyncio
    async def test_client_without_primary_coach_is_queued(self, ingestion_service, raw_transcript, mock_loader, directory, pending):
        directory.add_client("jake@acme.com", "Jake")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-q2", attendees=["jake@acme.com"]
        )

        outcome = await ingestion_service.ingest_transcript("ff-q2")

        assert outcome.status == IngestionStatus.QUEUED
        assert outcome.client_id is not None
        assert len(pending.entries) == 1

    @pytest.mark.asyncio
    async def test_queue_failure_records_failed(self, ingestion_service, raw_transcript, mock_loader, pending, ledger, mock_session):
        mock_loader.get_transcript.return_value = raw_transcript("ff-q3", organizer_email="x@y.com")
        pending.create_entry = AsyncMock(side_effect=RuntimeError("db down"))

        outcome = await ingestion_service.ingest_transcript("ff-q3")

        assert outcome.status == IngestionStatus.FAILED
        mock_session.rollback.assert_awaited()
        assert ledger.entries["ff-q3"].status == SyncStatus.FAILED


class TestIdempotence:
    """The ledger guarantees one DataItem per meeting id."""

    @pytest.mark.asyncio
    async def test_second_delivery_is_duplicate(self, ingestion_service, raw_transcript, mock_loader, directory, data_items):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-1", organizer_email="ryan@coaching.co"
        )

        first = await ingestion_service.ingest_transcript("ff-1", sync_method="webhook")
        second = await ingestion_service.ingest_transcript("ff-1", sync_method="webhook")

        assert first.status == IngestionStatus.PERSISTED
        assert second.status == IngestionStatus.DUPLICATE
        assert second.reason == "ledger:synced"
        assert second.data_item_id == first.data_item_id
        assert len(data_items.items) == 1
        assert mock_loader.get_transcript.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_entry_is_retried(self, ingestion_service, raw_transcript, mock_loader, directory, ledger, data_items):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.side_effect = [
            ProviderError("HTTP 429"),
            raw_transcript("ff-x", organizer_email="ryan@coaching.co"),
        ]

        first = await ingestion_service.ingest_transcript("ff-x")
        assert first.status == IngestionStatus.FAILED
        failed_row = ledger.entries["ff-x"]
        assert failed_row.status == SyncStatus.FAILED

        again = await ingestion_service.ingest_transcript("ff-x")

        assert again.status == IngestionStatus.PERSISTED
        assert ledger.entries["ff-x"] is failed_row
        assert failed_row.status == SyncStatus.SYNCED
        assert failed_row.data_item_id == data_items.items[0].id
        assert len(data_items.items) == 1
        assert mock_loader.get_transcript.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_entry_retried_into_queue(self, ingestion_service, raw_transcript, mock_loader, ledger, pending):
        mock_loader.get_transcript.side_effect = [
            ProviderError("timeout"),
            raw_transcript("ff-y", organizer_email="stranger@x.com"),
        ]

        await ingestion_service.ingest_transcript("ff-y")
        again = await ingestion_service.ingest_transcript("ff-y")

        assert again.status == IngestionStatus.QUEUED
        assert ledger.entries["ff-y"].status == SyncStatus.SKIPPED
        assert len(pending.entries) == 1

    @pytest.mark.asyncio
    async def test_skipped_entry_is_duplicate(self, ingestion_service, raw_transcript, mock_loader, pending):
        mock_loader.get_transcript.return_value = raw_transcript("ff-s", organizer_email="stranger@x.com")

        await ingestion_service.ingest_transcript("ff-s")
        again = await ingestion_service.ingest_transcript("ff-s")

        assert again.status == IngestionStatus.DUPLICATE
        assert again.reason == "ledger:skipped"
        assert len(pending.entries) == 1
        assert mock_loader.get_transcript.await_count == 1

    @pytest.mark.asyncio
    async def test_queue_ledger_conflict_rolls_back(self, ingestion_service, raw_transcript, mock_loader, ledger, mock_session, outbox):
        mock_loader.get_transcript.return_value = raw_transcript("ff-qr", organizer_email="stranger@x.com")
        ledger.conflict_on.add("ff-qr")

        outcome = await ingestion_service.ingest_transcript("ff-qr")

        assert outcome.status == IngestionStatus.DUPLICATE
        assert outcome.stage == IngestionStage.QUEUED
        assert outcome.reason == "ledger_conflict"
        assert outcome.pending_id is None
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()
        assert len(outbox) == 0

    @pytest.mark.asyncio
    async def test_ledger_conflict_rolls_back(self, ingestion_service, raw_transcript, mock_loader, directory, ledger, mock_session, outbox):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-race", organizer_email="ryan@coaching.co"
        )
        ledger.conflict_on.add("ff-race")

        outcome = await ingestion_service.ingest_transcript("ff-race")

        assert outcome.status == IngestionStatus.DUPLICATE
        assert outcome.reason == "ledger_conflict"
        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()
        assert len(outbox) == 0


class TestChunkPersistence:
    """Embedding and storing chunks."""

    @pytest.mark.asyncio
    async def test_chunks_embedded_in_order(self, ingestion_service, raw_transcript, mock_loader, directory, data_items, mock_embedder):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-long", organizer_email="ryan@coaching.co", sentences=LONG_SENTENCES
        )

        outcome = await ingestion_service.ingest_transcript("ff-long")

        # "Ryan:" + 12 words, windows of 5 overlapping by 1
        assert outcome.total_chunks == 3
        assert outcome.chunks_processed == 3
        assert [c.chunk_index for c in data_items.chunks] == [0, 1, 2]
        assert data_items.chunks[0].content == "Ryan: one two three four"
        assert data_items.chunks[0].metadata_ == {"source": "fireflies", "meeting_id": "ff-long"}
        assert mock_embedder.embed.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_chunk_is_skipped(self, ingestion_service, raw_transcript, mock_loader, directory, data_items, ledger):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-partial", organizer_email="ryan@coaching.co", sentences=LONG_SENTENCES
        )
        data_items.fail_on.add(1)

        outcome = await ingestion_service.ingest_transcript("ff-partial")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.chunks_processed == 2
        assert outcome.total_chunks == 3
        assert [c.chunk_index for c in data_items.chunks] == [0, 2]
        assert ledger.entries["ff-partial"].status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_embedding_failure_counts_as_chunk_failure(
        self, ingestion_service, raw_transcript, mock_loader, directory, mock_embedder
    ):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-embed", organizer_email="ryan@coaching.co", sentences=LONG_SENTENCES
        )
        mock_embedder.embed.side_effect = [[0.1], EmbeddingError("down"), [0.3]]

        outcome = await ingestion_service.ingest_transcript("ff-embed")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.chunks_processed == 2

    @pytest.mark.asyncio
    async def test_empty_transcript_creates_item_without_chunks(
        self, ingestion_service, raw_transcript, mock_loader, directory, data_items
    ):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-empty", organizer_email="ryan@coaching.co", sentences=[]
        )

        outcome = await ingestion_service.ingest_transcript("ff-empty")

        assert outcome.status == IngestionStatus.PERSISTED
        assert outcome.total_chunks == 0
        assert len(data_items.items) == 1
        assert data_items.chunks == []


class TestFailures:
    """Failures become recorded outcomes."""

    @pytest.mark.asyncio
    async def test_fetch_failure_recorded(self, ingestion_service, raw_transcript, mock_loader, ledger, data_items):
        mock_loader.get_transcript.side_effect = ProviderError("HTTP 500", http_status=500)

        outcome = await ingestion_service.ingest_transcript("ff-err")

        assert outcome.status == IngestionStatus.FAILED
        assert outcome.stage == IngestionStage.FAILED
        assert "HTTP 500" in outcome.reason
        assert ledger.entries["ff-err"].status == SyncStatus.FAILED
        assert data_items.items == []

    @pytest.mark.asyncio
    async def test_persist_failure_rolls_back(self, ingestion_service, raw_transcript, mock_loader, directory, data_items, ledger, mock_session):
        directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.return_value = raw_transcript(
            "ff-db", organizer_email="ryan@coaching.co"
        )
        data_items.create_item = AsyncMock(side_effect=RuntimeError("insert failed"))

        outcome = await ingestion_service.ingest_transcript("ff-db")

        assert outcome.status == IngestionStatus.FAILED
        mock_session.rollback.assert_awaited()
        assert ledger.entries["ff-db"].status == SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_credential(self, mock_session, mock_loader, mock_embedder, directory, ledger, data_items, pending):
        service = IngestionService(
            mock_session,
            SyncConfig(credentials=[]),
            loader=mock_loader,
            embedder=mock_embedder,
            directory=directory,
            ledger=ledger,
            data_items=data_items,
            pending=pending,
        )

        outcome = await service.ingest_transcript("ff-nocred")

        assert outcome.status == IngestionStatus.FAILED
        assert outcome.reason == "no_credential"
        assert ledger.entries == {}
        mock_loader.get_transcript.assert_not_awaited()
