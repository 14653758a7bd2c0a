"""
Tests for the pending-assignment queue.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from coaching_data.core.exceptions import ConflictError, NotFoundError
from coaching_data.database.models import PendingStatus, SyncStatus
from coaching_data.schemas.ingest import IngestionStatus
from coaching_data.services.notification_service import TranscriptIngested
from coaching_data.services.pending_service import PendingAssignmentService


@pytest.fixture
def pending_service(ingestion_service):
    return PendingAssignmentService(ingestion_service)


@pytest_asyncio.fixture
async def queued_entry(ingestion_service, mock_loader, raw_transcript, pending, outbox):
    """A transcript that could not be resolved and now waits in the queue."""
    mock_loader.get_transcript.return_value = raw_transcript(
        "ff-pending",
        title="Jake Krask and Ryan Session",
        organizer_email="stranger@x.com",
        attendees=["jake@acme.com"],
    )
    outcome = await ingestion_service.ingest_transcript("ff-pending")
    assert outcome.status == IngestionStatus.QUEUED
    outbox.drain()
    return pending.entries[outcome.pending_id]


class TestListPending:

    @pytest.mark.asyncio
    async def test_lists_only_waiting_entries(self, pending_service, queued_entry):
        entries = await pending_service.list_pending()

        assert entries == [queued_entry]

    @pytest.mark.asyncio
    async def test_processed_entries_drop_out(self, pending_service, queued_entry, directory):
        coach = directory.add_coach("ryan@coaching.co")
        await pending_service.assign(queued_entry.id, coach.id)

        assert await pending_service.list_pending() == []


class TestAssign:
    """Operator assignment runs the persistence path."""

    @pytest.mark.asyncio
    async def test_assign_persists_and_marks_processed(
        self, pending_service, queued_entry, directory, data_items, ledger, outbox, mock_session
    ):
        coach = directory.add_coach("ryan@coaching.co", "Ryan")
        client = directory.add_client("jake@acme.com", "Jake", organization_id="org-1")

        result = await pending_service.assign(queued_entry.id, coach.id, client.id)

        item = data_items.items[0]
        assert result.data_item_id == item.id
        assert result.coach_id == coach.id
        assert result.client_id == client.id
        assert result.session_type == "client_coaching"
        assert result.chunks_processed == result.total_chunks

        assert item.coach_id == coach.id
        assert item.client_organization_id == "org-1"
        assert item.metadata_["matched_via"] == "explicit_override"
        assert item.metadata_["synced_via"] == "pending_assignment"
        assert item.raw_content.startswith("Coach:")

        assert queued_entry.status == PendingStatus.PROCESSED
        assert queued_entry.assigned_coach_id == coach.id
        assert queued_entry.assigned_client_id == client.id
        assert queued_entry.processed_at is not None

        ledger_entry = ledger.entries["ff-pending"]
        assert ledger_entry.status == SyncStatus.SKIPPED
        assert ledger_entry.data_item_id == item.id

        mock_session.commit.assert_awaited()
        assert [type(e) for e in outbox.pending] == [TranscriptIngested]

    @pytest.mark.asyncio
    async def test_assign_without_client(self, pending_service, queued_entry, directory):
        coach = directory.add_coach("ryan@coaching.co")

        result = await pending_service.assign(queued_entry.id, coach.id)

        assert result.client_id is None
        assert result.session_type != "client_coaching"

    @pytest.mark.asyncio
    async def test_assign_does_not_refetch(self, pending_service, queued_entry, directory, mock_loader):
        coach = directory.add_coach("ryan@coaching.co")
        mock_loader.get_transcript.reset_mock()

        await pending_service.assign(queued_entry.id, coach.id)

        mock_loader.get_transcript.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assign_records_ledger_when_missing(self, pending_service, queued_entry, directory, ledger):
        coach = directory.add_coach("ryan@coaching.co")
        ledger.entries.clear()

        result = await pending_service.assign(queued_entry.id, coach.id)

        assert ledger.entries["ff-pending"].status == SyncStatus.SYNCED
        assert ledger.entries["ff-pending"].data_item_id == result.data_item_id

    @pytest.mark.asyncio
    async def test_unknown_entry(self, pending_service, directory):
        coach = directory.add_coach("ryan@coaching.co")

        with pytest.raises(NotFoundError):
            await pending_service.assign("missing", coach.id)

    @pytest.mark.asyncio
    async def test_unknown_coach(self, pending_service, queued_entry, data_items):
        with pytest.raises(NotFoundError):
            await pending_service.assign(queued_entry.id, "missing-coach")

        assert data_items.items == []
        assert queued_entry.status == PendingStatus.PENDING_COACH_ASSIGNMENT

    @pytest.mark.asyncio
    async def test_already_processed(self, pending_service, queued_entry, directory, data_items):
        coach = directory.add_coach("ryan@coaching.co")
        await pending_service.assign(queued_entry.id, coach.id)

        with pytest.raises(ConflictError):
            await pending_service.assign(queued_entry.id, coach.id)

        assert len(data_items.items) == 1

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, pending_service, queued_entry, directory, data_items, mock_session):
        coach = directory.add_coach("ryan@coaching.co")
        data_items.create_item = AsyncMock(side_effect=RuntimeError("insert failed"))

        with pytest.raises(RuntimeError):
            await pending_service.assign(queued_entry.id, coach.id)

        mock_session.rollback.assert_awaited()
        assert queued_entry.status == PendingStatus.PENDING_COACH_ASSIGNMENT


class TestAssignLedgerGuards:
    """Assignment never gives a meeting a second DataItem."""

    @pytest.mark.asyncio
    async def test_synced_meeting_is_conflict(self, pending_service, queued_entry, directory, data_items, ledger):
        coach = directory.add_coach("ryan@coaching.co")
        ledger_entry = ledger.entries["ff-pending"]
        ledger_entry.status = SyncStatus.SYNCED
        ledger_entry.data_item_id = "existing-item"

        with pytest.raises(ConflictError):
            await pending_service.assign(queued_entry.id, coach.id)

        assert ledger_entry.data_item_id == "existing-item"
        assert data_items.items == []
        assert queued_entry.status == PendingStatus.PENDING_COACH_ASSIGNMENT

    @pytest.mark.asyncio
    async def test_skipped_row_with_item_is_conflict(self, pending_service, queued_entry, directory, data_items, ledger):
        coach = directory.add_coach("ryan@coaching.co")
        ledger.entries["ff-pending"].data_item_id = "existing-item"

        with pytest.raises(ConflictError):
            await pending_service.assign(queued_entry.id, coach.id)

        assert data_items.items == []

    @pytest.mark.asyncio
    async def test_failed_row_becomes_synced(self, pending_service, queued_entry, directory, ledger):
        coach = directory.add_coach("ryan@coaching.co")
        ledger.entries["ff-pending"].status = SyncStatus.FAILED

        result = await pending_service.assign(queued_entry.id, coach.id)

        assert ledger.entries["ff-pending"].status == SyncStatus.SYNCED
        assert ledger.entries["ff-pending"].data_item_id == result.data_item_id

    @pytest.mark.asyncio
    async def test_ledger_race_rolls_back(self, pending_service, queued_entry, directory, ledger, mock_session, outbox):
        coach = directory.add_coach("ryan@coaching.co")
        ledger.entries.clear()
        ledger.conflict_on.add("ff-pending")
        mock_session.commit.reset_mock()

        with pytest.raises(ConflictError):
            await pending_service.assign(queued_entry.id, coach.id)

        mock_session.rollback.assert_awaited()
        mock_session.commit.assert_not_awaited()
        assert len(outbox) == 0
