"""
Root pytest configuration for coaching data layer tests.

Registers custom command line options and markers, and provides in-memory
stand-ins for the repositories so services can be tested without Postgres.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock

import pytest

from coaching_data.core.config import Credential, SyncConfig
from coaching_data.core.exceptions import ChunkPersistenceError
from coaching_data.database.models import (
    Client,
    Coach,
    DataChunk,
    DataItem,
    PendingStatus,
    PendingTranscript,
    SyncLedgerEntry,
    SyncStatus,
)
from coaching_data.repositories.data_item_repository import parse_session_date
from coaching_data.repositories.pending_repository import session_timestamp
from coaching_data.schemas.transcript import RawTranscript
from coaching_data.services.ingestion_service import IngestionService
from coaching_data.services.notification_service import EventOutbox


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires Postgres and a Fireflies key)",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require external services)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration is provided."""
    if config.getoption("--integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="Need --integration option to run integration tests"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============== In-memory repositories ==============

class FakeDirectory:
    """Coach / client directory backed by dicts."""

    def __init__(self):
        self.coaches: Dict[str, Coach] = {}
        self.clients: Dict[str, Client] = {}

    def add_coach(self, email: str, name: str = "Coach", coach_id: Optional[str] = None) -> Coach:
        coach = Coach(id=coach_id or str(uuid.uuid4()), email=email, name=name)
        self.coaches[coach.id] = coach
        return coach

    def add_client(
        self,
        email: Optional[str],
        name: str = "Client",
        primary_coach_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> Client:
        client = Client(
            id=client_id or str(uuid.uuid4()),
            email=email,
            name=name,
            primary_coach_id=primary_coach_id,
            client_organization_id=organization_id,
        )
        self.clients[client.id] = client
        return client

    async def find_coach_by_email(self, email: str) -> Optional[Coach]:
        email = email.strip().lower()
        return next((c for c in self.coaches.values() if c.email.lower() == email), None)

    async def find_coach_by_id(self, coach_id: str) -> Optional[Coach]:
        return self.coaches.get(coach_id)

    async def find_client_by_email(self, email: str) -> Optional[Client]:
        email = email.strip().lower()
        return next(
            (c for c in self.clients.values() if c.email and c.email.lower() == email),
            None,
        )

    async def find_client_by_id(self, client_id: str) -> Optional[Client]:
        return self.clients.get(client_id)


class FakeLedger:
    """Ledger keyed by meeting id; only a ``failed`` row may be written again."""

    def __init__(self):
        self.entries: Dict[str, SyncLedgerEntry] = {}
        self.conflict_on: Set[str] = set()

    async def get(self, meeting_id: str) -> Optional[SyncLedgerEntry]:
        return self.entries.get(meeting_id)

    async def is_settled(self, meeting_id: str) -> bool:
        entry = self.entries.get(meeting_id)
        return entry is not None and entry.status != SyncStatus.FAILED

    async def record(
        self,
        meeting_id,
        status,
        data_item_id=None,
        error_message=None,
    ) -> Optional[SyncLedgerEntry]:
        if meeting_id in self.conflict_on:
            return None
        existing = self.entries.get(meeting_id)
        if existing is not None:
            if existing.status != SyncStatus.FAILED:
                return None
            existing.status = status
            existing.data_item_id = data_item_id
            existing.error_message = error_message
            return existing
        entry = SyncLedgerEntry(
            id=str(uuid.uuid4()),
            fireflies_meeting_id=meeting_id,
            status=status,
            data_item_id=data_item_id,
            error_message=error_message,
        )
        self.entries[meeting_id] = entry
        return entry

    async def attach_data_item(self, meeting_id: str, data_item_id: str) -> Optional[SyncLedgerEntry]:
        entry = self.entries.get(meeting_id)
        if entry is not None:
            entry.data_item_id = data_item_id
        return entry


class FakeDataItems:
    """Collects created items and chunks; chunk indexes in ``fail_on`` raise."""

    def __init__(self):
        self.items: List[DataItem] = []
        self.chunks: List[DataChunk] = []
        self.fail_on: Set[int] = set()

    async def create_item(
        self,
        coach_id,
        raw_content,
        metadata,
        client_id=None,
        client_organization_id=None,
        session_date=None,
    ) -> DataItem:
        item = DataItem(
            id=str(uuid.uuid4()),
            data_type="transcript",
            coach_id=coach_id,
            client_id=client_id,
            client_organization_id=client_organization_id,
            raw_content=raw_content,
            metadata_=metadata,
            session_date=parse_session_date(session_date),
        )
        self.items.append(item)
        return item

    async def add_chunk(self, data_item_id, chunk_index, content, embedding, metadata) -> DataChunk:
        if chunk_index in self.fail_on:
            raise ChunkPersistenceError(data_item_id, chunk_index, "insert failed")
        chunk = DataChunk(
            id=str(uuid.uuid4()),
            data_item_id=data_item_id,
            chunk_index=chunk_index,
            content=content,
            embedding=embedding,
            metadata_=metadata,
        )
        self.chunks.append(chunk)
        return chunk


class FakePending:
    """Pending-assignment queue kept in insertion order."""

    def __init__(self):
        self.entries: Dict[str, PendingTranscript] = {}

    async def create_entry(self, transcript, candidate_emails, unmatched_emails) -> PendingTranscript:
        entry = PendingTranscript(
            id=str(uuid.uuid4()),
            meeting_id=transcript.external_id,
            title=transcript.title,
            host_email=transcript.host_email,
            organizer_email=transcript.organizer_email,
            candidate_emails=list(candidate_emails),
            unmatched_emails=list(unmatched_emails),
            session_date=session_timestamp(transcript.session_date),
            transcript_data=transcript.model_dump(mode="json"),
            status=PendingStatus.PENDING_COACH_ASSIGNMENT,
            created_at=datetime.now(timezone.utc),
        )
        self.entries[entry.id] = entry
        return entry

    async def get_by_id(self, entry_id: str) -> Optional[PendingTranscript]:
        return self.entries.get(entry_id)

    async def list_pending(self, limit: int = 100) -> List[PendingTranscript]:
        waiting = [e for e in self.entries.values() if e.status == PendingStatus.PENDING_COACH_ASSIGNMENT]
        return list(reversed(waiting))[:limit]

    async def mark_processed(self, entry, coach_id, client_id=None) -> PendingTranscript:
        entry.status = PendingStatus.PROCESSED
        entry.assigned_coach_id = coach_id
        entry.assigned_client_id = client_id
        entry.processed_at = datetime.now(timezone.utc)
        return entry


# ============== Builders ==============

def make_raw_transcript(
    transcript_id: str = "ff-1",
    title: Optional[str] = "Weekly Session",
    organizer_email: Optional[str] = None,
    host_email: Optional[str] = None,
    attendees: Optional[List[str]] = None,
    sentences: Optional[List[tuple]] = None,
    date: Optional[float] = 1736208000000,
) -> RawTranscript:
    """RawTranscript as Fireflies would return it; ``sentences`` are (speaker, text) pairs."""
    if sentences is None:
        sentences = [("Coach", "How was your week?"), ("Client", "Busy but good.")]
    return RawTranscript.model_validate({
        "id": transcript_id,
        "title": title,
        "date": date,
        "duration": 1800,
        "organizer_email": organizer_email,
        "host_email": host_email,
        "sentences": [
            {"index": i, "speaker_name": speaker, "text": text}
            for i, (speaker, text) in enumerate(sentences)
        ],
        "meeting_attendees": [{"email": email} for email in (attendees or [])],
    })


# ============== Fixtures ==============

@pytest.fixture
def credential():
    return Credential(api_key="ff-key-primary-1234", label="primary")


@pytest.fixture
def sync_config(credential):
    return SyncConfig(
        credentials=[credential],
        credential_delay_seconds=0,
        chunk_size=5,
        chunk_overlap=1,
    )


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def data_items():
    return FakeDataItems()


@pytest.fixture
def pending():
    return FakePending()


@pytest.fixture
def mock_loader():
    loader = MagicMock()
    loader.get_transcript = AsyncMock(return_value=make_raw_transcript())
    loader.list_transcripts = AsyncMock(return_value=[])
    return loader


@pytest.fixture
def mock_embedder():
    embedder = MagicMock()
    embedder.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return embedder


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def outbox():
    return EventOutbox()


@pytest.fixture
def ingestion_service(
    mock_session,
    sync_config,
    mock_loader,
    mock_embedder,
    directory,
    ledger,
    data_items,
    pending,
    outbox,
):
    return IngestionService(
        mock_session,
        sync_config,
        loader=mock_loader,
        embedder=mock_embedder,
        directory=directory,
        ledger=ledger,
        data_items=data_items,
        pending=pending,
        outbox=outbox,
    )


@pytest.fixture
def raw_transcript():
    """Builder for RawTranscript payloads; see ``make_raw_transcript``."""
    return make_raw_transcript
