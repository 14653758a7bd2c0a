from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# -----------------------------
# Stage outcomes
# -----------------------------

class IngestionStage(str, Enum):
    """Last stage a transcript reached in the orchestrator."""
    RECEIVED = "received"
    FETCHED = "fetched"
    CLASSIFIED = "classified"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    PERSISTED = "persisted"
    QUEUED = "queued"
    FAILED = "failed"


class IngestionStatus(str, Enum):
    PERSISTED = "persisted"
    QUEUED = "queued"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class PersistResult(BaseModel):
    data_item_id: str
    chunks_processed: int
    total_chunks: int
    failed_chunks: List[int] = Field(default_factory=list)


class IngestionOutcome(BaseModel):
    """Result of running one transcript through the orchestrator."""
    external_id: str
    status: IngestionStatus
    stage: IngestionStage
    title: Optional[str] = None
    data_item_id: Optional[str] = None
    pending_id: Optional[str] = None
    coach_id: Optional[str] = None
    client_id: Optional[str] = None
    session_type: Optional[str] = None
    matched_via: Optional[str] = None
    unmatched_emails: List[str] = Field(default_factory=list)
    chunks_processed: int = 0
    total_chunks: int = 0
    reason: Optional[str] = None
    credential: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status in (IngestionStatus.PERSISTED, IngestionStatus.QUEUED)


# -----------------------------
# Scheduler run summary
# -----------------------------

class SyncItemResult(BaseModel):
    external_id: str
    title: Optional[str] = None
    credential: Optional[str] = None
    reason: Optional[str] = None


class CredentialSyncResult(BaseModel):
    credential: str
    found: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None


class SyncRunSummary(BaseModel):
    """Aggregated result of one multi-credential sync run."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    credentials: List[CredentialSyncResult] = Field(default_factory=list)
    synced: List[SyncItemResult] = Field(default_factory=list)
    skipped: List[SyncItemResult] = Field(default_factory=list)
    failed: List[SyncItemResult] = Field(default_factory=list)

    @property
    def total_found(self) -> int:
        return sum(c.found for c in self.credentials)


# -----------------------------
# API request / response bodies
# -----------------------------

class ManualImportRequest(BaseModel):
    """Import one Fireflies meeting by id."""
    meeting_id: str = Field(..., min_length=1, description="Fireflies transcript ID")
    coach_id: Optional[str] = Field(None, description="Skip resolution and assign this coach")
    client_id: Optional[str] = Field(None, description="Client to assign alongside coach_id")
    credential_label: Optional[str] = Field(None, description="Label of the credential to fetch with")


class AssignPendingRequest(BaseModel):
    coach_id: str = Field(..., min_length=1)
    client_id: Optional[str] = None


class PendingTranscriptOut(BaseModel):
    id: str
    meeting_id: str
    title: Optional[str] = None
    host_email: Optional[str] = None
    organizer_email: Optional[str] = None
    candidate_emails: List[str] = Field(default_factory=list)
    unmatched_emails: List[str] = Field(default_factory=list)
    session_date: Optional[datetime] = None
    status: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AssignmentResult(BaseModel):
    pending_id: str
    meeting_id: str
    data_item_id: str
    coach_id: str
    client_id: Optional[str] = None
    session_type: str
    chunks_processed: int
    total_chunks: int
