from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from coaching_data.api.deps import (
    get_dispatcher,
    get_ingestion_service,
    get_loader,
    get_pending_service,
    get_sync_config,
)
from coaching_data.core.config import Credential, SyncConfig
from coaching_data.core.exceptions import NotFoundError, ServiceError
from coaching_data.database.connection import check_health
from coaching_data.ingestion.loaders.fireflies_loader import FirefliesLoader
from coaching_data.schemas.ingest import (
    AssignmentResult,
    AssignPendingRequest,
    IngestionOutcome,
    ManualImportRequest,
    PendingTranscriptOut,
    SyncRunSummary,
)
from coaching_data.services.ingestion_service import IngestionService
from coaching_data.services.notification_service import NotificationDispatcher
from coaching_data.services.pending_service import PendingAssignmentService
from coaching_data.services.sync_scheduler import SyncScheduler, background_sync

router = APIRouter(prefix="/fireflies", tags=["Fireflies"])


def _select_credential(config: SyncConfig, label: str) -> Credential:
    for credential in config.credentials:
        if credential.label == label:
            return credential
    raise NotFoundError("Credential", label)


def _default_credential(config: SyncConfig) -> Credential:
    if config.default_credential is None:
        raise ServiceError("fireflies", "No Fireflies credential configured")
    return config.default_credential


@router.post("/import", response_model=IngestionOutcome)
async def import_transcript(
    request: ManualImportRequest,
    background_tasks: BackgroundTasks,
    ingestion: IngestionService = Depends(get_ingestion_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Import a single Fireflies meeting by id.

    Passing ``coach_id`` (and optionally ``client_id``) skips identity
    resolution. Meetings already in the sync ledger come back as
    ``duplicate``.
    """
    credential = None
    if request.credential_label:
        credential = _select_credential(ingestion.config, request.credential_label)

    outcome = await ingestion.ingest_transcript(
        request.meeting_id,
        credential=credential,
        sync_method="manual",
        override_coach_id=request.coach_id,
        override_client_id=request.client_id,
    )

    background_tasks.add_task(dispatcher.dispatch, ingestion.outbox)
    return outcome


@router.get("/pending", response_model=List[PendingTranscriptOut])
async def list_pending(
    limit: int = Query(100, ge=1, le=500),
    service: PendingAssignmentService = Depends(get_pending_service),
):
    """Transcripts waiting for an operator to pick a coach."""
    return await service.list_pending(limit=limit)


@router.post("/pending/{pending_id}/assign", response_model=AssignmentResult)
async def assign_pending(
    pending_id: str,
    request: AssignPendingRequest,
    background_tasks: BackgroundTasks,
    service: PendingAssignmentService = Depends(get_pending_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = await service.assign(pending_id, request.coach_id, request.client_id)
    background_tasks.add_task(dispatcher.dispatch, service.ingestion.outbox)
    return result


@router.post("/sync", response_model=SyncRunSummary)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    ingestion: IngestionService = Depends(get_ingestion_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Run one polling pass over every configured credential now."""
    summary = await SyncScheduler(ingestion.config).run(ingestion)
    background_tasks.add_task(dispatcher.dispatch, ingestion.outbox)
    return summary


@router.get("/transcripts")
async def list_transcripts(
    limit: int = Query(10, ge=1, le=50),
    config: SyncConfig = Depends(get_sync_config),
    loader: FirefliesLoader = Depends(get_loader),
):
    return await loader.list_transcripts(_default_credential(config), limit=limit)


@router.get("/health")
async def fireflies_health(config: SyncConfig = Depends(get_sync_config)):
    """Credential count, database reachability and background sync state."""
    return {
        "status": "ok",
        "credentials": [c.display_name for c in config.credentials],
        "database": await check_health(),
        "background_sync": background_sync.get_status(),
    }
