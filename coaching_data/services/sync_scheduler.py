"""
Multi-credential polling.

``SyncScheduler`` walks the configured Fireflies credentials one after the
other, lists recent meetings for each and hands unseen ones to the
ingestion service. ``BackgroundSyncService`` repeats that on an interval
for as long as the application is up.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from coaching_data.core.config import SyncConfig, build_sync_config, settings
from coaching_data.core.exceptions import CredentialError
from coaching_data.database.connection import get_db_context
from coaching_data.embeddings.client import EmbeddingClient
from coaching_data.ingestion.loaders.fireflies_loader import FirefliesLoader
from coaching_data.schemas.ingest import (
    CredentialSyncResult,
    IngestionOutcome,
    IngestionStage,
    IngestionStatus,
    SyncItemResult,
    SyncRunSummary,
)
from coaching_data.services.ingestion_service import IngestionService
from coaching_data.services.notification_service import (
    EventOutbox,
    NotificationDispatcher,
    build_default_dispatcher,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncScheduler:
    """One pass over every configured credential."""

    def __init__(self, config: SyncConfig) -> None:
        self.config = config

    async def run(self, ingestion: IngestionService) -> SyncRunSummary:
        """
        Poll every credential in order and ingest what has not been seen.

        A meeting visible to several credentials is only processed once per
        run: ids are checked against this run's seen set and the ledger
        before anything is fetched.
        """
        summary = SyncRunSummary(started_at=utc_now())
        seen: Set[str] = set()

        logger.info(f"🚀 Starting Fireflies sync across {len(self.config.credentials)} credential(s)")

        for position, credential in enumerate(self.config.credentials):
            if position > 0 and self.config.credential_delay_seconds > 0:
                await asyncio.sleep(self.config.credential_delay_seconds)

            result = CredentialSyncResult(credential=credential.display_name)
            summary.credentials.append(result)

            try:
                listed = await ingestion.loader.list_transcripts(credential, limit=self.config.list_limit)
            except Exception as e:
                error = CredentialError(credential.display_name, str(e))
                logger.error(f"🔴 {error.message}")
                result.error = error.message
                continue

            result.found = len(listed)
            logger.info(f"[{credential.display_name}] found {result.found} transcript(s)")

            for item in listed:
                external_id = item["id"]
                title = item.get("title")

                if external_id in seen:
                    self._skip(result, summary, external_id, title, credential.display_name, "seen_this_run")
                    continue
                seen.add(external_id)

                if await ingestion.ledger.is_settled(external_id):
                    self._skip(result, summary, external_id, title, credential.display_name, "already_in_ledger")
                    continue

                try:
                    outcome = await ingestion.ingest_transcript(
                        external_id,
                        credential=credential,
                        sync_method="poll",
                    )
                except Exception as e:
                    logger.error(f"[{external_id}] unexpected ingestion error: {e}")
                    outcome = IngestionOutcome(
                        external_id=external_id,
                        status=IngestionStatus.FAILED,
                        stage=IngestionStage.FAILED,
                        reason=str(e),
                        credential=credential.display_name,
                    )

                self._tally(result, summary, outcome, title)

        summary.finished_at = utc_now()
        logger.info(
            f"✅ Sync complete: {len(summary.synced)} synced, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
        )
        return summary

    @staticmethod
    def _skip(
        result: CredentialSyncResult,
        summary: SyncRunSummary,
        external_id: str,
        title: Optional[str],
        credential: str,
        reason: str,
    ) -> None:
        result.skipped += 1
        summary.skipped.append(
            SyncItemResult(external_id=external_id, title=title, credential=credential, reason=reason)
        )

    @staticmethod
    def _tally(
        result: CredentialSyncResult,
        summary: SyncRunSummary,
        outcome: IngestionOutcome,
        title: Optional[str],
    ) -> None:
        item = SyncItemResult(
            external_id=outcome.external_id,
            title=outcome.title or title,
            credential=result.credential,
            reason=outcome.reason,
        )
        if outcome.status == IngestionStatus.PERSISTED:
            result.synced += 1
            summary.synced.append(item)
        elif outcome.status == IngestionStatus.FAILED:
            result.failed += 1
            summary.failed.append(item)
        else:
            result.skipped += 1
            summary.skipped.append(item)


class BackgroundSyncService:
    """
    Runs the scheduler every ``SYNC_INTERVAL_MINUTES``.

    Each pass gets its own database session; notifications are dispatched
    once the pass has finished.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        interval_minutes: Optional[int] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._config = config
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES
        self._dispatcher = dispatcher
        self.loader: Optional[FirefliesLoader] = None
        self.embedder: Optional[EmbeddingClient] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_summary: Optional[SyncRunSummary] = None

    @property
    def config(self) -> SyncConfig:
        if self._config is None:
            self._config = build_sync_config()
        return self._config

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = build_default_dispatcher()
        return self._dispatcher

    async def start(self) -> None:
        """Start the sync loop."""
        if self._running:
            logger.info("Background sync already running")
            return

        if not self.config.credentials:
            logger.warning("No Fireflies credentials configured - background sync disabled")
            return

        self.loader = self.loader or FirefliesLoader()
        self.embedder = self.embedder or EmbeddingClient()
        self._running = True
        self._task = asyncio.create_task(self._run_sync_loop())
        logger.info("Background sync service started")

    async def stop(self) -> None:
        """Stop the sync loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Background sync service stopped")

    async def _run_sync_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Background sync failed: {e}")

            if self._running:
                logger.info(f"Next sync in {self.interval_minutes} minutes")
                await asyncio.sleep(self.interval_minutes * 60)

    async def run_once(self) -> Optional[SyncRunSummary]:
        """Run one scheduler pass unless one is already in progress."""
        if self._lock.locked():
            logger.warning("Sync already in progress, skipping")
            return None

        async with self._lock:
            outbox = EventOutbox()
            try:
                async with get_db_context() as session:
                    service = IngestionService(
                        session,
                        self.config,
                        loader=self.loader,
                        embedder=self.embedder,
                        outbox=outbox,
                    )
                    summary = await SyncScheduler(self.config).run(service)
            except Exception as e:
                self.last_error = str(e)
                raise
            finally:
                self.last_run = utc_now()
                await self.dispatcher.dispatch(outbox)

            self.last_error = None
            self.last_summary = summary
            return summary

    def get_status(self) -> Dict[str, Any]:
        summary = self.last_summary
        return {
            "running": self._running,
            "sync_in_progress": self._lock.locked(),
            "interval_minutes": self.interval_minutes,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "last_summary": {
                "found": summary.total_found,
                "synced": len(summary.synced),
                "skipped": len(summary.skipped),
                "failed": len(summary.failed),
            } if summary else None,
        }


# Global instance
background_sync = BackgroundSyncService()
