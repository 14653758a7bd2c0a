"""
Webhook service for handling Fireflies webhook events.

Verifies the signature of incoming deliveries and hands completed
transcriptions to the ingestion service.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from coaching_data.core.config import SyncConfig, build_sync_config, settings
from coaching_data.ingestion.loaders.fireflies_loader import verify_webhook_signature
from coaching_data.schemas.ingest import IngestionStatus
from coaching_data.schemas.webhook import FirefliesWebhookPayload
from coaching_data.services.ingestion_service import IngestionService

logger = logging.getLogger(__name__)


class WebhookService:
    """Service for processing Fireflies webhooks."""

    def __init__(
        self,
        ingestion_service: Optional[IngestionService] = None,
        secret: Optional[str] = None,
    ) -> None:
        self.ingestion_service = ingestion_service
        self._secret = secret

    @property
    def secret(self) -> Optional[str]:
        secret = self._secret if self._secret is not None else settings.FIREFLIES_WEBHOOK_SECRET
        if not secret or secret == "__MISSING__":
            return None
        return secret

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verify the webhook signature when a secret is configured.

        With no secret configured every delivery is accepted (development
        mode) and a warning is logged.
        """
        if self.secret is None:
            logger.warning("Webhook signature verification disabled - no secret configured")
            return True

        if not signature:
            logger.warning("No signature provided in webhook request")
            return False

        is_valid = verify_webhook_signature(payload, signature, self.secret)
        if not is_valid:
            logger.warning("Webhook signature verification failed")
        return is_valid

    async def process_webhook(self, payload: FirefliesWebhookPayload) -> Dict[str, Any]:
        """
        Process a parsed Fireflies webhook.

        Only "Transcription completed" events are ingested; anything else is
        acknowledged and dropped.
        """
        logger.info(f"Processing webhook event: {payload.eventType} for meeting: {payload.meetingId}")

        if not payload.is_transcription_completed:
            logger.info(f"Ignoring webhook event type: {payload.eventType}")
            return {
                "success": True,
                "message": f"Event type '{payload.eventType}' acknowledged but not processed",
                "transcript_id": payload.meetingId,
                "status": IngestionStatus.IGNORED.value,
            }

        if self.ingestion_service is None:
            raise RuntimeError("WebhookService has no ingestion service configured")

        outcome = await self.ingestion_service.ingest_transcript(
            payload.meetingId,
            sync_method="webhook",
        )

        messages = {
            IngestionStatus.PERSISTED: "Transcript ingested successfully",
            IngestionStatus.QUEUED: "Transcript queued for coach assignment",
            IngestionStatus.DUPLICATE: "Transcript already processed",
            IngestionStatus.FAILED: f"Failed to ingest transcript: {outcome.reason}",
        }

        return {
            "success": outcome.status != IngestionStatus.FAILED,
            "message": messages.get(outcome.status, outcome.status.value),
            "transcript_id": payload.meetingId,
            "status": outcome.status.value,
            "data_item_id": outcome.data_item_id,
            "chunks_created": outcome.chunks_processed,
        }

    def is_webhook_enabled(self, config: Optional[SyncConfig] = None) -> bool:
        """Webhooks are enabled once at least one Fireflies credential is configured."""
        if config is None:
            config = self.ingestion_service.config if self.ingestion_service else build_sync_config()
        return bool(config.credentials)
