"""
Webhook routes for Fireflies integration.

These endpoints receive webhook events from Fireflies when
transcripts are ready, allowing automatic ingestion.

To configure in Fireflies:
1. Go to Fireflies Settings > Integrations > Webhooks
2. Add a new webhook with URL: https://your-domain/api/v1/webhook/fireflies
3. Select events: "Transcription completed"
4. (Optional) Add a webhook secret for verification
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from typing import Optional
import json
import logging

from coaching_data.api.deps import get_dispatcher, get_sync_config, get_webhook_service
from coaching_data.core.config import SyncConfig
from coaching_data.core.exceptions import WebhookError, WebhookSignatureError
from coaching_data.services.notification_service import NotificationDispatcher
from coaching_data.services.webhook_service import WebhookService
from coaching_data.schemas.webhook import (
    FirefliesWebhookPayload,
    WebhookResponse,
    WebhookHealthResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhooks"])


@router.get("/health", response_model=WebhookHealthResponse)
async def webhook_health(config: SyncConfig = Depends(get_sync_config)):
    """
    Check webhook endpoint health and configuration status.

    Use this endpoint to verify the webhook is accessible
    and properly configured.
    """
    service = WebhookService()
    is_enabled = service.is_webhook_enabled(config)

    return WebhookHealthResponse(
        status="ok",
        webhook_enabled=is_enabled,
        signature_verification=service.secret is not None,
        message="Webhook endpoint is ready" if is_enabled else "Webhook disabled - no Fireflies credential configured",
    )


@router.post("/fireflies", response_model=WebhookResponse)
async def fireflies_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    webhook_service: WebhookService = Depends(get_webhook_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    x_hub_signature: Optional[str] = Header(None, alias="x-hub-signature"),
    x_fireflies_signature: Optional[str] = Header(None, alias="X-Fireflies-Signature"),
):
    """
    Receive Fireflies webhook events.

    **Security:**
    - Verifies the HMAC-SHA256 signature when FIREFLIES_WEBHOOK_SECRET is set
    - Notifications are sent after the response has been returned
    """
    if not webhook_service.is_webhook_enabled():
        logger.warning("Webhook received but no Fireflies credential configured")
        raise HTTPException(
            status_code=503,
            detail="Webhook processing disabled - no Fireflies credential configured",
        )

    # Signature is computed over the raw body
    body = await request.body()

    signature = x_hub_signature or x_fireflies_signature
    if not webhook_service.verify_signature(body, signature):
        raise WebhookSignatureError()

    try:
        payload = FirefliesWebhookPayload(**json.loads(body))
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to parse webhook payload: {e}")
        raise WebhookError(f"Invalid webhook payload: {e}")

    logger.info(f"Received Fireflies webhook: {payload.eventType} for {payload.meetingId}")

    result = await webhook_service.process_webhook(payload)

    if webhook_service.ingestion_service is not None:
        background_tasks.add_task(dispatcher.dispatch, webhook_service.ingestion_service.outbox)

    return WebhookResponse(**result)
