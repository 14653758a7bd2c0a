"""
Fireflies webhook request/response bodies.

Fireflies posts ``{"meetingId": ..., "eventType": ..., "clientReferenceId": ...}``
and signs the raw body with the shared secret. The transcript itself is
always re-fetched through the GraphQL API.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEventType(str, Enum):
    TRANSCRIPTION_COMPLETED = "Transcription completed"


class FirefliesWebhookPayload(BaseModel):
    # Fireflies adds fields without notice; unknown keys are accepted and ignored
    model_config = ConfigDict(extra="allow")

    meetingId: str = Field(..., min_length=1, description="Fireflies transcript/meeting ID")
    eventType: str = Field(..., description="Type of webhook event")
    clientReferenceId: Optional[str] = Field(None, description="Custom reference ID if set")
    title: Optional[str] = None

    @property
    def is_transcription_completed(self) -> bool:
        return self.eventType == WebhookEventType.TRANSCRIPTION_COMPLETED.value


class WebhookResponse(BaseModel):
    success: bool
    message: str
    transcript_id: Optional[str] = None
    status: Optional[str] = Field(None, description="persisted, queued, duplicate, failed or ignored")
    data_item_id: Optional[str] = None
    chunks_created: Optional[int] = None


class WebhookHealthResponse(BaseModel):
    status: str
    webhook_enabled: bool
    signature_verification: bool
    message: str
