"""
Notification outbox and dispatcher.

The ingestion service only records what happened as typed events in an
``EventOutbox``. A ``NotificationDispatcher`` drains the outbox after the
transcript has been committed and forwards each event to a sink. Delivery
problems are logged and never reach the ingestion path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx

from coaching_data.core.config import settings
from coaching_data.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


# -----------------------------
# Events
# -----------------------------

@dataclass(frozen=True)
class TranscriptIngested:
    meeting_id: str
    data_item_id: str
    title: str
    coach_name: str
    session_type: str
    chunks_processed: int
    total_chunks: int
    sync_method: str
    client_name: Optional[str] = None
    session_date: Optional[str] = None


@dataclass(frozen=True)
class ClientNotFound:
    meeting_id: str
    data_item_id: str
    title: str
    coach_name: str
    unmatched_emails: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TranscriptQueued:
    meeting_id: str
    pending_id: str
    title: str
    candidate_emails: List[str] = field(default_factory=list)


NotificationEvent = Union[TranscriptIngested, ClientNotFound, TranscriptQueued]


class EventOutbox:
    """In-memory list of events produced while ingesting."""

    def __init__(self) -> None:
        self._events: List[NotificationEvent] = []

    def emit(self, event: NotificationEvent) -> None:
        self._events.append(event)

    def drain(self) -> List[NotificationEvent]:
        events, self._events = self._events, []
        return events

    @property
    def pending(self) -> List[NotificationEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


# -----------------------------
# Sinks
# -----------------------------

class NotificationSink(Protocol):
    async def send(self, event: NotificationEvent) -> None: ...


SESSION_TYPE_EMOJIS: Dict[str, str] = {
    "client_coaching": "🎯",
    "internal_meeting": "🏢",
    "staff_1on1": "👥",
    "training": "📚",
    "sales_call": "💼",
    "personal_development": "🌱",
    "360_interview": "🔄",
    "networking": "🤝",
    "unmatched_client": "❓",
    "untagged": "📝",
}


def _field(label: str, value: Any) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


class SlackNotificationSink:
    """Posts Block Kit messages to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))

    async def close(self) -> None:
        await self.client.aclose()

    def build_payload(self, event: NotificationEvent) -> Dict[str, Any]:
        if isinstance(event, TranscriptIngested):
            emoji = SESSION_TYPE_EMOJIS.get(event.session_type, "📝")
            header = f"{emoji} New Transcript Saved"
            client_info = f"*Client:*\n{event.client_name}" if event.client_name else "_No client linked_"
            fields = [
                _field("Coach", event.coach_name),
                {"type": "mrkdwn", "text": client_info},
                _field("Type", event.session_type),
                _field("Date", event.session_date or "unknown"),
                _field("Chunks", f"{event.chunks_processed}/{event.total_chunks}"),
                _field("Via", event.sync_method),
            ]
        elif isinstance(event, ClientNotFound):
            header = "❓ Transcript Saved Without Client"
            fields = [
                _field("Coach", event.coach_name),
                _field("Unmatched emails", ", ".join(event.unmatched_emails) or "none"),
            ]
        else:
            header = "⏳ Transcript Awaiting Coach Assignment"
            fields = [
                _field("Meeting", event.meeting_id),
                _field("Candidate emails", ", ".join(event.candidate_emails) or "none"),
            ]

        return {
            "text": header,
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
                {"type": "section", "text": {"type": "mrkdwn", "text": f"*{event.title}*"}},
                {"type": "section", "fields": fields},
            ],
        }

    async def send(self, event: NotificationEvent) -> None:
        try:
            response = await self.client.post(self.webhook_url, json=self.build_payload(event))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Slack webhook failed: {e}") from e


# -----------------------------
# Dispatcher
# -----------------------------

class NotificationDispatcher:
    """Forwards outbox events to a sink; never raises."""

    def __init__(self, sink: Optional[NotificationSink] = None) -> None:
        self.sink = sink

    async def close(self) -> None:
        close = getattr(self.sink, "close", None)
        if close is not None:
            await close()

    async def dispatch(self, outbox: EventOutbox) -> int:
        """Drain ``outbox`` and deliver each event. Returns the number delivered."""
        events = outbox.drain()
        if not events:
            return 0

        if self.sink is None:
            logger.debug(f"No notification sink configured; dropping {len(events)} event(s)")
            return 0

        delivered = 0
        for event in events:
            try:
                await self.sink.send(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Notification for {event.meeting_id} not delivered: {e}")
        return delivered


def build_default_dispatcher() -> NotificationDispatcher:
    """Dispatcher using Slack when SLACK_WEBHOOK_URL is set."""
    if settings.SLACK_WEBHOOK_URL:
        return NotificationDispatcher(SlackNotificationSink(settings.SLACK_WEBHOOK_URL))
    return NotificationDispatcher()
