"""
Schemas for Fireflies transcripts as fetched and as normalized for storage.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class Sentence(BaseModel):
    """One speaker utterance."""
    index: Optional[int] = None
    speaker_id: Optional[Union[int, str]] = None
    speaker_name: Optional[str] = None
    text: Optional[str] = None
    raw_text: Optional[str] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    model_config = {"extra": "allow"}


class Speaker(BaseModel):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None

    model_config = {"extra": "allow"}


class Attendee(BaseModel):
    """Entry of ``meeting_attendees``."""
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    name: Optional[str] = None

    model_config = {"extra": "allow", "populate_by_name": True}


class RawTranscript(BaseModel):
    """
    Transcript as returned by the Fireflies ``transcript`` query.

    Only lives for the duration of one ingestion pass.
    """
    id: str
    title: Optional[str] = None
    date: Optional[float] = Field(None, description="Meeting date as epoch milliseconds")
    date_string: Optional[str] = Field(None, alias="dateString")
    duration: Optional[float] = None
    host_email: Optional[str] = None
    organizer_email: Optional[str] = None
    participants: Optional[List[str]] = None
    transcript_url: Optional[str] = None
    sentences: Optional[List[Sentence]] = None
    speakers: Optional[List[Speaker]] = None
    summary: Optional[Dict[str, Any]] = None
    meeting_attendees: Optional[List[Attendee]] = None

    model_config = {"extra": "allow", "populate_by_name": True}

    @property
    def attendee_emails(self) -> List[str]:
        return [a.email for a in (self.meeting_attendees or []) if a.email]


class FormattedTranscript(BaseModel):
    """
    Normalized transcript ready for chunking and storage.

    Stored verbatim on pending entries, so it must round-trip through JSON.
    """
    external_id: str
    title: str
    content: str
    session_date: Optional[str] = Field(None, description="ISO date (YYYY-MM-DD)")
    host_email: Optional[str] = None
    organizer_email: Optional[str] = None
    attendee_emails: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
