from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from coaching_data.schemas.transcript import FormattedTranscript, RawTranscript


def _session_date(raw: RawTranscript) -> Optional[str]:
    """ISO date (UTC) of the meeting, from the epoch-millisecond ``date`` field."""
    if raw.date is None:
        return None
    try:
        return datetime.fromtimestamp(raw.date / 1000, tz=timezone.utc).date().isoformat()
    except (OverflowError, OSError, ValueError):
        return None


def _participant_names(raw: RawTranscript) -> List[str]:
    if raw.meeting_attendees:
        names = [a.display_name or a.name or a.email for a in raw.meeting_attendees]
        return [n for n in names if n]
    return list(raw.participants or [])


def format_transcript(raw: RawTranscript) -> FormattedTranscript:
    """
    Convert a Fireflies transcript into the form that is chunked and stored.

    Content is one ``speaker: text`` line per utterance. A missing title
    falls back to ``Coaching Session - <date>``.
    """
    lines = []
    for sentence in raw.sentences or []:
        text = (sentence.text or "").strip()
        if not text:
            continue
        lines.append(f"{sentence.speaker_name or 'Unknown'}: {text}")

    session_date = _session_date(raw)
    title = raw.title or f"Coaching Session - {raw.date_string or session_date or 'undated'}"

    metadata = {
        "source": "fireflies",
        "fireflies_id": raw.id,
        "duration_seconds": raw.duration,
        "transcript_url": raw.transcript_url,
        "speakers": [s.model_dump(exclude_none=True) for s in (raw.speakers or [])],
        "summary": raw.summary,
        "participants": _participant_names(raw),
    }

    return FormattedTranscript(
        external_id=raw.id,
        title=title,
        content="\n".join(lines),
        session_date=session_date,
        host_email=raw.host_email,
        organizer_email=raw.organizer_email,
        attendee_emails=raw.attendee_emails,
        metadata=metadata,
    )
