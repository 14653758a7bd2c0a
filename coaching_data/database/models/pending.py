"""
Transcripts waiting for an operator to pick a coach.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, DateTime, Index, func, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from coaching_data.database.models.base import Base, generate_uuid


class PendingStatus(str, Enum):
    PENDING_COACH_ASSIGNMENT = "pending_coach_assignment"
    PROCESSED = "processed"


class PendingTranscript(Base):
    """
    A transcript with no resolvable coach.

    ``transcript_data`` holds the formatted transcript so assignment never
    has to go back to Fireflies.
    """

    __tablename__ = "fireflies_pending"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    meeting_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    host_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    organizer_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    candidate_emails: Mapped[List[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    unmatched_emails: Mapped[List[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    session_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    transcript_data: Mapped[dict] = mapped_column(JSONB, nullable=False)

    status: Mapped[PendingStatus] = mapped_column(
        SQLEnum(
            PendingStatus,
            native_enum=False,
            create_constraint=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=PendingStatus.PENDING_COACH_ASSIGNMENT,
        nullable=False,
    )
    assigned_coach_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_client_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_fireflies_pending_status_created", "status", "created_at"),
    )

    @property
    def is_processed(self) -> bool:
        return self.status == PendingStatus.PROCESSED
