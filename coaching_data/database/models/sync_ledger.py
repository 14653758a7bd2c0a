"""
Sync ledger: one row per Fireflies meeting id, ever.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, ForeignKey, func, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from coaching_data.database.models.base import Base, generate_uuid


class SyncStatus(str, Enum):
    """Outcome recorded for a meeting."""
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncLedgerEntry(Base):
    """Maps the existing ``fireflies_sync_state`` table; ``status`` is TEXT with a CHECK there."""

    __tablename__ = "fireflies_sync_state"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    fireflies_meeting_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="External transcript id; the idempotence key",
    )
    status: Mapped[SyncStatus] = mapped_column(
        SQLEnum(
            SyncStatus,
            native_enum=False,
            create_constraint=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    data_item_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("data_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Failure message or skip reason",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SyncLedgerEntry(meeting={self.fireflies_meeting_id}, status={self.status})>"
