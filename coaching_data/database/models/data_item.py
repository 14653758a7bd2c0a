"""
Persisted transcripts and their embedded chunks.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Float,
    Date,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from coaching_data.database.models.base import Base, generate_uuid


class DataItem(Base):
    """
    One ingested transcript.

    ``metadata_`` carries the title, slug, session type, unmatched emails
    and how the coach was matched.
    """

    __tablename__ = "data_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    data_type: Mapped[str] = mapped_column(String(50), nullable=False, default="transcript", index=True)

    coach_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("coaches.id"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_organization_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("client_organizations.id", ondelete="SET NULL"),
        nullable=True,
    )

    raw_content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        default=dict,
        nullable=False,
    )
    session_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    chunks: Mapped[List["DataChunk"]] = relationship(
        back_populates="data_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DataChunk.chunk_index",
    )

    __table_args__ = (
        Index("ix_data_items_coach_session_date", "coach_id", "session_date"),
    )

    def __repr__(self) -> str:
        return f"<DataItem(id={self.id}, coach_id={self.coach_id}, type={self.data_type})>"


class DataChunk(Base):
    __tablename__ = "data_chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    data_item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("data_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[Optional[List[float]]] = mapped_column(ARRAY(Float), nullable=True)
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        default=dict,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    data_item: Mapped[DataItem] = relationship(back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("data_item_id", "chunk_index", name="uq_data_chunks_item_index"),
    )
