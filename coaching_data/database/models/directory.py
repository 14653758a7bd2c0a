"""
Coach / client directory models.

These rows are maintained outside the ingestion pipeline; the pipeline
only reads them to work out who a transcript belongs to.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from coaching_data.database.models.base import Base, generate_uuid


class Coach(Base):
    __tablename__ = "coaches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    coaching_company_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Coach(id={self.id}, email={self.email})>"


class ClientOrganization(Base):
    __tablename__ = "client_organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    coaching_company_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Client(Base):
    """A coaching client. ``primary_coach_id`` drives the primary-coach fallback."""

    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    client_organization_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("client_organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    primary_coach_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("coaches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, email={self.email})>"
