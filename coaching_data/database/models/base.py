"""
SQLAlchemy declarative base.
"""

from __future__ import annotations

import uuid

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.dialects.postgresql import JSONB


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict: JSONB,
    }
