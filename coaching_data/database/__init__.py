"""
Database module for the coaching data layer.

Provides SQLAlchemy models; connection handling lives in
``coaching_data.database.connection``.
"""

from coaching_data.database.models import (
    Base,
    Coach,
    ClientOrganization,
    Client,
    DataItem,
    DataChunk,
    SyncLedgerEntry,
    SyncStatus,
    PendingTranscript,
    PendingStatus,
)

__all__ = [
    "Base",
    "Coach",
    "ClientOrganization",
    "Client",
    "DataItem",
    "DataChunk",
    "SyncLedgerEntry",
    "SyncStatus",
    "PendingTranscript",
    "PendingStatus",
]
