"""
SQLAlchemy ORM models for the coaching data layer.

All models are exported from this module for convenient imports.
"""

from coaching_data.database.models.base import Base
from coaching_data.database.models.directory import Coach, ClientOrganization, Client
from coaching_data.database.models.data_item import DataItem, DataChunk
from coaching_data.database.models.sync_ledger import SyncLedgerEntry, SyncStatus
from coaching_data.database.models.pending import PendingTranscript, PendingStatus

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
