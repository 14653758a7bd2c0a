"""
Repository layer for database operations.
"""

from coaching_data.repositories.base import BaseRepository
from coaching_data.repositories.directory_repository import DirectoryRepository
from coaching_data.repositories.data_item_repository import DataItemRepository
from coaching_data.repositories.sync_ledger_repository import SyncLedgerRepository
from coaching_data.repositories.pending_repository import PendingTranscriptRepository

__all__ = [
    "BaseRepository",
    "DirectoryRepository",
    "DataItemRepository",
    "SyncLedgerRepository",
    "PendingTranscriptRepository",
]
