"""Local storage for diaries, the sync queue and conflicts."""

from diary_sync.storage.base import SyncStorage
from diary_sync.storage.sqlite_conflicts import ConflictRecord, ConflictResolution
from diary_sync.storage.sqlite_store import SQLiteStorage
from diary_sync.storage.sqlite_sync_queue import QueueItem, SyncAction

__all__ = [
    "SyncStorage",
    "SQLiteStorage",
    "ConflictRecord",
    "ConflictResolution",
    "QueueItem",
    "SyncAction",
]
