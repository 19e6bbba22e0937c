"""diary-sync - Offline-first diary synchronization client."""

from diary_sync.core.diary import DiaryData, LocalDiary
from diary_sync.storage.sqlite_store import SQLiteStorage
from diary_sync.sync.diary_handler import DiarySyncHandler
from diary_sync.sync.factory import create_sync_manager
from diary_sync.sync.protocol import SyncStatus, SyncStatusState
from diary_sync.sync.sync_manager import SyncManager
from diary_sync.unified_config import UnifiedConfig, get_config

__version__ = "0.1.0"

__all__ = [
    # Domain
    "DiaryData",
    "LocalDiary",
    # Storage
    "SQLiteStorage",
    # Sync
    "DiarySyncHandler",
    "SyncManager",
    "SyncStatus",
    "SyncStatusState",
    "create_sync_manager",
    # Config
    "UnifiedConfig",
    "get_config",
    # Version
    "__version__",
]
