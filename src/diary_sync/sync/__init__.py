"""Offline-first synchronization of diaries with the server."""

from diary_sync.sync.connectivity import ConnectivityMonitor, probe_target
from diary_sync.sync.device import DeviceInfo, get_device_id, get_device_info, get_device_name
from diary_sync.sync.diary_handler import ApplyResult, DiarySyncHandler
from diary_sync.sync.errors import (
    ConflictNotFoundError,
    EntityNotFoundError,
    NetworkUnavailableError,
    NotAuthenticatedError,
    ServerError,
    SyncError,
)
from diary_sync.sync.events import (
    ConflictDetected,
    ConflictResolved,
    EventBus,
    QueueItemAbandoned,
    SyncEvent,
    SyncStatusChanged,
)
from diary_sync.sync.factory import create_sync_manager
from diary_sync.sync.protocol import PushItemStatus, SyncStatus, SyncStatusState
from diary_sync.sync.sync_manager import PushSummary, SyncManager
from diary_sync.sync.transport import SyncApiClient

__all__ = [
    "ConnectivityMonitor",
    "probe_target",
    "DeviceInfo",
    "get_device_id",
    "get_device_info",
    "get_device_name",
    "ApplyResult",
    "DiarySyncHandler",
    "ConflictNotFoundError",
    "EntityNotFoundError",
    "NetworkUnavailableError",
    "NotAuthenticatedError",
    "ServerError",
    "SyncError",
    "ConflictDetected",
    "ConflictResolved",
    "EventBus",
    "QueueItemAbandoned",
    "SyncEvent",
    "SyncStatusChanged",
    "create_sync_manager",
    "PushItemStatus",
    "SyncStatus",
    "SyncStatusState",
    "PushSummary",
    "SyncManager",
    "SyncApiClient",
]
