"""Factory wiring the local store, transport and handler into a SyncManager."""

from __future__ import annotations

import logging
from collections.abc import Callable

from diary_sync.storage.sqlite_store import SQLiteStorage
from diary_sync.sync.device import get_device_info
from diary_sync.sync.diary_handler import DiarySyncHandler
from diary_sync.sync.events import EventBus
from diary_sync.sync.sync_manager import SyncManager
from diary_sync.sync.transport import SyncApiClient
from diary_sync.unified_config import UnifiedConfig

logger = logging.getLogger(__name__)


async def create_sync_manager(
    config: UnifiedConfig,
    *,
    owner_id: Callable[[], str] | None = None,
    token_provider: Callable[[], str | None] | None = None,
    events: EventBus | None = None,
) -> SyncManager:
    """
    Create a ready-to-use SyncManager from configuration.

    Opens (and migrates) the local SQLite store, resolves this install's
    device identity and restores persisted sync state.

    Args:
        config: Unified configuration
        owner_id: Returns the signed-in user's id for new diaries
        token_provider: Returns the bearer token (default: ``config.get_token``)
        events: Event bus to publish on (a fresh one by default)

    Returns:
        Initialized SyncManager; call ``close()`` when done

    Examples:
        config = UnifiedConfig.load()
        manager = await create_sync_manager(config)
        try:
            await manager.force_sync()
        finally:
            await manager.close()
    """
    storage = SQLiteStorage(config.db_path)
    await storage.initialize()

    api = SyncApiClient(
        config.server.base_url,
        token_provider or config.get_token,
        timeout=config.server.request_timeout,
    )
    handler = DiarySyncHandler(storage, owner_id=owner_id)
    device = get_device_info(
        config.data_dir,
        device_name=config.sync.device_name,
        device_type=config.sync.device_type,
    )

    manager = SyncManager(
        storage,
        api,
        handler,
        device,
        settings=config.sync,
        connectivity=config.connectivity,
        events=events,
    )
    await manager.load_state()
    logger.debug("Sync manager ready for device %s", device.device_id)
    return manager
