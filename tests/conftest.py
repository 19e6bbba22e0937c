"""Pytest configuration and fixtures."""

from __future__ import annotations

import pathlib
from collections.abc import AsyncGenerator
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from diary_sync.core.diary import DiaryData
from diary_sync.storage.sqlite_store import SQLiteStorage
from diary_sync.sync.device import DeviceInfo
from diary_sync.sync.diary_handler import DiarySyncHandler
from diary_sync.sync.events import EventBus
from diary_sync.sync.sync_manager import SyncManager
from diary_sync.sync.transport import SyncApiClient
from diary_sync.unified_config import SyncSettings

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def storage(tmp_path: pathlib.Path) -> AsyncGenerator[SQLiteStorage, None]:
    """Create an initialized SQLite store in a temp directory."""
    store = SQLiteStorage(tmp_path / "diary_sync.db")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def handler(storage: SQLiteStorage) -> DiarySyncHandler:
    """Diary handler without a change callback."""
    return DiarySyncHandler(storage, owner_id=lambda: "user-1")


@pytest.fixture
def device() -> DeviceInfo:
    return DeviceInfo(
        device_id="device-1",
        device_name="test-device",
        device_type="ios",
        registered_at=FIXED_NOW,
    )


@pytest.fixture
def api() -> AsyncMock:
    """A SyncApiClient double: registration succeeds, nothing to pull or push."""
    mock = AsyncMock(spec=SyncApiClient)
    mock.base_url = "https://api.example.com"
    mock.register_device = AsyncMock(return_value=True)
    mock.pull_changes = AsyncMock(return_value=[])
    mock.push_changes = AsyncMock(return_value=[])
    mock.resolve_conflict = AsyncMock(return_value=None)
    mock.disconnect = AsyncMock()
    return mock


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest_asyncio.fixture
async def manager(
    storage: SQLiteStorage,
    api: AsyncMock,
    handler: DiarySyncHandler,
    device: DeviceInfo,
    events: EventBus,
) -> AsyncGenerator[SyncManager, None]:
    """SyncManager wired to the temp store and a mocked API.

    Auto-sync is off so tests decide when cycles run.
    """
    mgr = SyncManager(
        storage,
        api,
        handler,
        device,
        settings=SyncSettings(auto_sync=False),
        events=events,
        clock=lambda: FIXED_NOW,
    )
    await mgr.load_state()
    yield mgr
    await mgr.stop()


@pytest.fixture
def diary_data() -> DiaryData:
    return DiaryData.new("Monday", "Rained all day", mood="calm", weather="rainy")


@pytest.fixture
def mock_callback() -> MagicMock:
    return MagicMock()
