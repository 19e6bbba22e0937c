"""Tests for DiarySyncHandler: local mutations, pulled changes, push acknowledgments."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from diary_sync.core.diary import DiaryData, DiaryPayload, DiarySyncStatus
from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.storage.sqlite_store import SQLiteStorage
from diary_sync.storage.sqlite_sync_queue import SyncAction
from diary_sync.sync.diary_handler import DiarySyncHandler
from diary_sync.sync.errors import EntityNotFoundError
from diary_sync.sync.protocol import PulledChange
from diary_sync.utils.checksum import checksum
from diary_sync.utils.timeutils import utcnow


def _pulled(
    entity_id: str,
    version: int | None,
    title: str = "server title",
    action: SyncAction = SyncAction.UPDATE,
    **payload,
) -> PulledChange:
    data = None
    if action != SyncAction.DELETE:
        data = DiaryPayload(title=title, content=payload.pop("content", "server text"), **payload)
    return PulledChange(entity_id=entity_id, action=action, version=version, data=data)


class TestSaveLocal:
    async def test_new_diary_is_pending_and_queued(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)

        assert saved.version == 1
        assert saved.needs_sync is True
        assert saved.sync_status == DiarySyncStatus.PENDING
        assert saved.author_id == "user-1"
        assert saved.checksum == checksum("Rained all day")

        items = await storage.list_queue()
        assert len(items) == 1
        assert items[0].action == SyncAction.CREATE
        assert items[0].entity_id == saved.id
        assert items[0].version == 1
        assert items[0].payload is not None
        assert items[0].payload["title"] == "Monday"
        assert items[0].payload["localId"] == saved.id

    async def test_new_diary_gets_fresh_id(
        self, handler: DiarySyncHandler, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        assert saved.id != diary_data.local_id

    async def test_edit_bumps_version_and_coalesces(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        created = await handler.save_local(diary_data, is_new=True)
        data = created.to_data()
        data.content = "Sun came out"

        edited = await handler.save_local(data)

        assert edited.id == created.id
        assert edited.version == 2
        assert edited.checksum == checksum("Sun came out")
        items = await storage.list_queue()
        assert len(items) == 1
        assert items[0].action == SyncAction.UPDATE
        assert items[0].version == 2

    async def test_versions_strictly_increase(
        self, handler: DiarySyncHandler, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        versions = [saved.version]
        for i in range(4):
            data = saved.to_data()
            data.title = f"t{i}"
            saved = await handler.save_local(data)
            versions.append(saved.version)
        assert versions == sorted(set(versions))

    async def test_edit_unknown_id_creates_with_that_id(self, handler: DiarySyncHandler) -> None:
        data = DiaryData(local_id="fixed-id", title="x", content="y")
        saved = await handler.save_local(data)
        assert saved.id == "fixed-id"
        assert saved.version == 1

    async def test_edit_by_server_id(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", 4)])
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None

        data = DiaryData(local_id="other", server_id="srv-1", title="edited", content="z")
        saved = await handler.save_local(data)
        assert saved.id == local.id
        assert saved.version == 5

    async def test_callback_invoked(
        self, storage: SQLiteStorage, diary_data: DiaryData, mock_callback: MagicMock
    ) -> None:
        handler = DiarySyncHandler(storage, on_local_change=mock_callback)
        await handler.save_local(diary_data, is_new=True)
        mock_callback.assert_called_once_with()

    async def test_callback_failure_does_not_break_save(
        self, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        handler = DiarySyncHandler(storage, on_local_change=MagicMock(side_effect=RuntimeError))
        saved = await handler.save_local(diary_data, is_new=True)
        assert await storage.get_diary(saved.id) is not None


class TestSoftDelete:
    async def test_marks_deleted_and_queues_delete(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        deleted = await handler.soft_delete(saved.id)

        assert deleted.deleted is True
        assert deleted.version == 2
        assert deleted.needs_sync is True
        items = await storage.list_queue()
        assert len(items) == 1
        assert items[0].action == SyncAction.DELETE
        assert items[0].payload is None
        assert await handler.get_all() == []

    async def test_unknown_id_raises(self, handler: DiarySyncHandler) -> None:
        with pytest.raises(EntityNotFoundError):
            await handler.soft_delete("missing")


class TestApplyServerChanges:
    async def test_unknown_entity_creates_local_diary(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        result = await handler.apply_server_changes([_pulled("srv-1", 3, mood="happy")])

        assert result.applied == 1
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        assert local.title == "server title"
        assert local.mood == "happy"
        assert local.version == 3
        assert local.needs_sync is False
        assert local.sync_status == DiarySyncStatus.SYNCED
        assert await storage.count_pending() == 0

    async def test_missing_version_defaults_to_one(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", None)])
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        assert local.version == 1

    async def test_pull_is_idempotent(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        change = _pulled("srv-1", 3)
        await handler.apply_server_changes([change])
        first = await storage.get_diary_by_server_id("srv-1")
        await handler.apply_server_changes([change])
        second = await storage.get_diary_by_server_id("srv-1")

        assert await storage.count_diaries() == 1
        assert first is not None and second is not None
        assert (second.title, second.version, second.needs_sync) == (
            first.title,
            first.version,
            first.needs_sync,
        )

    async def test_unpushed_edit_beats_older_server_version(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", 2)])
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        data = local.to_data()
        data.title = "local edit"
        await handler.save_local(data)  # v3, needs_sync

        result = await handler.apply_server_changes([_pulled("srv-1", 3, title="server v3")])

        assert result.skipped == 1
        kept = await storage.get_diary(local.id)
        assert kept is not None
        assert kept.title == "local edit"
        assert kept.needs_sync is True
        assert await storage.count_pending() == 1

    async def test_newer_server_version_overwrites_unpushed_edit(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", 2)])
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        data = local.to_data()
        data.title = "local edit"
        await handler.save_local(data)  # v3

        await handler.apply_server_changes([_pulled("srv-1", 7, title="server v7")])

        updated = await storage.get_diary(local.id)
        assert updated is not None
        assert updated.title == "server v7"
        assert updated.version == 7
        assert updated.needs_sync is False

    async def test_synced_diary_takes_server_update(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", 5)])
        await handler.apply_server_changes([_pulled("srv-1", 2, title="older but authoritative")])
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        assert local.title == "older but authoritative"

    async def test_matches_pushed_create_by_local_id(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        await handler.mark_pushed(saved.id, "srv-9", 1, pushed_version=1)
        await storage.save_diary(replace(saved, server_id=None, needs_sync=False))

        await handler.apply_server_changes([_pulled("srv-9", 2, local_id=saved.id)])

        assert await storage.count_diaries() == 1
        local = await storage.get_diary(saved.id)
        assert local is not None
        assert local.server_id == "srv-9"
        assert local.version == 2

    async def test_delete_marks_existing(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        await handler.apply_server_changes([_pulled("srv-1", 2)])
        result = await handler.apply_server_changes(
            [_pulled("srv-1", 3, action=SyncAction.DELETE)]
        )

        assert result.deleted == 1
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        assert local.deleted is True
        assert local.needs_sync is False
        assert await storage.count_pending() == 0

    async def test_delete_of_unknown_is_skipped(self, handler: DiarySyncHandler) -> None:
        result = await handler.apply_server_changes(
            [_pulled("srv-x", 1, action=SyncAction.DELETE)]
        )
        assert result.skipped == 1
        assert result.deleted == 0

    async def test_upsert_without_payload_is_skipped(self, handler: DiarySyncHandler) -> None:
        change = PulledChange(entity_id="srv-1", action=SyncAction.UPDATE, version=1)
        result = await handler.apply_server_changes([change])
        assert result.skipped == 1

    async def test_pulled_timestamps_honoured(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        created = datetime(2025, 12, 24, 8, 0, 0)
        await handler.apply_server_changes(
            [_pulled("srv-1", 1, created_at=created, updated_at=created)]
        )
        local = await storage.get_diary_by_server_id("srv-1")
        assert local is not None
        assert local.created_at == created
        assert local.updated_at == created


class TestMarkPushed:
    async def test_marks_synced(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        assert await handler.mark_pushed(saved.id, "srv-1", 1, pushed_version=1) is True

        local = await storage.get_diary(saved.id)
        assert local is not None
        assert local.server_id == "srv-1"
        assert local.needs_sync is False
        assert local.sync_status == DiarySyncStatus.SYNCED

    async def test_newer_local_edit_stays_pending(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        data = saved.to_data()
        data.title = "edited while pushing"
        await handler.save_local(data)  # v2

        await handler.mark_pushed(saved.id, "srv-1", 1, pushed_version=1)

        local = await storage.get_diary(saved.id)
        assert local is not None
        assert local.server_id == "srv-1"
        assert local.needs_sync is True
        assert local.version == 2

    async def test_missing_diary(self, handler: DiarySyncHandler) -> None:
        assert await handler.mark_pushed("gone", "srv-1", 1) is False


class TestApplyResolution:
    async def _conflicted(self, handler: DiarySyncHandler, storage: SQLiteStorage):
        saved = await handler.save_local(DiaryData.new("mine", "local text"), is_new=True)
        return await storage.record_conflict(
            "Diary",
            saved.id,
            "srv-c",
            server_version=4,
            local_version=saved.version,
            server_data={"title": "theirs", "content": "server text"},
            local_data=saved.snapshot(),
        )

    async def test_keep_server_adopts_server_snapshot(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        conflict = await self._conflicted(handler, storage)
        await handler.apply_resolution(conflict, ConflictResolution.KEEP_SERVER)

        local = await storage.get_diary(conflict.entity_id)
        assert local is not None
        assert local.title == "theirs"
        assert local.content == "server text"
        assert local.version == 4
        assert local.needs_sync is False

    async def test_keep_local_keeps_content(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        conflict = await self._conflicted(handler, storage)
        await handler.apply_resolution(conflict, ConflictResolution.KEEP_LOCAL)

        local = await storage.get_diary(conflict.entity_id)
        assert local is not None
        assert local.title == "mine"
        assert local.needs_sync is False

    async def test_merged_applies_merged_fields(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        conflict = await self._conflicted(handler, storage)
        await handler.apply_resolution(
            conflict, ConflictResolution.MERGED, {"content": "merged text"}
        )

        local = await storage.get_diary(conflict.entity_id)
        assert local is not None
        assert local.title == "mine"
        assert local.content == "merged text"

    async def test_later_edit_left_pending(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        conflict = await self._conflicted(handler, storage)
        local = await storage.get_diary(conflict.entity_id)
        assert local is not None
        data = local.to_data()
        data.title = "edited after conflict"
        await handler.save_local(data)

        assert await handler.apply_resolution(conflict, ConflictResolution.KEEP_SERVER) is False
        still = await storage.get_diary(conflict.entity_id)
        assert still is not None
        assert still.title == "edited after conflict"
        assert still.needs_sync is True


class TestQueriesAndCleanup:
    async def test_get_all_newest_first(self, handler: DiarySyncHandler) -> None:
        await handler.save_local(DiaryData.new("first", "a"), is_new=True)
        await handler.save_local(DiaryData.new("second", "b"), is_new=True)
        titles = [d.title for d in await handler.get_all()]
        assert titles == ["second", "first"]

    async def test_local_snapshot(self, handler: DiarySyncHandler, diary_data: DiaryData) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        snapshot = await handler.local_snapshot(saved.id)
        assert snapshot == {
            "title": "Monday",
            "content": "Rained all day",
            "mood": "calm",
            "weather": "rainy",
        }
        assert await handler.local_snapshot("missing") == {}

    async def test_cleanup_deleted(
        self, handler: DiarySyncHandler, storage: SQLiteStorage, diary_data: DiaryData
    ) -> None:
        saved = await handler.save_local(diary_data, is_new=True)
        deleted = await handler.soft_delete(saved.id)
        await storage.save_diary(
            replace(deleted, needs_sync=False, updated_at=utcnow() - timedelta(days=40))
        )

        assert await handler.cleanup_deleted(retention_days=30) == 1
        assert await storage.get_diary(saved.id) is None

    async def test_server_delete_restarts_retention_window(
        self, handler: DiarySyncHandler, storage: SQLiteStorage
    ) -> None:
        last_edit = utcnow() - timedelta(days=40)
        await handler.apply_server_changes(
            [_pulled("srv-1", 1, action=SyncAction.CREATE, updated_at=last_edit)]
        )
        await handler.apply_server_changes([_pulled("srv-1", 2, action=SyncAction.DELETE)])

        assert await handler.cleanup_deleted(retention_days=30) == 0
        kept = await storage.get_diary_by_server_id("srv-1")
        assert kept is not None
        assert kept.deleted is True
        assert kept.updated_at > last_edit
