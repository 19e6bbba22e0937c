"""Diary sync handler - all diary-specific sync logic.

The only component that understands the diary payload. It persists local
edits together with a queue item, and merges server changes using the
version precedence rule: an unpushed local edit is never overwritten by
a server change whose version is not newer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from diary_sync.core.diary import (
    DIARY_ENTITY_TYPE,
    DiaryData,
    DiaryPayload,
    DiarySyncStatus,
    LocalDiary,
)
from diary_sync.storage.base import SyncStorage
from diary_sync.storage.sqlite_conflicts import ConflictRecord, ConflictResolution
from diary_sync.storage.sqlite_sync_queue import SyncAction
from diary_sync.sync.errors import EntityNotFoundError
from diary_sync.sync.protocol import PulledChange
from diary_sync.utils.checksum import checksum
from diary_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

OwnerProvider = Callable[[], str]


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one page of pulled changes."""

    applied: int = 0
    skipped: int = 0
    deleted: int = 0


class DiarySyncHandler:
    """Maps diaries to and from the wire and records local mutations."""

    def __init__(
        self,
        storage: SyncStorage,
        *,
        owner_id: OwnerProvider | None = None,
        on_local_change: Callable[[], Any] | None = None,
    ) -> None:
        """
        Args:
            storage: Local record store
            owner_id: Returns the signed-in user's id, stamped on new diaries
            on_local_change: Called after every local mutation (usually the
                orchestrator's non-blocking ``trigger_sync``)
        """
        self._storage = storage
        self._owner_id = owner_id or (lambda: "")
        self._on_local_change = on_local_change

    @property
    def entity_type(self) -> str:
        return DIARY_ENTITY_TYPE

    def set_on_local_change(self, callback: Callable[[], Any] | None) -> None:
        self._on_local_change = callback

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def save_local(self, data: DiaryData, is_new: bool = False) -> LocalDiary:
        """Persist a create or edit offline-first and queue it for push.

        Returns the stored diary (new diaries get a freshly minted id).
        """
        if is_new:
            base = LocalDiary.create(author_id=self._owner_id())
        else:
            existing = None
            if data.server_id:
                existing = await self._storage.get_diary_by_server_id(data.server_id)
            if existing is None:
                existing = await self._storage.get_diary(data.local_id)
            base = existing or LocalDiary.create(
                author_id=self._owner_id(), diary_id=data.local_id
            )

        diary = replace(
            base,
            title=data.title,
            content=data.content,
            mood=data.mood,
            weather=data.weather,
            is_public=data.is_public,
            server_id=data.server_id or base.server_id,
            updated_at=utcnow(),
            version=base.version + 1,
            needs_sync=True,
            sync_status=DiarySyncStatus.PENDING,
            checksum=checksum(data.content),
        )
        await self._storage.save_diary(diary)

        await self._storage.enqueue(
            entity_type=DIARY_ENTITY_TYPE,
            entity_id=diary.id,
            action=SyncAction.CREATE if is_new else SyncAction.UPDATE,
            version=diary.version,
            payload=diary.to_payload().to_wire(),
        )
        logger.debug("Saved diary %s locally (v%d)", diary.id, diary.version)

        self._notify()
        return diary

    async def soft_delete(self, diary_id: str) -> LocalDiary:
        """Mark a diary deleted locally and queue the deletion.

        Raises:
            EntityNotFoundError: No diary matches the local or server id
        """
        existing = await self._storage.find_diary(diary_id)
        if existing is None:
            raise EntityNotFoundError(diary_id)

        diary = replace(
            existing,
            deleted=True,
            updated_at=utcnow(),
            version=existing.version + 1,
            needs_sync=True,
            sync_status=DiarySyncStatus.PENDING,
        )
        await self._storage.save_diary(diary)

        await self._storage.enqueue(
            entity_type=DIARY_ENTITY_TYPE,
            entity_id=diary.id,
            action=SyncAction.DELETE,
            version=diary.version,
            payload=None,
        )
        logger.debug("Marked diary %s deleted (v%d)", diary.id, diary.version)

        self._notify()
        return diary

    # ------------------------------------------------------------------
    # Server-originated changes
    # ------------------------------------------------------------------

    async def apply_server_changes(self, changes: list[PulledChange]) -> ApplyResult:
        """Merge pulled server changes into the local store.

        Deletes are applied by server id without touching the queue.
        Creates/updates overwrite local state unless the local diary has an
        unpushed edit at a version >= the incoming one.
        """
        applied = skipped = deleted = 0

        for change in changes:
            if change.action == SyncAction.DELETE:
                existing = await self._storage.get_diary_by_server_id(change.entity_id)
                if existing is None:
                    skipped += 1
                    continue
                await self._storage.save_diary(
                    replace(
                        existing,
                        deleted=True,
                        updated_at=utcnow(),
                        needs_sync=False,
                        sync_status=DiarySyncStatus.SYNCED,
                    )
                )
                deleted += 1
                continue

            if change.data is None:
                logger.warning(
                    "Empty payload for %s %s - skipping", change.action, change.entity_id
                )
                skipped += 1
                continue

            if await self._apply_upsert(change, change.data):
                applied += 1
            else:
                skipped += 1

        logger.info(
            "Applied %d server changes (%d deleted, %d skipped)", applied, deleted, skipped
        )
        return ApplyResult(applied=applied, skipped=skipped, deleted=deleted)

    async def _apply_upsert(self, change: PulledChange, payload: DiaryPayload) -> bool:
        existing = await self._storage.get_diary_by_server_id(change.entity_id)
        if existing is None and payload.local_id:
            existing = await self._storage.get_diary(payload.local_id)

        incoming_version = change.version or 0
        if existing is not None and existing.needs_sync and incoming_version <= existing.version:
            # Unpushed local edit wins until it is pushed itself
            logger.debug(
                "Kept local diary %s (local v%d, server v%d)",
                existing.id,
                existing.version,
                incoming_version,
            )
            return False

        base = existing or LocalDiary.create(author_id=self._owner_id())
        await self._storage.save_diary(
            replace(
                base,
                server_id=change.entity_id,
                title=payload.title,
                content=payload.content,
                mood=payload.mood,
                weather=payload.weather,
                is_public=payload.is_public,
                version=change.version if change.version is not None else 1,
                needs_sync=False,
                sync_status=DiarySyncStatus.SYNCED,
                checksum=payload.checksum,
                created_at=payload.created_at or base.created_at,
                updated_at=payload.updated_at or base.updated_at,
            )
        )
        return True

    async def mark_pushed(
        self,
        local_entity_id: str,
        server_id: str,
        new_version: int,
        pushed_version: int | None = None,
    ) -> bool:
        """Stamp the server's acknowledgment on a pushed diary.

        If the diary was edited again after ``pushed_version`` was queued,
        only the server id is stamped; the newer edit stays pending.
        Returns False when the diary no longer exists locally.
        """
        diary = await self._storage.get_diary(local_entity_id)
        if diary is None:
            logger.warning("Pushed diary %s no longer exists locally", local_entity_id)
            return False

        if pushed_version is not None and diary.version > pushed_version:
            await self._storage.save_diary(replace(diary, server_id=server_id))
            return True

        await self._storage.save_diary(
            replace(
                diary,
                server_id=server_id,
                version=new_version,
                needs_sync=False,
                sync_status=DiarySyncStatus.SYNCED,
            )
        )
        return True

    async def apply_resolution(
        self,
        conflict: ConflictRecord,
        resolution: ConflictResolution,
        merged_data: dict[str, Any] | None = None,
    ) -> bool:
        """Bring the local diary in line with a server-accepted resolution.

        ``keep_server`` adopts the server snapshot, ``merged`` adopts the
        merged fields, ``keep_local`` keeps local content. In every case the
        diary is marked synced at the higher of the two versions. A diary
        edited again since the conflict was recorded is left pending.
        Returns False when nothing was changed.
        """
        diary = await self._storage.find_diary(conflict.entity_id)
        if diary is None:
            return False
        if diary.version > conflict.local_version:
            logger.debug("Diary %s changed since conflict, leaving it pending", diary.id)
            return False

        if resolution == ConflictResolution.KEEP_SERVER:
            fields = conflict.server_data
        elif resolution == ConflictResolution.MERGED:
            fields = merged_data or {}
        else:
            fields = {}

        if fields:
            payload = DiaryPayload.model_validate(fields)
            diary = replace(
                diary,
                title=payload.title if "title" in fields else diary.title,
                content=payload.content if "content" in fields else diary.content,
                mood=payload.mood if "mood" in fields else diary.mood,
                weather=payload.weather if "weather" in fields else diary.weather,
            )

        await self._storage.save_diary(
            replace(
                diary,
                version=max(conflict.local_version, conflict.server_version, diary.version),
                needs_sync=False,
                sync_status=DiarySyncStatus.SYNCED,
                checksum=checksum(diary.content),
            )
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_all(self) -> list[DiaryData]:
        """All live diaries, most recently updated first."""
        return [d.to_data() for d in await self._storage.list_diaries()]

    async def get_local(self, id_or_server_id: str) -> LocalDiary | None:
        return await self._storage.find_diary(id_or_server_id)

    async def local_snapshot(self, entity_id: str) -> dict[str, Any]:
        """Content snapshot of a local diary, empty if it is gone."""
        diary = await self._storage.find_diary(entity_id)
        return diary.snapshot() if diary else {}

    async def cleanup_deleted(self, retention_days: int = 30) -> int:
        """Purge acknowledged soft-deletes older than the retention window."""
        purged = await self._storage.purge_deleted_diaries(older_than_days=retention_days)
        if purged:
            logger.info("Purged %d deleted diaries", purged)
        return purged

    def _notify(self) -> None:
        if self._on_local_change is None:
            return
        try:
            self._on_local_change()
        except Exception:
            logger.warning("Local change callback failed", exc_info=True)
