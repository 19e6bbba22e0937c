"""Abstract base class for the local sync store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from diary_sync.core.diary import LocalDiary
    from diary_sync.storage.sqlite_conflicts import ConflictRecord, ConflictResolution
    from diary_sync.storage.sqlite_sync_queue import QueueItem, SyncAction


class SyncStorage(ABC):
    """
    Abstract interface for the durable local store.

    Holds three kinds of records (diaries, sync queue items and conflict
    records) plus scalar sync settings. Every write is durable once the
    awaited call returns.
    """

    async def initialize(self) -> None:  # noqa: B027
        """Open connections and create schema. No-op by default."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""

    # ========== Diary Operations ==========

    @abstractmethod
    async def save_diary(self, diary: LocalDiary) -> None:
        """
        Insert or replace a diary.

        Args:
            diary: The diary to persist (matched on its local id)
        """
        ...

    @abstractmethod
    async def get_diary(self, diary_id: str) -> LocalDiary | None:
        """Get a diary by local id."""
        ...

    @abstractmethod
    async def get_diary_by_server_id(self, server_id: str) -> LocalDiary | None:
        """Get a diary by server id."""
        ...

    @abstractmethod
    async def find_diary(self, id_or_server_id: str) -> LocalDiary | None:
        """Get a diary by local id or, failing that, by server id."""
        ...

    @abstractmethod
    async def list_diaries(self, include_deleted: bool = False) -> list[LocalDiary]:
        """List diaries, most recently updated first."""
        ...

    @abstractmethod
    async def count_diaries(self) -> int:
        """Count diaries that are not soft-deleted."""
        ...

    @abstractmethod
    async def purge_deleted_diaries(self, older_than_days: int = 30) -> int:
        """
        Hard-delete acknowledged soft-deletes older than the retention window.

        Returns:
            Number of diaries purged
        """
        ...

    # ========== Sync Queue Operations ==========

    @abstractmethod
    async def enqueue(
        self,
        entity_type: str,
        entity_id: str,
        action: SyncAction | str,
        version: int,
        payload: dict[str, Any] | None = None,
    ) -> QueueItem:
        """
        Queue a mutation for push.

        Any live item for the same ``(entity_type, entity_id)`` is replaced.
        """
        ...

    @abstractmethod
    async def dequeue_batch(self, limit: int = 50) -> list[QueueItem]:
        """Return up to ``limit`` live items, oldest first."""
        ...

    @abstractmethod
    async def remove_queue_item(self, item_id: str) -> bool:
        """Delete a queue item."""
        ...

    @abstractmethod
    async def increment_retry(self, item_id: str, max_retries: int = 3, error: str = "") -> int:
        """
        Record a failed attempt.

        Returns:
            The new retry count; at ``max_retries`` the item is abandoned
        """
        ...

    @abstractmethod
    async def count_pending(self) -> int:
        """Count live queue items."""
        ...

    @abstractmethod
    async def count_abandoned(self) -> int:
        """Count abandoned queue items."""
        ...

    @abstractmethod
    async def list_queue(self) -> list[QueueItem]:
        """List live queue items, oldest first."""
        ...

    @abstractmethod
    async def list_abandoned(self) -> list[QueueItem]:
        """List abandoned queue items, oldest first."""
        ...

    @abstractmethod
    async def requeue_abandoned(self, item_ids: list[str] | None = None) -> int:
        """
        Return abandoned items to the live queue with a fresh retry count.

        Args:
            item_ids: Items to requeue, or None for all of them

        Returns:
            Number of items requeued
        """
        ...

    @abstractmethod
    async def discard_abandoned(self, item_ids: list[str] | None = None) -> int:
        """Permanently delete abandoned items (all when ``item_ids`` is None)."""
        ...

    # ========== Conflict Operations ==========

    @abstractmethod
    async def record_conflict(
        self,
        entity_type: str,
        entity_id: str,
        server_conflict_id: str | None,
        server_version: int,
        local_version: int,
        server_data: dict[str, Any] | None = None,
        local_data: dict[str, Any] | None = None,
    ) -> ConflictRecord:
        """Persist a new unresolved conflict."""
        ...

    @abstractmethod
    async def get_conflict(self, conflict_id: str) -> ConflictRecord | None:
        """Get a conflict by id."""
        ...

    @abstractmethod
    async def list_conflicts(self, include_resolved: bool = False) -> list[ConflictRecord]:
        """List conflicts, oldest first."""
        ...

    @abstractmethod
    async def count_unresolved(self) -> int:
        """Count conflicts with no resolution."""
        ...

    @abstractmethod
    async def mark_conflict_resolved(
        self, conflict_id: str, resolution: ConflictResolution | str
    ) -> bool:
        """Stamp a resolution on an open conflict."""
        ...

    @abstractmethod
    async def purge_resolved_conflicts(self, older_than_days: int = 30) -> int:
        """Hard-delete resolved conflicts past the retention window."""
        ...

    # ========== Sync Settings ==========

    @abstractmethod
    async def get_last_sync_time(self) -> datetime | None:
        """Timestamp of the last fully successful cycle, if any."""
        ...

    @abstractmethod
    async def set_last_sync_time(self, moment: datetime) -> None:
        """Persist the timestamp of a fully successful cycle."""
        ...

    # ========== Maintenance ==========

    @abstractmethod
    async def get_statistics(self) -> dict[str, int]:
        """Return diary, pending, conflict and abandoned counts."""
        ...

    @abstractmethod
    async def reset_all(self) -> None:
        """Delete every locally stored record."""
        ...
