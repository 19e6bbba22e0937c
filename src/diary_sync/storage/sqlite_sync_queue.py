"""SQLite sync queue operations mixin.

The queue holds at most one live item per ``(entity_type, entity_id)``.
Enqueueing a new mutation replaces the previous one, so only the latest
state of an entity is ever pushed. Items that keep failing are moved to
a dead-letter state instead of being retried forever.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from diary_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


class SyncAction(StrEnum):
    """Kind of local mutation carried by a queue item."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class QueueItem:
    """A single outstanding change waiting to be pushed."""

    id: str
    entity_type: str  # "Diary"
    entity_id: str  # local id of the entity
    action: SyncAction
    version: int  # entity version at enqueue time
    payload: dict[str, Any] | None
    retry_count: int
    created_at: datetime
    last_error: str = ""
    abandoned: bool = False


class SQLiteSyncQueueMixin:
    """Mixin providing the durable, coalescing sync queue."""

    # ------------------------------------------------------------------
    # Protocol stubs, satisfied by SQLiteStorage at runtime.
    # ------------------------------------------------------------------

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        entity_type: str,
        entity_id: str,
        action: SyncAction | str,
        version: int,
        payload: dict[str, Any] | None = None,
    ) -> QueueItem:
        """Queue a mutation, superseding any live item for the same entity."""
        conn = self._ensure_conn()
        item = QueueItem(
            id=str(uuid4()),
            entity_type=entity_type,
            entity_id=entity_id,
            action=SyncAction(action),
            version=version,
            payload=payload,
            retry_count=0,
            created_at=utcnow(),
        )

        cursor = await conn.execute(
            "DELETE FROM sync_queue WHERE entity_type = ? AND entity_id = ? AND abandoned = 0",
            (entity_type, entity_id),
        )
        if cursor.rowcount:
            logger.debug("Coalesced queue item for %s %s", entity_type, entity_id)

        await conn.execute(
            """INSERT INTO sync_queue
               (id, entity_type, entity_id, action, version, payload,
                retry_count, abandoned, created_at)
               VALUES (?, ?, ?, ?, ?, ?, 0, 0, ?)""",
            (
                item.id,
                item.entity_type,
                item.entity_id,
                item.action.value,
                item.version,
                json.dumps(payload) if payload is not None else None,
                item.created_at.isoformat(),
            ),
        )
        await conn.commit()
        return item

    async def dequeue_batch(self, limit: int = 50) -> list[QueueItem]:
        """Return up to ``limit`` live items, oldest first. Items stay queued."""
        safe_limit = max(0, min(limit, 1000))
        conn = self._ensure_conn()
        async with conn.execute(
            """SELECT * FROM sync_queue WHERE abandoned = 0
               ORDER BY created_at ASC, rowid ASC LIMIT ?""",
            (safe_limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_queue_item(r) for r in rows]

    async def remove_queue_item(self, item_id: str) -> bool:
        """Delete a queue item after its push resolved. Returns True if deleted."""
        conn = self._ensure_conn()
        cursor = await conn.execute("DELETE FROM sync_queue WHERE id = ?", (item_id,))
        await conn.commit()
        return cursor.rowcount > 0

    async def increment_retry(
        self,
        item_id: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        error: str = "",
    ) -> int:
        """Record a failed push attempt and return the new retry count.

        Once the count reaches ``max_retries`` the item is abandoned: it
        leaves the live queue and is kept as a dead letter.
        """
        conn = self._ensure_conn()
        await conn.execute(
            """UPDATE sync_queue
               SET retry_count = retry_count + 1,
                   last_error = ?,
                   abandoned = CASE WHEN retry_count + 1 >= ? THEN 1 ELSE 0 END
               WHERE id = ?""",
            (error, max_retries, item_id),
        )
        await conn.commit()

        async with conn.execute(
            "SELECT retry_count FROM sync_queue WHERE id = ?", (item_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return int(row["retry_count"]) if row else 0

    async def count_pending(self) -> int:
        """Count live queue items."""
        return await self._count_queue(abandoned=False)

    async def count_abandoned(self) -> int:
        """Count dead-lettered queue items."""
        return await self._count_queue(abandoned=True)

    async def list_queue(self) -> list[QueueItem]:
        """List every live queue item, oldest first."""
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT * FROM sync_queue WHERE abandoned = 0 ORDER BY created_at ASC, rowid ASC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_queue_item(r) for r in rows]

    async def list_abandoned(self) -> list[QueueItem]:
        """List dead-lettered items, oldest first."""
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT * FROM sync_queue WHERE abandoned = 1 ORDER BY created_at ASC, rowid ASC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_queue_item(r) for r in rows]

    async def requeue_abandoned(self, item_ids: list[str] | None = None) -> int:
        """Return dead-lettered items to the live queue with a fresh retry budget.

        An abandoned item whose entity already has a newer live item is
        stale and gets dropped instead. Returns count requeued.
        """
        conn = self._ensure_conn()
        requeued = 0
        for item in await self.list_abandoned():
            if item_ids is not None and item.id not in item_ids:
                continue
            async with conn.execute(
                "SELECT 1 FROM sync_queue"
                " WHERE entity_type = ? AND entity_id = ? AND abandoned = 0",
                (item.entity_type, item.entity_id),
            ) as cursor:
                superseded = await cursor.fetchone() is not None
            if superseded:
                await conn.execute("DELETE FROM sync_queue WHERE id = ?", (item.id,))
                logger.info("Dropped stale dead letter %s for %s", item.id, item.entity_id)
                continue
            await conn.execute(
                """UPDATE sync_queue SET abandoned = 0, retry_count = 0, last_error = NULL
                   WHERE id = ?""",
                (item.id,),
            )
            requeued += 1
        await conn.commit()
        return requeued

    async def discard_abandoned(self, item_ids: list[str] | None = None) -> int:
        """Permanently delete dead-lettered items. Returns count deleted."""
        conn = self._ensure_conn()
        if item_ids is None:
            cursor = await conn.execute("DELETE FROM sync_queue WHERE abandoned = 1")
        else:
            placeholders = ",".join("?" for _ in item_ids)
            cursor = await conn.execute(
                f"DELETE FROM sync_queue WHERE abandoned = 1 AND id IN ({placeholders})",
                tuple(item_ids),
            )
        await conn.commit()
        return cursor.rowcount

    async def _count_queue(self, abandoned: bool) -> int:
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT COUNT(*) AS cnt FROM sync_queue WHERE abandoned = ?", (int(abandoned),)
        ) as cursor:
            row = await cursor.fetchone()
        return int(row["cnt"]) if row else 0


def _row_to_queue_item(row: Any) -> QueueItem:
    """Convert a database row to a QueueItem."""
    return QueueItem(
        id=str(row["id"]),
        entity_type=str(row["entity_type"]),
        entity_id=str(row["entity_id"]),
        action=SyncAction(row["action"]),
        version=int(row["version"]),
        payload=json.loads(str(row["payload"])) if row["payload"] else None,
        retry_count=int(row["retry_count"] or 0),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        last_error=str(row["last_error"] or ""),
        abandoned=bool(row["abandoned"]),
    )
