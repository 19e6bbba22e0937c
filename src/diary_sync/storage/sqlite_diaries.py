"""SQLite diary operations mixin."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from diary_sync.core.diary import DiarySyncStatus, LocalDiary
from diary_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


class SQLiteDiaryMixin:
    """Mixin providing diary persistence for the local record store."""

    # ------------------------------------------------------------------
    # Protocol stubs, satisfied by SQLiteStorage at runtime.
    # ------------------------------------------------------------------

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def save_diary(self, diary: LocalDiary) -> None:
        """Insert or replace a diary row."""
        conn = self._ensure_conn()
        await conn.execute(
            """INSERT INTO diaries
               (id, server_id, author_id, title, content, mood, weather, is_public,
                version, needs_sync, sync_status, checksum, deleted, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                server_id = excluded.server_id,
                author_id = excluded.author_id,
                title = excluded.title,
                content = excluded.content,
                mood = excluded.mood,
                weather = excluded.weather,
                is_public = excluded.is_public,
                version = excluded.version,
                needs_sync = excluded.needs_sync,
                sync_status = excluded.sync_status,
                checksum = excluded.checksum,
                deleted = excluded.deleted,
                created_at = excluded.created_at,
                updated_at = excluded.updated_at""",
            (
                diary.id,
                diary.server_id,
                diary.author_id,
                diary.title,
                diary.content,
                diary.mood,
                diary.weather,
                int(diary.is_public),
                diary.version,
                int(diary.needs_sync),
                diary.sync_status.value,
                diary.checksum,
                int(diary.deleted),
                diary.created_at.isoformat(),
                diary.updated_at.isoformat(),
            ),
        )
        await conn.commit()

    async def get_diary(self, diary_id: str) -> LocalDiary | None:
        """Get a diary by its local id."""
        conn = self._ensure_conn()
        async with conn.execute("SELECT * FROM diaries WHERE id = ?", (diary_id,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_diary(row) if row is not None else None

    async def get_diary_by_server_id(self, server_id: str) -> LocalDiary | None:
        """Get a diary by the id the server assigned to it."""
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT * FROM diaries WHERE server_id = ? LIMIT 1", (server_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_diary(row) if row is not None else None

    async def find_diary(self, id_or_server_id: str) -> LocalDiary | None:
        """Get a diary matching either its local id or its server id.

        A local-id match wins over a server-id match.
        """
        conn = self._ensure_conn()
        async with conn.execute(
            """SELECT * FROM diaries WHERE id = ? OR server_id = ?
               ORDER BY CASE WHEN id = ? THEN 0 ELSE 1 END LIMIT 1""",
            (id_or_server_id, id_or_server_id, id_or_server_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_diary(row) if row is not None else None

    async def list_diaries(self, include_deleted: bool = False) -> list[LocalDiary]:
        """List diaries, most recently updated first."""
        conn = self._ensure_conn()
        query = "SELECT * FROM diaries"
        if not include_deleted:
            query += " WHERE deleted = 0"
        query += " ORDER BY updated_at DESC"
        async with conn.execute(query) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_diary(r) for r in rows]

    async def count_diaries(self) -> int:
        """Count diaries that are not soft-deleted."""
        conn = self._ensure_conn()
        async with conn.execute("SELECT COUNT(*) AS cnt FROM diaries WHERE deleted = 0") as cursor:
            row = await cursor.fetchone()
        return int(row["cnt"]) if row else 0

    async def purge_deleted_diaries(self, older_than_days: int = 30) -> int:
        """Hard-delete soft-deleted diaries past the retention window.

        Rows still awaiting sync are kept so the server learns about the
        deletion first. Returns count purged.
        """
        conn = self._ensure_conn()
        cutoff = _cutoff(older_than_days)
        cursor = await conn.execute(
            "DELETE FROM diaries WHERE deleted = 1 AND needs_sync = 0 AND updated_at < ?",
            (cutoff,),
        )
        await conn.commit()
        return cursor.rowcount


def _cutoff(days: int) -> str:
    moment: datetime = utcnow() - timedelta(days=days)
    return moment.isoformat()


def _row_to_diary(row: Any) -> LocalDiary:
    """Convert a database row to a LocalDiary."""
    return LocalDiary(
        id=str(row["id"]),
        server_id=row["server_id"],
        author_id=str(row["author_id"] or ""),
        title=str(row["title"] or ""),
        content=str(row["content"] or ""),
        mood=row["mood"],
        weather=row["weather"],
        is_public=bool(row["is_public"]),
        version=int(row["version"] or 0),
        needs_sync=bool(row["needs_sync"]),
        sync_status=DiarySyncStatus(row["sync_status"] or DiarySyncStatus.PENDING),
        checksum=row["checksum"],
        deleted=bool(row["deleted"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
    )
