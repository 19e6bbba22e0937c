"""SQLite mixin for scalar sync settings."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from diary_sync.utils.timeutils import parse_iso, to_iso

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

LAST_SYNC_TIME_KEY = "last_sync_time"


class SQLiteSyncMetaMixin:
    """Mixin: persist and retrieve key/value sync settings."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    async def get_meta(self, key: str) -> str | None:
        conn = self._ensure_conn()
        async with conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return row["value"] if row is not None else None

    async def set_meta(self, key: str, value: str | None) -> None:
        """Upsert a setting. A None value removes it."""
        conn = self._ensure_conn()
        if value is None:
            await conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))
        else:
            await conn.execute(
                "INSERT OR REPLACE INTO sync_meta (key, value) VALUES (?, ?)", (key, value)
            )
        await conn.commit()

    async def get_last_sync_time(self) -> datetime | None:
        """Load the timestamp of the last fully successful sync cycle."""
        raw = await self.get_meta(LAST_SYNC_TIME_KEY)
        if raw is None:
            return None
        parsed = parse_iso(raw)
        if parsed is None:
            logger.warning("Corrupt last_sync_time in sync_meta: %r", raw)
        return parsed

    async def set_last_sync_time(self, moment: datetime) -> None:
        await self.set_meta(LAST_SYNC_TIME_KEY, to_iso(moment))
