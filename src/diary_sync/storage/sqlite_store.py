"""SQLite storage backend for the offline-first sync store."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from diary_sync.storage.base import SyncStorage
from diary_sync.storage.sqlite_conflicts import SQLiteConflictMixin
from diary_sync.storage.sqlite_diaries import SQLiteDiaryMixin
from diary_sync.storage.sqlite_schema import SCHEMA, SCHEMA_VERSION, SYNC_TABLES
from diary_sync.storage.sqlite_sync_meta import SQLiteSyncMetaMixin
from diary_sync.storage.sqlite_sync_queue import SQLiteSyncQueueMixin

logger = logging.getLogger(__name__)


class SQLiteStorage(
    SQLiteDiaryMixin,
    SQLiteSyncQueueMixin,
    SQLiteConflictMixin,
    SQLiteSyncMetaMixin,
    SyncStorage,
):
    """SQLite-based local store for diaries, the sync queue and conflicts.

    Data persists to disk and survives restarts. A single writer
    connection is used; all access happens from the owning event loop.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize database connection and schema.

        Refuses to open a database stamped by a newer schema version.
        """
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        await self._conn.executescript(SCHEMA)

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()

        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            await self._conn.commit()
        elif row["version"] > SCHEMA_VERSION:
            stored = row["version"]
            await self.close()
            raise RuntimeError(
                f"Database schema version {stored} is newer than supported ({SCHEMA_VERSION})"
            )

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteStorage:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_conn(self) -> aiosqlite.Connection:
        """Ensure writer connection is available."""
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    # ========== Statistics ==========

    async def get_statistics(self) -> dict[str, int]:
        return {
            "diaries": await self.count_diaries(),
            "pending_sync": await self.count_pending(),
            "conflicts": await self.count_unresolved(),
            "abandoned": await self.count_abandoned(),
        }

    # ========== Cleanup ==========

    async def reset_all(self) -> None:
        conn = self._ensure_conn()
        for table in SYNC_TABLES:
            # Table name is from a hardcoded tuple, safe to interpolate.
            await conn.execute(f"DELETE FROM {table}")
        await conn.commit()
        logger.info("All local sync data reset")
