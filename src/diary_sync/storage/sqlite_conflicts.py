"""SQLite conflict store operations mixin."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from diary_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


class ConflictResolution(StrEnum):
    """How a version conflict was settled."""

    KEEP_LOCAL = "keep_local"
    KEEP_SERVER = "keep_server"
    MERGED = "merged"


@dataclass(frozen=True)
class ConflictRecord:
    """A divergence between local and server state for one entity."""

    id: str
    entity_type: str
    entity_id: str
    server_conflict_id: str | None
    local_version: int
    server_version: int
    local_data: dict[str, Any] = field(default_factory=dict)
    server_data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    resolution: ConflictResolution | None = None  # None while unresolved
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.resolution is None


class SQLiteConflictMixin:
    """Mixin providing the durable conflict store."""

    # ------------------------------------------------------------------
    # Protocol stubs, satisfied by SQLiteStorage at runtime.
    # ------------------------------------------------------------------

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

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
        """Persist a new unresolved conflict.

        Any conflict still open for the same entity is replaced, so at most
        one unresolved conflict exists per entity.
        """
        conn = self._ensure_conn()
        record = ConflictRecord(
            id=str(uuid4()),
            entity_type=entity_type,
            entity_id=entity_id,
            server_conflict_id=server_conflict_id,
            local_version=local_version,
            server_version=server_version,
            local_data=dict(local_data or {}),
            server_data=dict(server_data or {}),
            created_at=utcnow(),
        )

        await conn.execute(
            """DELETE FROM sync_conflicts
               WHERE entity_type = ? AND entity_id = ? AND resolution IS NULL""",
            (entity_type, entity_id),
        )
        await conn.execute(
            """INSERT INTO sync_conflicts
               (id, entity_type, entity_id, server_conflict_id, local_version, server_version,
                local_data, server_data, resolution, resolved_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?)""",
            (
                record.id,
                record.entity_type,
                record.entity_id,
                record.server_conflict_id,
                record.local_version,
                record.server_version,
                json.dumps(record.local_data),
                json.dumps(record.server_data),
                record.created_at.isoformat(),
            ),
        )
        await conn.commit()
        return record

    async def get_conflict(self, conflict_id: str) -> ConflictRecord | None:
        """Get a conflict by id, resolved or not."""
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT * FROM sync_conflicts WHERE id = ?", (conflict_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_conflict(row) if row is not None else None

    async def list_conflicts(self, include_resolved: bool = False) -> list[ConflictRecord]:
        """List conflicts, oldest first."""
        conn = self._ensure_conn()
        query = "SELECT * FROM sync_conflicts"
        if not include_resolved:
            query += " WHERE resolution IS NULL"
        query += " ORDER BY created_at ASC, rowid ASC"
        async with conn.execute(query) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_conflict(r) for r in rows]

    async def count_unresolved(self) -> int:
        """Count conflicts still awaiting resolution."""
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT COUNT(*) AS cnt FROM sync_conflicts WHERE resolution IS NULL"
        ) as cursor:
            row = await cursor.fetchone()
        return int(row["cnt"]) if row else 0

    async def mark_conflict_resolved(
        self, conflict_id: str, resolution: ConflictResolution | str
    ) -> bool:
        """Stamp a resolution on an open conflict, keeping it as history."""
        conn = self._ensure_conn()
        cursor = await conn.execute(
            """UPDATE sync_conflicts SET resolution = ?, resolved_at = ?
               WHERE id = ? AND resolution IS NULL""",
            (ConflictResolution(resolution).value, utcnow().isoformat(), conflict_id),
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def purge_resolved_conflicts(self, older_than_days: int = 30) -> int:
        """Hard-delete resolved conflicts past the retention window. Returns count purged."""
        conn = self._ensure_conn()
        cutoff = (utcnow() - timedelta(days=older_than_days)).isoformat()
        cursor = await conn.execute(
            "DELETE FROM sync_conflicts WHERE resolution IS NOT NULL AND resolved_at < ?",
            (cutoff,),
        )
        await conn.commit()
        return cursor.rowcount


def _load_json(raw: Any, conflict_id: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(str(raw))
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupt snapshot JSON in conflict %s", conflict_id)
        return {}
    return data if isinstance(data, dict) else {}


def _row_to_conflict(row: Any) -> ConflictRecord:
    """Convert a database row to a ConflictRecord."""
    conflict_id = str(row["id"])
    return ConflictRecord(
        id=conflict_id,
        entity_type=str(row["entity_type"]),
        entity_id=str(row["entity_id"]),
        server_conflict_id=row["server_conflict_id"],
        local_version=int(row["local_version"] or 0),
        server_version=int(row["server_version"] or 0),
        local_data=_load_json(row["local_data"], conflict_id),
        server_data=_load_json(row["server_data"], conflict_id),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        resolution=ConflictResolution(row["resolution"]) if row["resolution"] else None,
        resolved_at=datetime.fromisoformat(str(row["resolved_at"])) if row["resolved_at"] else None,
    )
