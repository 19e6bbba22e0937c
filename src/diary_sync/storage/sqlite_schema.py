"""SQLite schema definition for the local sync store."""

from __future__ import annotations

# Schema version stamped into new databases
SCHEMA_VERSION = 1

# Tables wiped by reset_all(); order matters only for readability.
SYNC_TABLES: tuple[str, ...] = (
    "sync_conflicts",
    "sync_queue",
    "sync_meta",
    "diaries",
)

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Diaries (the synced entity)
CREATE TABLE IF NOT EXISTS diaries (
    id TEXT PRIMARY KEY,  -- client-generated, stable
    server_id TEXT,  -- assigned on first successful push
    author_id TEXT DEFAULT '',
    title TEXT DEFAULT '',
    content TEXT DEFAULT '',
    mood TEXT,
    weather TEXT,
    is_public INTEGER DEFAULT 1,
    version INTEGER DEFAULT 0,
    needs_sync INTEGER DEFAULT 0,
    sync_status TEXT DEFAULT 'pending',  -- pending | synced
    checksum TEXT,  -- SHA-256 of content
    deleted INTEGER DEFAULT 0,  -- soft delete
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_diaries_server_id ON diaries(server_id);
CREATE INDEX IF NOT EXISTS idx_diaries_deleted ON diaries(deleted, updated_at);

-- Pending local mutations, one live row per entity
CREATE TABLE IF NOT EXISTS sync_queue (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    action TEXT NOT NULL,  -- create | update | delete
    version INTEGER NOT NULL,
    payload TEXT,  -- JSON, NULL for deletes
    retry_count INTEGER DEFAULT 0,
    last_error TEXT,
    abandoned INTEGER DEFAULT 0,  -- dead letter after max retries
    created_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_queue_live_entity
    ON sync_queue(entity_type, entity_id) WHERE abandoned = 0;
CREATE INDEX IF NOT EXISTS idx_sync_queue_created ON sync_queue(abandoned, created_at);

-- Version conflicts awaiting manual resolution
CREATE TABLE IF NOT EXISTS sync_conflicts (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    server_conflict_id TEXT,
    local_version INTEGER DEFAULT 0,
    server_version INTEGER DEFAULT 0,
    local_data TEXT DEFAULT '{}',  -- JSON
    server_data TEXT DEFAULT '{}',  -- JSON
    resolution TEXT,  -- NULL while unresolved
    resolved_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sync_conflicts_entity ON sync_conflicts(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_sync_conflicts_open ON sync_conflicts(resolution);

-- Scalar sync settings (last_sync_time, ...)
CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""
