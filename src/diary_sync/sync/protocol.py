"""Sync protocol data structures.

Wire models decode and validate server envelopes at the transport
boundary; the rest of the code base only sees typed objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from diary_sync.core.diary import DiaryPayload
from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.storage.sqlite_sync_queue import SyncAction

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    """Overall sync status published by the orchestrator."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"
    CONFLICT = "conflict"
    OFFLINE = "offline"


class PushItemStatus(StrEnum):
    """Per-item outcome reported by the push endpoint."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class SyncStatusState:
    """Tagged status value; only the fields relevant to ``kind`` are set."""

    kind: SyncStatus = SyncStatus.IDLE
    progress: float = 0.0
    message: str = ""
    last_sync: datetime | None = None
    error: str = ""
    count: int = 0

    @classmethod
    def idle(cls) -> SyncStatusState:
        return cls(SyncStatus.IDLE)

    @classmethod
    def syncing(cls, progress: float, message: str) -> SyncStatusState:
        return cls(SyncStatus.SYNCING, progress=progress, message=message)

    @classmethod
    def success(cls, last_sync: datetime) -> SyncStatusState:
        return cls(SyncStatus.SUCCESS, last_sync=last_sync)

    @classmethod
    def failed(cls, error: str) -> SyncStatusState:
        return cls(SyncStatus.FAILED, error=error)

    @classmethod
    def conflict(cls, count: int) -> SyncStatusState:
        return cls(SyncStatus.CONFLICT, count=count)

    @classmethod
    def offline(cls) -> SyncStatusState:
        return cls(SyncStatus.OFFLINE)

    @property
    def is_syncing(self) -> bool:
        return self.kind == SyncStatus.SYNCING

    def describe(self) -> str:
        """Human-readable one-liner for CLIs and logs."""
        if self.kind == SyncStatus.SYNCING:
            return f"syncing ({self.progress:.0%}) {self.message}".rstrip()
        if self.kind == SyncStatus.SUCCESS and self.last_sync:
            return f"success (last sync {self.last_sync.isoformat(timespec='seconds')})"
        if self.kind == SyncStatus.FAILED:
            return f"failed: {self.error}"
        if self.kind == SyncStatus.CONFLICT:
            return f"conflict ({self.count} unresolved)"
        return self.kind.value


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============ Requests ============


class DeviceRegistration(_WireModel):
    """Body of ``POST /api/sync/register-device``."""

    device_id: str = Field(..., alias="deviceId")
    device_name: str = Field(..., alias="deviceName")
    device_type: str = Field("ios", alias="deviceType")


class PushChange(_WireModel):
    """One queued mutation inside a push batch."""

    entity_type: str = Field(..., alias="entityType")
    local_id: str = Field(..., alias="localId")
    action: SyncAction
    version: int
    data: dict[str, Any] | None = None


class PushRequest(_WireModel):
    """Body of ``POST /api/sync/push``."""

    device_id: str = Field(..., alias="deviceId")
    changes: list[PushChange] = Field(default_factory=list)


class ResolveConflictRequest(_WireModel):
    """Body of ``POST /api/sync/resolve-conflict``."""

    conflict_id: str = Field(..., alias="conflictId")
    resolution: ConflictResolution
    merged_data: dict[str, Any] | None = Field(None, alias="mergedData")


# ============ Responses ============


class PulledChange(_WireModel):
    """A server-side change returned by the pull endpoint."""

    entity_id: str = Field(..., alias="entityId", min_length=1)
    action: SyncAction
    version: int | None = None
    data: DiaryPayload | None = None


class ConflictInfo(_WireModel):
    """Conflict details attached to a ``conflict`` push result."""

    conflict_id: str | None = Field(None, alias="conflictId")
    server_version: int = Field(0, alias="serverVersion")
    local_version: int = Field(0, alias="localVersion")
    server_data: dict[str, Any] = Field(default_factory=dict, alias="serverData")


class PushResult(_WireModel):
    """Per-item push outcome, positionally aligned with the request."""

    status: str = ""
    server_id: str | None = Field(None, alias="serverId")
    version: int | None = None
    conflict: ConflictInfo | None = None
    error: str | None = None


class _Envelope(_WireModel):
    success: bool = False
    data: dict[str, Any] | None = None


def request_body(model: BaseModel) -> dict[str, Any]:
    """Encode a request model with server field names."""
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def decode_pull_response(body: Any) -> list[PulledChange]:
    """Decode ``{success, data: {changes: [...]}}`` into typed changes.

    An unsuccessful or shapeless envelope yields no changes. Individual
    changes that fail validation are skipped.
    """
    raw_changes = _envelope_list(body, "changes")
    changes: list[PulledChange] = []
    for raw in raw_changes:
        try:
            changes.append(PulledChange.model_validate(raw))
        except ValidationError as e:
            logger.warning("Skipping malformed pulled change: %s", e.errors()[:1])
    return changes


def decode_push_response(body: Any) -> list[PushResult]:
    """Decode ``{success, data: {results: [...]}}`` into per-item results.

    An item that fails validation becomes an ``error`` result so it still
    lines up with its queue item.
    """
    raw_results = _envelope_list(body, "results")
    results: list[PushResult] = []
    for raw in raw_results:
        try:
            results.append(PushResult.model_validate(raw))
        except ValidationError:
            logger.warning("Malformed push result treated as error: %r", raw)
            results.append(PushResult(status=PushItemStatus.ERROR, error="malformed result"))
    return results


def _envelope_list(body: Any, key: str) -> list[Any]:
    try:
        envelope = _Envelope.model_validate(body)
    except ValidationError:
        return []
    if not envelope.success or envelope.data is None:
        return []
    items = envelope.data.get(key)
    return items if isinstance(items, list) else []
