"""Diary data structures - the one entity type kept in sync with the server."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from diary_sync.utils.timeutils import parse_iso, utcnow

DIARY_ENTITY_TYPE = "Diary"


class DiarySyncStatus(StrEnum):
    """Per-record sync state."""

    PENDING = "pending"  # local change awaiting push
    SYNCED = "synced"  # matches last known server state


class DiaryPayload(BaseModel):
    """Typed content of a diary as it travels over the wire.

    Accepts both the camelCase names the server uses and the snake_case
    attribute names, and ignores fields it does not know about. A field of
    the wrong type falls back to its default instead of rejecting the
    whole payload.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    content: str = ""
    mood: str | None = None
    weather: str | None = None
    is_public: bool = Field(True, alias="isPublic")
    local_id: str | None = Field(None, alias="localId")
    checksum: str | None = None
    created_at: datetime | None = Field(None, alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")

    @field_validator("title", "content", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, str) else ""

    @field_validator("mood", "weather", "local_id", "checksum", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("is_public", mode="before")
    @classmethod
    def _bool_or_public(cls, value: Any) -> Any:
        return value if isinstance(value, bool) else True

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_iso(value)
        return value if isinstance(value, datetime) else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with server field names, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass(frozen=True)
class LocalDiary:
    """
    A diary entry as persisted on this device.

    Records are immutable; every mutation produces a new instance via
    ``dataclasses.replace`` which the storage layer then upserts.

    Attributes:
        id: Client-generated identifier, stable for the record's lifetime
        server_id: Identifier assigned by the server on first successful push
        version: Monotonic counter bumped on every local mutation
        needs_sync: True while a local change has not been acknowledged
        checksum: SHA-256 of ``content`` for drift detection
        deleted: Soft-delete flag; the row is purged after the retention window
    """

    id: str
    author_id: str = ""
    server_id: str | None = None
    title: str = ""
    content: str = ""
    mood: str | None = None
    weather: str | None = None
    is_public: bool = True
    version: int = 0
    needs_sync: bool = False
    sync_status: DiarySyncStatus = DiarySyncStatus.PENDING
    checksum: str | None = None
    deleted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, author_id: str = "", diary_id: str | None = None) -> LocalDiary:
        """Create an empty local diary with a freshly minted id at version 0."""
        now = utcnow()
        return cls(
            id=diary_id or str(uuid4()),
            author_id=author_id,
            created_at=now,
            updated_at=now,
        )

    def to_payload(self) -> DiaryPayload:
        return DiaryPayload(
            title=self.title,
            content=self.content,
            mood=self.mood,
            weather=self.weather,
            is_public=self.is_public,
            local_id=self.id,
            checksum=self.checksum,
        )

    def snapshot(self) -> dict[str, Any]:
        """Content snapshot stored alongside a conflict."""
        return {
            "title": self.title,
            "content": self.content,
            "mood": self.mood or "",
            "weather": self.weather or "",
        }

    def to_data(self) -> DiaryData:
        return DiaryData(
            local_id=self.id,
            server_id=self.server_id,
            title=self.title,
            content=self.content,
            mood=self.mood,
            weather=self.weather,
            is_public=self.is_public,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            needs_sync=self.needs_sync,
        )


@dataclass
class DiaryData:
    """Caller-facing diary shape used to create, edit and list diaries."""

    local_id: str
    title: str
    content: str
    server_id: str | None = None
    mood: str | None = None
    weather: str | None = None
    is_public: bool = True
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    needs_sync: bool = False

    @classmethod
    def new(
        cls,
        title: str,
        content: str,
        *,
        mood: str | None = None,
        weather: str | None = None,
        is_public: bool = True,
    ) -> DiaryData:
        return cls(
            local_id=str(uuid4()),
            title=title,
            content=content,
            mood=mood,
            weather=weather,
            is_public=is_public,
        )

    def to_payload(self) -> DiaryPayload:
        return DiaryPayload(
            title=self.title,
            content=self.content,
            mood=self.mood,
            weather=self.weather,
            is_public=self.is_public,
        )
