"""Core data models for diary sync."""

from diary_sync.core.diary import (
    DIARY_ENTITY_TYPE,
    DiaryData,
    DiaryPayload,
    DiarySyncStatus,
    LocalDiary,
)

__all__ = [
    "DIARY_ENTITY_TYPE",
    "DiaryData",
    "DiaryPayload",
    "DiarySyncStatus",
    "LocalDiary",
]
