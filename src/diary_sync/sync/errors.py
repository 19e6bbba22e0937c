"""Errors raised by the sync stack."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync failures."""


class NotAuthenticatedError(SyncError):
    """No bearer credential is available for a network step."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class ServerError(SyncError):
    """Non-2xx response, transport failure or malformed envelope."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConflictNotFoundError(SyncError):
    """Resolution requested for an unknown or already resolved conflict."""

    def __init__(self, conflict_id: str) -> None:
        super().__init__(f"Conflict not found: {conflict_id}")
        self.conflict_id = conflict_id


class NetworkUnavailableError(SyncError):
    """The network was unreachable before a cycle was attempted."""

    def __init__(self, message: str = "Network unavailable") -> None:
        super().__init__(message)


class EntityNotFoundError(SyncError):
    """No local entity matches the given id."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"Entity not found: {entity_id}")
        self.entity_id = entity_id
