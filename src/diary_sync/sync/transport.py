"""HTTP client for the server's sync API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.sync.errors import NotAuthenticatedError, ServerError
from diary_sync.sync.protocol import (
    DeviceRegistration,
    PulledChange,
    PushChange,
    PushRequest,
    PushResult,
    ResolveConflictRequest,
    decode_pull_response,
    decode_push_response,
    request_body,
)
from diary_sync.utils.timeutils import EPOCH, to_iso

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class SyncApiClient:
    """
    Authenticated client for the four sync endpoints.

    Usage:
        async with SyncApiClient("https://api.example.com", lambda: token) as api:
            await api.register_device(registration)
            changes = await api.pull_changes(since=last_sync)
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        *,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Server base URL (e.g., "https://api.example.com")
            token_provider: Returns the current bearer token, or None when logged out
            timeout: Total timeout per request in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> SyncApiClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    def _get_headers(self) -> dict[str, str]:
        """Build request headers; fails fast without a credential."""
        token = self._token_provider()
        if not token:
            raise NotAuthenticatedError()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        error_message: str,
    ) -> Any:
        """Make an authenticated request; anything but HTTP 200 raises ServerError."""
        headers = self._get_headers()
        if not self._session:
            await self.connect()
        assert self._session is not None

        url = f"{self._base_url}{path}"
        try:
            async with self._session.request(
                method,
                url,
                json=json_data,
                params=params,
                headers=headers,
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    logger.debug("%s %s -> %d: %s", method, path, response.status, text[:200])
                    raise ServerError(error_message, status_code=response.status)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ServerError(f"{error_message}: invalid JSON", status_code=200) from e
        except aiohttp.ClientError as e:
            raise ServerError(f"{error_message}: connection error: {e}") from e
        except asyncio.TimeoutError as e:
            raise ServerError(f"{error_message}: request timed out") from e

    # ========== Endpoints ==========

    async def register_device(self, registration: DeviceRegistration) -> bool:
        """Upsert this device. Returns the server's ``success`` flag."""
        body = await self._request(
            "POST",
            "/api/sync/register-device",
            json_data=request_body(registration),
            error_message="Device registration failed",
        )
        return isinstance(body, dict) and body.get("success") is True

    async def pull_changes(
        self,
        since: datetime | None,
        *,
        entity_type: str = "Diary",
        limit: int = 100,
    ) -> list[PulledChange]:
        """Fetch server-side changes since a timestamp (epoch on first run)."""
        body = await self._request(
            "GET",
            "/api/sync/changes",
            params={
                "since": to_iso(since or EPOCH),
                "types": entity_type,
                "limit": str(limit),
            },
            error_message="Fetching changes failed",
        )
        return decode_pull_response(body)

    async def push_changes(self, device_id: str, changes: list[PushChange]) -> list[PushResult]:
        """Push a batch of queued changes; results align with ``changes``."""
        body = await self._request(
            "POST",
            "/api/sync/push",
            json_data=request_body(PushRequest(device_id=device_id, changes=changes)),
            error_message="Pushing changes failed",
        )
        return decode_push_response(body)

    async def resolve_conflict(
        self,
        conflict_id: str,
        resolution: ConflictResolution,
        merged_data: dict[str, Any] | None = None,
    ) -> None:
        """Send a conflict resolution; raises unless the server answers 200."""
        await self._request(
            "POST",
            "/api/sync/resolve-conflict",
            json_data=request_body(
                ResolveConflictRequest(
                    conflict_id=conflict_id,
                    resolution=resolution,
                    merged_data=merged_data,
                )
            ),
            error_message="Resolving conflict failed",
        )
