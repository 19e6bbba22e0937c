"""Tests for SyncApiClient with a mocked aiohttp session."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.storage.sqlite_sync_queue import SyncAction
from diary_sync.sync.errors import NotAuthenticatedError, ServerError
from diary_sync.sync.protocol import DeviceRegistration, PushChange
from diary_sync.sync.transport import SyncApiClient


def _client(token: str | None = "tok-123") -> SyncApiClient:
    return SyncApiClient("https://api.example.com/", lambda: token, timeout=10)


def _response(status: int = 200, body: Any = None, text: str = "") -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=body)
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=False)
    return mock_response


def _attach(client: SyncApiClient, response: AsyncMock) -> MagicMock:
    mock_session = AsyncMock()
    mock_session.request = MagicMock(return_value=response)
    client._session = mock_session
    return mock_session


class TestSession:
    def test_base_url_strips_trailing_slash(self) -> None:
        assert _client().base_url == "https://api.example.com"

    def test_not_connected_initially(self) -> None:
        assert _client().is_connected is False

    async def test_connect_creates_session_with_timeout(self) -> None:
        client = _client()
        with patch("aiohttp.ClientSession") as mock_cls:
            mock_cls.return_value = AsyncMock()
            await client.connect()
            assert client.is_connected is True
            timeout = mock_cls.call_args.kwargs["timeout"]
            assert timeout.total == 10

    async def test_context_manager_closes_session(self) -> None:
        with patch("aiohttp.ClientSession") as mock_cls:
            mock_session = AsyncMock()
            mock_cls.return_value = mock_session
            async with _client() as client:
                assert client.is_connected
            mock_session.close.assert_awaited_once()
            assert client.is_connected is False


class TestRequest:
    async def test_sends_bearer_token(self) -> None:
        client = _client()
        session = _attach(client, _response(body={"success": True}))

        await client.register_device(DeviceRegistration(device_id="dev-1", device_name="phone"))

        kwargs = session.request.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer tok-123"
        assert kwargs["headers"]["Content-Type"] == "application/json"

    async def test_missing_token_fails_before_network(self) -> None:
        client = _client(token=None)
        session = _attach(client, _response(body={"success": True}))

        with pytest.raises(NotAuthenticatedError):
            await client.pull_changes(None)
        session.request.assert_not_called()

    async def test_non_200_raises_server_error(self) -> None:
        client = _client()
        _attach(client, _response(status=500, text="boom"))

        with pytest.raises(ServerError) as exc_info:
            await client.pull_changes(None)
        assert exc_info.value.status_code == 500

    async def test_201_is_not_success(self) -> None:
        client = _client()
        _attach(client, _response(status=201, body={"success": True}))

        with pytest.raises(ServerError):
            await client.register_device(DeviceRegistration(device_id="d", device_name="n"))

    async def test_client_error_wrapped(self) -> None:
        client = _client()
        mock_session = AsyncMock()
        mock_session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        client._session = mock_session

        with pytest.raises(ServerError) as exc_info:
            await client.pull_changes(None)
        assert "connection error" in str(exc_info.value)
        assert exc_info.value.status_code is None

    async def test_timeout_wrapped(self) -> None:
        client = _client()
        mock_session = AsyncMock()
        mock_session.request = MagicMock(side_effect=asyncio.TimeoutError())
        client._session = mock_session

        with pytest.raises(ServerError, match="timed out"):
            await client.pull_changes(None)

    async def test_invalid_json_raises(self) -> None:
        client = _client()
        response = _response()
        response.json = AsyncMock(side_effect=ValueError("bad json"))
        _attach(client, response)

        with pytest.raises(ServerError, match="invalid JSON"):
            await client.pull_changes(None)


class TestEndpoints:
    async def test_register_device(self) -> None:
        client = _client()
        session = _attach(client, _response(body={"success": True}))

        ok = await client.register_device(
            DeviceRegistration(device_id="dev-1", device_name="phone")
        )

        assert ok is True
        args = session.request.call_args
        assert args.args == ("POST", "https://api.example.com/api/sync/register-device")
        assert args.kwargs["json"] == {
            "deviceId": "dev-1",
            "deviceName": "phone",
            "deviceType": "ios",
        }

    async def test_register_device_unsuccessful_flag(self) -> None:
        client = _client()
        _attach(client, _response(body={"success": False}))
        registration = DeviceRegistration(device_id="d", device_name="n")
        assert await client.register_device(registration) is False

    async def test_pull_first_run_uses_epoch(self) -> None:
        client = _client()
        session = _attach(client, _response(body={"success": True, "data": {"changes": []}}))

        assert await client.pull_changes(None) == []

        args = session.request.call_args
        assert args.args == ("GET", "https://api.example.com/api/sync/changes")
        assert args.kwargs["params"] == {
            "since": "1970-01-01T00:00:00Z",
            "types": "Diary",
            "limit": "100",
        }

    async def test_pull_since_and_decodes(self) -> None:
        client = _client()
        body = {
            "success": True,
            "data": {"changes": [{"entityId": "srv-1", "action": "delete"}]},
        }
        session = _attach(client, _response(body=body))

        changes = await client.pull_changes(datetime(2026, 3, 1, 12, 0, 0), limit=20)

        assert [c.entity_id for c in changes] == ["srv-1"]
        params = session.request.call_args.kwargs["params"]
        assert params["since"] == "2026-03-01T12:00:00Z"
        assert params["limit"] == "20"

    async def test_push_changes(self) -> None:
        client = _client()
        body = {"success": True, "data": {"results": [{"status": "success", "serverId": "s"}]}}
        session = _attach(client, _response(body=body))

        results = await client.push_changes(
            "dev-1",
            [
                PushChange(
                    entity_type="Diary",
                    local_id="d-1",
                    action=SyncAction.CREATE,
                    version=1,
                    data={"title": "t"},
                )
            ],
        )

        assert results[0].server_id == "s"
        args = session.request.call_args
        assert args.args == ("POST", "https://api.example.com/api/sync/push")
        assert args.kwargs["json"]["deviceId"] == "dev-1"
        assert args.kwargs["json"]["changes"][0]["localId"] == "d-1"

    async def test_resolve_conflict(self) -> None:
        client = _client()
        session = _attach(client, _response(body={"success": True}))

        await client.resolve_conflict("c-1", ConflictResolution.MERGED, {"title": "m"})

        args = session.request.call_args
        assert args.args == ("POST", "https://api.example.com/api/sync/resolve-conflict")
        assert args.kwargs["json"] == {
            "conflictId": "c-1",
            "resolution": "merged",
            "mergedData": {"title": "m"},
        }

    async def test_resolve_conflict_rejected(self) -> None:
        client = _client()
        _attach(client, _response(status=404))

        with pytest.raises(ServerError) as exc_info:
            await client.resolve_conflict("c-1", ConflictResolution.KEEP_SERVER)
        assert exc_info.value.status_code == 404
