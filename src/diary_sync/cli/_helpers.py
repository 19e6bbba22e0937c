"""Shared CLI helpers for configuration, sync services, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer

from diary_sync.sync.factory import create_sync_manager
from diary_sync.sync.sync_manager import SyncManager
from diary_sync.unified_config import UnifiedConfig
from diary_sync.unified_config import get_config as _load_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Track managers created during a CLI command so we can close them before
# the event loop shuts down (aiosqlite's worker thread must be joined first).
_active_managers: list[SyncManager] = []


def get_config() -> UnifiedConfig:
    """Get the unified configuration, freshly read from disk."""
    return _load_config(reload=True)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command, closing sync services before loop teardown."""

    async def _with_cleanup() -> T:
        try:
            return await coro
        finally:
            for manager in _active_managers:
                try:
                    await manager.close()
                except Exception:
                    logger.debug("Failed to close sync manager during cleanup", exc_info=True)
            _active_managers.clear()
            await asyncio.sleep(0)

    return asyncio.run(_with_cleanup())


async def get_manager(config: UnifiedConfig | None = None) -> SyncManager:
    """Open the local store and build a SyncManager for one command."""
    manager = await create_sync_manager(config or get_config())
    _active_managers.append(manager)
    return manager


def require_server(config: UnifiedConfig) -> None:
    """Exit with a hint when no server has been configured."""
    if not config.server.base_url:
        typer.secho(
            "No server configured. Use 'dsync config set-server <url>' first.",
            fg=typer.colors.RED,
        )
        raise typer.Exit(1)


def mask_token(token: str | None) -> str:
    if not token:
        return "not set"
    return f"{'*' * 8}...{token[-4:] if len(token) > 4 else '****'}"


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result in appropriate format."""
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    if "error" in data:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED)
        return

    for key, value in data.items():
        typer.echo(f"{key.replace('_', ' ').capitalize()}: {value}")
