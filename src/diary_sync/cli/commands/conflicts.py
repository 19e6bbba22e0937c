"""Conflict commands: list, show, resolve."""

from __future__ import annotations

import json
from typing import Annotated, Any

import typer

from diary_sync.cli._helpers import get_config, get_manager, require_server, run_async
from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.sync.errors import ConflictNotFoundError, SyncError

conflicts_app = typer.Typer(help="Review and resolve sync conflicts")


@conflicts_app.command("list")
def conflicts_list(
    include_resolved: Annotated[
        bool, typer.Option("--all", "-a", help="Include resolved conflicts")
    ] = False,
) -> None:
    """List unresolved conflicts.

    Examples:
        dsync conflicts list
    """
    from diary_sync.cli.tui import render_conflicts

    async def _list() -> None:
        manager = await get_manager()
        render_conflicts(await manager.storage.list_conflicts(include_resolved=include_resolved))

    run_async(_list())


@conflicts_app.command("show")
def conflicts_show(
    conflict_id: Annotated[str, typer.Argument(help="Conflict id")],
) -> None:
    """Compare the local and server versions side by side.

    Examples:
        dsync conflicts show 7a1e...
    """
    from diary_sync.cli.tui import render_conflict

    async def _show() -> bool:
        manager = await get_manager()
        conflict = await manager.storage.get_conflict(conflict_id)
        if conflict is None:
            return False
        render_conflict(conflict)
        return True

    if not run_async(_show()):
        typer.secho(f"Conflict not found: {conflict_id}", fg=typer.colors.RED)
        raise typer.Exit(1)


@conflicts_app.command("resolve")
def conflicts_resolve(
    conflict_id: Annotated[str, typer.Argument(help="Conflict id")],
    resolution: Annotated[
        ConflictResolution,
        typer.Option("--resolution", "-r", help="keep_local, keep_server or merged"),
    ] = ConflictResolution.KEEP_SERVER,
    merged: Annotated[
        str | None,
        typer.Option("--merged", help="JSON object with the merged fields (for 'merged')"),
    ] = None,
) -> None:
    """Send a conflict resolution to the server.

    Examples:
        dsync conflicts resolve 7a1e... --resolution keep_local
        dsync conflicts resolve 7a1e... -r merged --merged '{"title": "Both", "content": "..."}'
    """
    merged_data: dict[str, Any] | None = None
    if merged is not None:
        try:
            merged_data = json.loads(merged)
        except json.JSONDecodeError as e:
            typer.secho(f"Invalid --merged JSON: {e}", fg=typer.colors.RED)
            raise typer.Exit(1) from e
        if not isinstance(merged_data, dict):
            typer.secho("--merged must be a JSON object", fg=typer.colors.RED)
            raise typer.Exit(1)
    if resolution == ConflictResolution.MERGED and merged_data is None:
        typer.secho("--merged is required with --resolution merged", fg=typer.colors.RED)
        raise typer.Exit(1)

    config = get_config()
    require_server(config)

    async def _resolve() -> str | None:
        manager = await get_manager(config)
        try:
            await manager.resolve_conflict(conflict_id, resolution, merged_data)
        except ConflictNotFoundError:
            return f"Conflict not found or already resolved: {conflict_id}"
        except SyncError as e:
            return str(e)
        return None

    error = run_async(_resolve())
    if error:
        typer.secho(error, fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho(f"Conflict {conflict_id} resolved ({resolution.value}).", fg=typer.colors.GREEN)
