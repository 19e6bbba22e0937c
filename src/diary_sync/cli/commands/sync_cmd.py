"""Sync commands: status, sync, device, cleanup, reset."""

from __future__ import annotations

import json
from typing import Annotated

import typer

from diary_sync.cli._helpers import (
    get_config,
    get_manager,
    output_result,
    require_server,
    run_async,
)
from diary_sync.sync.errors import NetworkUnavailableError
from diary_sync.sync.protocol import SyncStatus


def status(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show sync status, pending changes and conflicts.

    Examples:
        dsync status
        dsync status --json
    """

    async def _status() -> None:
        manager = await get_manager()
        stats = await manager.get_statistics()

        if json_output:
            last_sync = manager.last_sync_time
            typer.echo(
                json.dumps(
                    {
                        "status": manager.status.kind.value,
                        "last_sync": last_sync.isoformat() if last_sync else None,
                        "device_id": manager.device.device_id,
                        "pending_changes": manager.pending_changes_count,
                        "conflicts": manager.conflicts_count,
                        "abandoned": manager.abandoned_count,
                        "diaries": stats.get("diaries", 0),
                    },
                    indent=2,
                )
            )
            return

        from diary_sync.cli.tui import render_status

        render_status(manager, stats)

    run_async(_status())


def sync(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Run one sync cycle now: register, pull, push.

    Exits with code 1 when the cycle fails.

    Examples:
        dsync sync
        dsync sync --json
    """
    config = get_config()
    require_server(config)

    async def _sync() -> dict:
        manager = await get_manager(config)
        try:
            final = await manager.force_sync(raise_offline=True)
        except NetworkUnavailableError as e:
            return {"status": SyncStatus.OFFLINE.value, "error": str(e)}

        result = {
            "status": final.kind.value,
            "pending_changes": manager.pending_changes_count,
            "conflicts": manager.conflicts_count,
            "abandoned": manager.abandoned_count,
        }
        if final.kind == SyncStatus.FAILED:
            result["error"] = final.error
        return result

    result = run_async(_sync())

    if json_output:
        output_result(result, as_json=True)
    elif result["status"] == SyncStatus.FAILED.value:
        typer.secho(f"Sync failed: {result['error']}", fg=typer.colors.RED)
    elif result["status"] == SyncStatus.CONFLICT.value:
        typer.secho(
            f"Sync finished with {result['conflicts']} unresolved conflict(s).",
            fg=typer.colors.YELLOW,
        )
        typer.echo("Use 'dsync conflicts list' to review them.")
    else:
        typer.secho("Sync complete.", fg=typer.colors.GREEN)
        typer.echo(f"  Pending changes: {result['pending_changes']}")
        if result["abandoned"]:
            typer.secho(
                f"  Abandoned changes: {result['abandoned']} (see 'dsync queue abandoned')",
                fg=typer.colors.YELLOW,
            )

    if result["status"] in (SyncStatus.FAILED.value, SyncStatus.OFFLINE.value):
        raise typer.Exit(1)


def device(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show this install's device identity.

    Examples:
        dsync device
    """
    from diary_sync.sync.device import get_device_info

    config = get_config()
    info = get_device_info(
        config.data_dir,
        device_name=config.sync.device_name,
        device_type=config.sync.device_type,
    )
    output_result(
        {
            "device_id": info.device_id,
            "device_name": info.device_name,
            "device_type": info.device_type,
        },
        as_json=json_output,
    )


def cleanup() -> None:
    """Purge deleted diaries and resolved conflicts older than the retention window.

    Examples:
        dsync cleanup
    """

    async def _cleanup() -> int:
        manager = await get_manager()
        return await manager.cleanup()

    purged = run_async(_cleanup())
    noun = "diary" if purged == 1 else "diaries"
    typer.secho(f"Purged {purged} deleted {noun}.", fg=typer.colors.GREEN)


def reset(
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete every local diary, queued change and conflict.

    Unsynced changes are lost. The device id is kept.

    Examples:
        dsync reset
        dsync reset --force
    """
    if not force:
        typer.confirm("Delete all local sync data? Unsynced changes will be lost.", abort=True)

    async def _reset() -> None:
        manager = await get_manager()
        await manager.reset()

    run_async(_reset())
    typer.secho("Local sync data cleared.", fg=typer.colors.GREEN)
