"""Sync queue commands: list, abandoned, requeue, discard."""

from __future__ import annotations

from typing import Annotated

import typer

from diary_sync.cli._helpers import get_manager, run_async

queue_app = typer.Typer(help="Inspect the outgoing change queue")


@queue_app.command("list")
def queue_list() -> None:
    """List changes waiting to be pushed.

    Examples:
        dsync queue list
    """
    from diary_sync.cli.tui import render_queue

    async def _list() -> None:
        manager = await get_manager()
        render_queue(await manager.storage.list_queue())

    run_async(_list())


@queue_app.command("abandoned")
def queue_abandoned() -> None:
    """List changes that exhausted their retries.

    Examples:
        dsync queue abandoned
    """
    from diary_sync.cli.tui import render_queue

    async def _list() -> None:
        manager = await get_manager()
        render_queue(await manager.storage.list_abandoned(), title="Abandoned changes")

    run_async(_list())


@queue_app.command("requeue")
def queue_requeue(
    item_ids: Annotated[
        list[str] | None, typer.Argument(help="Queue item ids (default: all abandoned)")
    ] = None,
) -> None:
    """Give abandoned changes another round of retries.

    Examples:
        dsync queue requeue
        dsync queue requeue 0b9d...
    """

    async def _requeue() -> int:
        manager = await get_manager()
        return await manager.storage.requeue_abandoned(item_ids or None)

    count = run_async(_requeue())
    typer.secho(
        f"Requeued {count} change(s). Run 'dsync sync' to push them.", fg=typer.colors.GREEN
    )


@queue_app.command("discard")
def queue_discard(
    item_ids: Annotated[
        list[str] | None, typer.Argument(help="Queue item ids (default: all abandoned)")
    ] = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Permanently drop abandoned changes.

    Examples:
        dsync queue discard --force
    """
    if not force:
        typer.confirm("Drop abandoned changes? They will never reach the server.", abort=True)

    async def _discard() -> int:
        manager = await get_manager()
        return await manager.discard_abandoned(item_ids or None)

    count = run_async(_discard())
    typer.secho(f"Discarded {count} change(s).", fg=typer.colors.GREEN)
