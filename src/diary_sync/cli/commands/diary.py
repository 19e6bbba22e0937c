"""Diary commands: add, edit, delete, list, show.

Every change is written locally first. When a server is configured the
change is pushed right away, otherwise it waits in the sync queue.
"""

from __future__ import annotations

from typing import Annotated

import typer

from diary_sync.cli._helpers import get_config, get_manager, run_async
from diary_sync.core.diary import DiaryData
from diary_sync.sync.errors import EntityNotFoundError
from diary_sync.sync.protocol import SyncStatus
from diary_sync.sync.sync_manager import SyncManager

diary_app = typer.Typer(help="Create, edit and browse diaries")


async def _open(no_sync: bool) -> SyncManager:
    config = get_config()
    manager = await get_manager(config)
    if no_sync or not config.server.base_url:
        manager.handler.set_on_local_change(None)
    return manager


async def _report_sync(manager: SyncManager) -> None:
    await manager.wait_idle()
    status = manager.status
    if status.kind == SyncStatus.IDLE:
        typer.secho("Saved locally; will sync later.", fg=typer.colors.BRIGHT_BLACK)
    else:
        typer.secho(f"Sync: {status.describe()}", fg=typer.colors.BRIGHT_BLACK)


@diary_app.command("add")
def diary_add(
    title: Annotated[str, typer.Argument(help="Diary title")],
    content: Annotated[str, typer.Argument(help="Diary text")],
    mood: Annotated[str | None, typer.Option("--mood", "-m", help="Mood tag")] = None,
    weather: Annotated[str | None, typer.Option("--weather", "-w", help="Weather tag")] = None,
    private: Annotated[bool, typer.Option("--private", help="Do not publish")] = False,
    no_sync: Annotated[bool, typer.Option("--no-sync", help="Only queue the change")] = False,
) -> None:
    """Write a new diary.

    Examples:
        dsync diary add "Monday" "Rained all day" --mood calm --weather rainy
        dsync diary add "Notes" "Offline draft" --no-sync
    """

    async def _add() -> str:
        manager = await _open(no_sync)
        data = DiaryData.new(title, content, mood=mood, weather=weather, is_public=not private)
        saved = await manager.handler.save_local(data, is_new=True)
        await _report_sync(manager)
        return saved.id

    diary_id = run_async(_add())
    typer.secho(f"Saved diary {diary_id}", fg=typer.colors.GREEN)


@diary_app.command("edit")
def diary_edit(
    diary_id: Annotated[str, typer.Argument(help="Local or server id")],
    title: Annotated[str | None, typer.Option("--title", "-t", help="New title")] = None,
    content: Annotated[str | None, typer.Option("--content", "-c", help="New text")] = None,
    mood: Annotated[str | None, typer.Option("--mood", "-m", help="Mood tag")] = None,
    weather: Annotated[str | None, typer.Option("--weather", "-w", help="Weather tag")] = None,
    no_sync: Annotated[bool, typer.Option("--no-sync", help="Only queue the change")] = False,
) -> None:
    """Edit an existing diary.

    Examples:
        dsync diary edit 3f2c... --content "Sun came out later"
    """

    async def _edit() -> int | None:
        manager = await _open(no_sync)
        existing = await manager.handler.get_local(diary_id)
        if existing is None or existing.deleted:
            return None
        data = existing.to_data()
        if title is not None:
            data.title = title
        if content is not None:
            data.content = content
        if mood is not None:
            data.mood = mood
        if weather is not None:
            data.weather = weather
        saved = await manager.handler.save_local(data)
        await _report_sync(manager)
        return saved.version

    version = run_async(_edit())
    if version is None:
        typer.secho(f"Diary not found: {diary_id}", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho(f"Updated diary {diary_id} (v{version})", fg=typer.colors.GREEN)


@diary_app.command("delete")
def diary_delete(
    diary_id: Annotated[str, typer.Argument(help="Local or server id")],
    no_sync: Annotated[bool, typer.Option("--no-sync", help="Only queue the change")] = False,
) -> None:
    """Delete a diary (soft delete, synced to the server).

    Examples:
        dsync diary delete 3f2c...
    """

    async def _delete() -> bool:
        manager = await _open(no_sync)
        try:
            await manager.handler.soft_delete(diary_id)
        except EntityNotFoundError:
            return False
        await _report_sync(manager)
        return True

    if not run_async(_delete()):
        typer.secho(f"Diary not found: {diary_id}", fg=typer.colors.RED)
        raise typer.Exit(1)
    typer.secho(f"Deleted diary {diary_id}", fg=typer.colors.GREEN)


@diary_app.command("list")
def diary_list(
    include_deleted: Annotated[
        bool, typer.Option("--deleted", "-d", help="Include soft-deleted diaries")
    ] = False,
) -> None:
    """List diaries, most recently updated first.

    Examples:
        dsync diary list
        dsync diary list --deleted
    """
    from diary_sync.cli.tui import render_diaries

    async def _list() -> None:
        config = get_config()
        manager = await get_manager(config)
        diaries = await manager.storage.list_diaries(include_deleted=include_deleted)
        render_diaries(diaries)

    run_async(_list())


@diary_app.command("show")
def diary_show(
    diary_id: Annotated[str, typer.Argument(help="Local or server id")],
) -> None:
    """Show one diary in full.

    Examples:
        dsync diary show 3f2c...
    """
    from diary_sync.cli.tui import render_diary

    async def _show() -> bool:
        manager = await get_manager()
        diary = await manager.handler.get_local(diary_id)
        if diary is None:
            return False
        render_diary(diary)
        return True

    if not run_async(_show()):
        typer.secho(f"Diary not found: {diary_id}", fg=typer.colors.RED)
        raise typer.Exit(1)
