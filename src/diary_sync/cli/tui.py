"""Terminal rendering for diary sync (rich tables and panels)."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from diary_sync.core.diary import LocalDiary
    from diary_sync.storage.sqlite_conflicts import ConflictRecord
    from diary_sync.storage.sqlite_sync_queue import QueueItem
    from diary_sync.sync.sync_manager import SyncManager

console = Console()


# =============================================================================
# Color Schemes
# =============================================================================

STATUS_COLORS = {
    "idle": "white",
    "syncing": "cyan",
    "success": "green",
    "failed": "red",
    "conflict": "yellow",
    "offline": "bright_black",
}

ACTION_COLORS = {
    "create": "green",
    "update": "blue",
    "delete": "red",
}


def _preview(text: str, width: int = 40) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[: width - 3] + "..."


# =============================================================================
# Status
# =============================================================================


def render_status(manager: SyncManager, stats: dict[str, int]) -> None:
    """Render the sync status panel."""
    status = manager.status
    header = Text()
    header.append("Sync status: ", style="bold")
    header.append(status.describe(), style=STATUS_COLORS.get(status.kind.value, "white"))

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bright_black")
    table.add_column("Value", style="bold")

    last_sync = manager.last_sync_time
    table.add_row("Device", f"{manager.device.device_name} ({manager.device.device_id})")
    table.add_row("Last sync", last_sync.isoformat(timespec="seconds") if last_sync else "never")
    table.add_row("Diaries", str(stats.get("diaries", 0)))
    table.add_row("Pending changes", str(manager.pending_changes_count))
    table.add_row("Conflicts", str(manager.conflicts_count))
    table.add_row("Abandoned", str(manager.abandoned_count))

    console.print(Panel(table, title=header, title_align="left", style="cyan"))


# =============================================================================
# Listings
# =============================================================================


def render_diaries(diaries: Sequence[LocalDiary]) -> None:
    if not diaries:
        console.print("[bright_black]No diaries.[/bright_black]")
        return

    table = Table(title="Diaries")
    table.add_column("ID", style="bright_black", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Preview")
    table.add_column("Ver", justify="right")
    table.add_column("Sync")
    table.add_column("Updated", style="bright_black")

    for d in diaries:
        sync = "[yellow]pending[/yellow]" if d.needs_sync else "[green]synced[/green]"
        if d.deleted:
            sync = "[red]deleted[/red]"
        table.add_row(
            d.id,
            d.title or "(untitled)",
            _preview(d.content),
            str(d.version),
            sync,
            d.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def render_diary(diary: LocalDiary) -> None:
    meta = Table(show_header=False, box=None, padding=(0, 2))
    meta.add_column("Field", style="bright_black")
    meta.add_column("Value")
    meta.add_row("Local id", diary.id)
    meta.add_row("Server id", diary.server_id or "-")
    meta.add_row("Version", str(diary.version))
    meta.add_row("Status", diary.sync_status.value + (" (deleted)" if diary.deleted else ""))
    meta.add_row("Mood", diary.mood or "-")
    meta.add_row("Weather", diary.weather or "-")
    meta.add_row("Public", "yes" if diary.is_public else "no")
    meta.add_row("Updated", diary.updated_at.isoformat(timespec="seconds"))
    console.print(Panel(meta, title=diary.title or "(untitled)", title_align="left"))
    console.print(diary.content)


def render_conflicts(conflicts: Sequence[ConflictRecord]) -> None:
    if not conflicts:
        console.print("[green]No unresolved conflicts.[/green]")
        return

    table = Table(title="Conflicts")
    table.add_column("ID", style="bright_black", no_wrap=True)
    table.add_column("Entity")
    table.add_column("Local v", justify="right")
    table.add_column("Server v", justify="right")
    table.add_column("Server title")
    table.add_column("Detected", style="bright_black")

    for c in conflicts:
        table.add_row(
            c.id,
            c.entity_id[:8],
            str(c.local_version),
            str(c.server_version),
            _preview(str(c.server_data.get("title", "")), 30),
            c.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def render_conflict(conflict: ConflictRecord) -> None:
    table = Table(title=f"Conflict {conflict.id}")
    table.add_column("Field", style="bright_black")
    table.add_column(f"Local (v{conflict.local_version})")
    table.add_column(f"Server (v{conflict.server_version})")

    for key in ("title", "content", "mood", "weather"):
        local = str(conflict.local_data.get(key) or "")
        server = str(conflict.server_data.get(key) or "")
        style = "" if local == server else "yellow"
        table.add_row(key, Text(local, style=style), Text(server, style=style))
    console.print(table)


def render_queue(items: Sequence[QueueItem], title: str = "Sync queue") -> None:
    if not items:
        console.print(f"[bright_black]{title}: empty.[/bright_black]")
        return

    table = Table(title=title)
    table.add_column("ID", style="bright_black", no_wrap=True)
    table.add_column("Action")
    table.add_column("Entity")
    table.add_column("Ver", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Last error", style="red")
    table.add_column("Queued", style="bright_black")

    for item in items:
        color = ACTION_COLORS.get(item.action.value, "white")
        table.add_row(
            item.id,
            f"[{color}]{item.action.value}[/{color}]",
            item.entity_id[:8],
            str(item.version),
            str(item.retry_count),
            _preview(item.last_error, 30),
            item.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
