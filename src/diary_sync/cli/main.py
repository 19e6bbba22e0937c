"""diary-sync CLI main entry point."""

from __future__ import annotations

import logging
import sys
from typing import Annotated

import typer

from diary_sync.cli.commands.config_cmd import config_app
from diary_sync.cli.commands.conflicts import conflicts_app
from diary_sync.cli.commands.diary import diary_app
from diary_sync.cli.commands.queue import queue_app
from diary_sync.cli.commands.sync_cmd import cleanup, device, reset, status, sync

# Main app
app = typer.Typer(
    name="dsync",
    help="diary-sync - Offline-first diary sync client",
    no_args_is_help=True,
)

app.add_typer(diary_app, name="diary")
app.add_typer(conflicts_app, name="conflicts")
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")

app.command()(status)
app.command()(sync)
app.command()(device)
app.command()(cleanup)
app.command()(reset)


@app.callback()
def _configure_logging(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show version information."""
    from diary_sync import __version__

    typer.echo(f"diary-sync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
