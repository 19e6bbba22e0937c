"""diary-sync CLI.

Command-line interface for writing diaries offline and syncing them.

Usage:
    dsync diary add "title" "text"   Write a diary (queued for sync)
    dsync sync                       Run a sync cycle now
    dsync status                     Show sync status
    dsync conflicts list             Review conflicts
    dsync config set-server <url>    Configure the server
"""

from diary_sync.cli.main import app, main

__all__ = ["app", "main"]
