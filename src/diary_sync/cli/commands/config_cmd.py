"""CLI commands for configuration management."""

from __future__ import annotations

import json
from dataclasses import replace
from typing import Annotated

import typer

from diary_sync.cli._helpers import get_config, mask_token

config_app = typer.Typer(help="Configuration management")


@config_app.command("show")
def config_show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the current configuration (token masked).

    Examples:
        dsync config show
    """
    config = get_config()
    server = config.server.to_dict()
    server["api_token"] = mask_token(config.get_token())
    data = {
        "data_dir": str(config.data_dir),
        "server": server,
        "sync": config.sync.to_dict(),
        "connectivity": config.connectivity.to_dict(),
    }

    if json_output:
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Data directory: {data['data_dir']}")
    for section in ("server", "sync", "connectivity"):
        typer.secho(f"\n[{section}]", fg=typer.colors.CYAN, bold=True)
        for key, value in data[section].items():  # type: ignore[union-attr]
            typer.echo(f"  {key} = {value}")


@config_app.command("set-server")
def config_set_server(
    server_url: Annotated[
        str, typer.Argument(help="Sync server URL (e.g., https://api.example.com)")
    ],
    token: Annotated[
        str | None, typer.Option("--token", "-k", help="Bearer token for the sync API")
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", "-t", help="Request timeout in seconds")
    ] = None,
) -> None:
    """Point the client at a sync server.

    Examples:
        dsync config set-server https://api.example.com --token abc123
        dsync config set-server http://localhost:8080 --timeout 60
    """
    config = get_config()
    config.server.base_url = server_url.rstrip("/")
    if token is not None:
        config.server.api_token = token or None
    if timeout is not None:
        config.server.request_timeout = timeout
    config.save()

    typer.secho("Server configured.", fg=typer.colors.GREEN)
    typer.echo(f"  Server: {config.server.base_url}")
    typer.echo(f"  Token: {mask_token(config.get_token())}")
    typer.echo(f"  Timeout: {config.server.request_timeout}s")


@config_app.command("set-device-name")
def config_set_device_name(
    name: Annotated[str, typer.Argument(help="Name reported when registering this device")],
) -> None:
    """Override the device name (defaults to the hostname).

    Examples:
        dsync config set-device-name "Kitchen laptop"
    """
    config = get_config()
    config.sync = replace(config.sync, device_name=name.strip() or None)
    config.save()
    shown = config.sync.device_name or "(hostname)"
    typer.secho(f"Device name set to {shown}.", fg=typer.colors.GREEN)


@config_app.command("auto-sync")
def config_auto_sync(
    enabled: Annotated[bool, typer.Argument(help="true to push every local change immediately")],
) -> None:
    """Enable or disable syncing right after each local change.

    Examples:
        dsync config auto-sync false
    """
    config = get_config()
    config.sync = replace(config.sync, auto_sync=enabled)
    config.save()
    typer.secho(f"Auto sync {'enabled' if enabled else 'disabled'}.", fg=typer.colors.GREEN)
