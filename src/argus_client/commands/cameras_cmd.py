"""CLI commands for cameras."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console

from argus_client.config import get_config
from argus_client.context import open_context
from argus_client.models.cameras import Camera
from argus_client.services.cameras import CameraService
from argus_client.utils.errors import AuthError, handle_error
from argus_client.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="cameras", help="List cameras on the paired server.")


@app.command("list")
def list_cameras(
    discover: Annotated[bool, typer.Option("--discover/--no-discover", help="Look for a local server first")] = False,
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """List cameras (requires a paired device)."""

    async def _run() -> list[Camera]:
        async with open_context(get_config(), discover=discover) as ctx:
            return await CameraService(ctx.transport, ctx.auth).list()

    try:
        cameras = asyncio.run(_run())
    except AuthError as e:
        handle_error(e)
        raise typer.Exit(1)

    if not cameras:
        console.print("[dim]No cameras found.[/dim]")
        raise typer.Exit(0)

    rows = [
        {
            "id": str(camera.id),
            "name": camera.name,
            "type": camera.display_type,
            "enabled": camera.enabled,
            "doorbell": camera.doorbell,
        }
        for camera in cameras
    ]
    print_output(rows, output, title="Cameras")
