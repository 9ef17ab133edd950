"""CLI commands for authentication management."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console

from argus_client.config import get_config
from argus_client.context import open_context
from argus_client.utils.errors import AuthError, handle_error
from argus_client.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="auth", help="Manage stored tokens.")


@app.command()
def status(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show whether this device is paired and when its token expires."""

    async def _run() -> dict[str, object]:
        async with open_context(get_config()) as ctx:
            token_status = ctx.auth.get_status()
            return {
                "authenticated": ctx.auth.is_authenticated,
                "device_id": ctx.auth.device_id,
                "device_name": ctx.auth.device_name,
                "is_expired": token_status.is_expired,
                "expires_at": str(token_status.expires_at) if token_status.expires_at else "N/A",
                "seconds_remaining": token_status.seconds_remaining or 0,
            }

    print_output(asyncio.run(_run()), output, title="Token Status")


@app.command()
def refresh(
    force: Annotated[bool, typer.Option("--force", "-f", help="Refresh even if the token is still fresh")] = False,
    discover: Annotated[bool, typer.Option("--discover/--no-discover", help="Look for a local server first")] = False,
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Refresh the access token (rotates the refresh token too)."""

    async def _run() -> dict[str, object]:
        async with open_context(get_config(), discover=discover) as ctx:
            if force:
                await ctx.auth.refresh_token()
            else:
                await ctx.auth.refresh_token_if_needed()
            token_status = ctx.auth.get_status()
            return {
                "status": "refreshed" if force else "ok",
                "expires_at": str(token_status.expires_at),
                "seconds_remaining": token_status.seconds_remaining,
            }

    try:
        console.print("Checking token...", style="yellow")
        print_output(asyncio.run(_run()), output, title="Token Refresh")
    except AuthError as e:
        handle_error(e)
        raise typer.Exit(1)


@app.command()
def logout() -> None:
    """Forget the stored tokens for this device."""

    async def _run() -> None:
        async with open_context(get_config()) as ctx:
            ctx.auth.logout()

    asyncio.run(_run())
    console.print("[green]Logged out.[/green]")
