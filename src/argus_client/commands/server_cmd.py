"""CLI commands for choosing which ArgusAI server to talk to."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from argus_client.config import get_config
from argus_client.context import open_context
from argus_client.models.endpoint import EndpointConfig
from argus_client.utils.errors import AuthError, handle_error
from argus_client.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="server", help="Configure, test and discover servers.")


@app.command()
def show(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show the configured server and the URL requests will use."""

    async def _run() -> dict[str, object]:
        async with open_context(get_config()) as ctx:
            server = ctx.resolver.config
            return {
                "host": server.host,
                "port": server.port,
                "use_tls": server.use_tls,
                "skip_tls_verification": server.skip_tls_verification,
                "configured_url": ctx.resolver.configured_server_url,
                "active_url": ctx.resolver.resolve_base_url(),
            }

    print_output(asyncio.run(_run()), output, title="Server")


@app.command()
def configure(
    host: Annotated[str, typer.Argument(help="Server hostname or IP address")],
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Server port")] = None,
    tls: Annotated[bool, typer.Option("--tls/--no-tls", help="Use HTTPS")] = True,
    skip_tls_verification: Annotated[
        bool,
        typer.Option("--skip-tls-verification", help="Accept self-signed certificates (development only)"),
    ] = False,
    test: Annotated[bool, typer.Option("--test/--no-test", help="Test the connection before saving")] = True,
) -> None:
    """Save a remote server (host, port, TLS options)."""
    try:
        candidate = EndpointConfig(
            host=host.strip(),
            port=port,
            use_tls=tls,
            skip_tls_verification=skip_tls_verification,
        )
    except ValidationError:
        console.print("[red]Port must be between 1 and 65535[/red]")
        raise typer.Exit(1)

    async def _run() -> bool:
        async with open_context(get_config()) as ctx:
            if test:
                check = await ctx.transport.check_health(candidate)
                if not check.reachable:
                    console.print(f"[red]Connection failed:[/red] {check.error}")
                    return False
                console.print(f"[green]Server reachable[/green] ({check.status_code})")
            ctx.resolver.configure_server(
                candidate.host or "",
                candidate.port,
                candidate.use_tls,
                candidate.skip_tls_verification,
            )
            return True

    try:
        saved = asyncio.run(_run())
    except AuthError as e:
        handle_error(e)
        raise typer.Exit(1)
    if not saved:
        raise typer.Exit(1)
    if candidate.use_tls and candidate.skip_tls_verification:
        console.print("[yellow]Warning: TLS certificate verification is disabled for this server.[/yellow]")
    console.print(f"Saved server [bold]{candidate.url}[/bold]")


@app.command("set")
def set_field(
    host: Annotated[Optional[str], typer.Option("--host", help="Server hostname or IP address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Server port")] = None,
    tls: Annotated[Optional[bool], typer.Option("--tls/--no-tls", help="Use HTTPS")] = None,
    skip_tls_verification: Annotated[
        Optional[bool],
        typer.Option("--skip-tls-verification/--verify-tls", help="Accept self-signed certificates"),
    ] = None,
) -> None:
    """Change individual server settings without re-entering the rest."""
    fields = {
        "host": host,
        "port": port,
        "use_tls": tls,
        "skip_tls_verification": skip_tls_verification,
    }
    changes = {key: value for key, value in fields.items() if value is not None}
    if not changes:
        console.print("[dim]Nothing to change.[/dim]")
        raise typer.Exit(0)

    async def _run() -> EndpointConfig:
        async with open_context(get_config()) as ctx:
            return ctx.resolver.update_server(**changes)

    try:
        server = asyncio.run(_run())
    except ValidationError:
        console.print("[red]Port must be between 1 and 65535[/red]")
        raise typer.Exit(1)
    console.print(f"Server is now [bold]{server.url or 'not configured'}[/bold]")


@app.command()
def clear() -> None:
    """Remove the configured server (host, port and TLS options together)."""

    async def _run() -> None:
        async with open_context(get_config()) as ctx:
            ctx.resolver.clear_server_configuration()

    asyncio.run(_run())
    console.print("Server configuration cleared.")


@app.command("test")
def test_connection(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Probe the health endpoint of the server requests currently go to."""

    async def _run():
        async with open_context(get_config()) as ctx:
            return await ctx.transport.check_health()

    try:
        check = asyncio.run(_run())
    except AuthError as e:
        handle_error(e)
        raise typer.Exit(1)

    print_output(check.model_dump(), output, title="Connection Test")
    if not check.reachable:
        raise typer.Exit(1)


@app.command()
def discover(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Search the local network for an ArgusAI server."""

    async def _run():
        async with open_context(get_config()) as ctx:
            console.print("Searching the local network...", style="yellow")
            await ctx.discovery.refresh_discovery()
            return await ctx.discovery.wait()

    found = asyncio.run(_run())
    if found is None:
        console.print("[dim]No ArgusAI server found on the local network.[/dim]")
        raise typer.Exit(1)
    print_output(found.model_dump(), output, title="Discovered Server")
