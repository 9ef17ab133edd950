"""CLI commands for pairing this device with a server."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.live import Live
from rich.text import Text

from argus_client.config import get_config
from argus_client.context import ClientContext, open_context
from argus_client.services.pairing import (
    Completed,
    Error,
    PairingState,
    PairingStateMachine,
    WaitingForConfirmation,
)
from argus_client.utils.errors import AuthError, handle_error
from argus_client.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="pair", help="Pair this device with an ArgusAI server.")

_STATE_LABELS = {
    "Idle": "Idle",
    "GeneratingCode": "Generating pairing code...",
    "Confirmed": "Code confirmed",
    "ExchangingTokens": "Completing pairing...",
    "Completed": "Paired",
}


def render(machine: PairingStateMachine) -> Text:
    """Render the current pairing state as a single status block."""
    state = machine.state
    if isinstance(state, WaitingForConfirmation):
        text = Text()
        text.append("Enter this code in the ArgusAI dashboard:\n")
        text.append(machine.formatted_code, style="bold cyan")
        text.append(f"\nExpires in {machine.formatted_time_remaining}", style="dim")
        return text
    if isinstance(state, Error):
        return Text(f"Pairing failed: {state.message}", style="red")
    return Text(_STATE_LABELS.get(type(state).__name__, ""), style="yellow")


async def run_pairing(ctx: ClientContext) -> PairingState:
    machine = ctx.pairing()
    with Live(render(machine), console=console, refresh_per_second=4, transient=True) as live:
        machine.subscribe(lambda m: live.update(render(m)))
        try:
            await machine.start_pairing()
            return await machine.wait()
        finally:
            if machine.is_running:
                machine.cancel()


@app.command()
def start(
    discover: Annotated[bool, typer.Option("--discover/--no-discover", help="Look for a local server first")] = True,
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Request a code, wait for it to be approved, and store the tokens."""

    async def _run() -> tuple[PairingState, dict[str, object]]:
        async with open_context(get_config(), discover=discover) as ctx:
            console.print(f"Pairing with [bold]{ctx.resolver.resolve_base_url()}[/bold]")
            state = await run_pairing(ctx)
            return state, {
                "status": "paired",
                "server": ctx.resolver.resolve_base_url(),
                "device_id": ctx.auth.device_id,
                "device_name": ctx.auth.device_name,
            }

    state, result = asyncio.run(_run())
    if isinstance(state, Completed):
        print_output(result, output, title="Pairing")
        return
    if isinstance(state, Error):
        handle_error(state.error or AuthError(state.message))
    raise typer.Exit(1)
