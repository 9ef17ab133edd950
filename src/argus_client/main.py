"""ArgusAI client — entry point.

Pairs this machine with an ArgusAI server and manages its tokens and
server selection.
"""

from __future__ import annotations

import logging

import typer

from argus_client.commands.auth_cmd import app as auth_app
from argus_client.commands.cameras_cmd import app as cameras_app
from argus_client.commands.pair_cmd import app as pair_app
from argus_client.commands.server_cmd import app as server_app

app = typer.Typer(
    name="argus",
    help="Pair with an ArgusAI server, manage tokens, and pick local or remote endpoints.",
    no_args_is_help=True,
)

app.add_typer(pair_app, name="pair")
app.add_typer(auth_app, name="auth")
app.add_typer(server_app, name="server")
app.add_typer(cameras_app, name="cameras")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """ArgusAI client — pairing, tokens and server discovery."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


if __name__ == "__main__":
    app()
