r"""
Goal: Friendly, typed CLI for the Spotify bridge.

- Export `app` (tests import this).
- Show "Spotify Bridge CLI" in --help output (tests assert this).
- `run` drives one command through the bridge until its result drains, then prints it as JSON.
- Client ids come from SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET, else from `configure`.
"""

from __future__ import annotations

import json
import time
from typing import Tuple

import typer
from loguru import logger

from spotify_bridge.adapters.host import BufferedSink, EventNotifier
from spotify_bridge.auth.storage import KeyringStorage, load_client_ids, save_client_ids
from spotify_bridge.models.commands import COMMANDS, resolve_command
from spotify_bridge.models.schemas import DrainedResult
from spotify_bridge.services.logs import configure_logging
from spotify_bridge.services.spotify_service import SpotifyBridge
from spotify_bridge.settings import SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET

app = typer.Typer(
    help="Spotify Bridge CLI",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _client_ids(storage: KeyringStorage) -> Tuple[str, str]:
    """
    Prefer env vars if provided (useful for CI/dev), else read from keyring.
    """
    stored_id, stored_secret = load_client_ids(storage)
    return SPOTIFY_CLIENT_ID or stored_id, SPOTIFY_CLIENT_SECRET or stored_secret


@app.callback(help="Spotify Bridge CLI")
def _root_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    configure_logging("DEBUG" if verbose else None)


@app.command("commands")
def commands() -> None:
    """List the available player commands."""
    for cmd, info in COMMANDS.items():
        required = info.required or "-"
        typer.echo(f"{cmd.value:<18} {info.verb.value:<5} /me/player{info.path:<19} required: {required}")


@app.command("configure")
def configure(
    client_id: str = typer.Option(..., help="Spotify application client id"),
    client_secret: str = typer.Option("", help="Client secret (enables silent refresh)"),
) -> None:
    """Save client ids in the OS keyring."""
    try:
        save_client_ids(KeyringStorage(), client_id, client_secret)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(2)
    typer.echo(json.dumps({"ok": True, "client_secret_set": bool(client_secret)}, indent=2))


@app.command("run")
def run(
    command: str = typer.Argument(..., help="Command name, see `commands`"),
    args: str = typer.Option("", "--args", "-a", help='JSON object, e.g. \'{"volume_percent": 50}\''),
    timeout: float = typer.Option(60.0, help="Seconds to wait for authorization and the result"),
) -> None:
    """Execute COMMAND and print the drained result."""
    try:
        cmd = resolve_command(command)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(2)

    storage = KeyringStorage()
    client_id, client_secret = _client_ids(storage)
    if not client_id:
        typer.echo("No client id configured; run `configure` or set SPOTIFY_CLIENT_ID.", err=True)
        raise typer.Exit(2)

    notifier = EventNotifier()
    source = COMMANDS[cmd].source
    deadline = time.monotonic() + timeout

    with SpotifyBridge(storage, notifier, client_id, client_secret) as bridge:
        while True:
            sink = BufferedSink()
            ok = bridge.execute(cmd, sink, args)
            if sink.touched:
                result = DrainedResult(command=cmd.value, data=sink.json(), errors=sink.errors)
                typer.echo(result.model_dump_json(indent=2))
                raise typer.Exit(1 if (result.errors or not ok) else 0)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if not ok:
                logger.debug("Waiting for authorization")
            # wakes early when the request completes
            notifier.wait(source, timeout=min(remaining, 1.0))

    typer.echo(json.dumps({"ok": False, "command": cmd.value, "error": "timeout"}, indent=2))
    raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
