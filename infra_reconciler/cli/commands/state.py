"""CLI — Applied state inspection commands."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from infra_reconciler.cli.runtime import load_settings, open_runtime, print_error
from infra_reconciler.config import Settings
from infra_reconciler.exceptions import ReconcilerError
from infra_reconciler.orchestration.state import AppliedState

app = typer.Typer(help="Inspect the applied state store.")
console = Console()


async def _load(settings: Settings) -> dict[str, AppliedState]:
    async with open_runtime(settings) as runtime:
        return await runtime.store.load()


def _timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@app.command("list")
def list_state(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    state_db: Annotated[Path | None, typer.Option("--state-db")] = None,
) -> None:
    """List every recorded resource."""
    try:
        states = asyncio.run(_load(load_settings(config, state_db)))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(1)

    if not states:
        console.print("State is empty.")
        return

    table = Table(title="Applied state")
    table.add_column("Resource", style="cyan")
    table.add_column("Remote ID")
    table.add_column("Applied (UTC)")
    for state in states.values():
        table.add_row(state.resource_id, state.remote_id, _timestamp(state.applied_at))
    console.print(table)


@app.command("show")
def show_state(
    resource_id: str = typer.Argument(help="Resource ID, e.g. secret/db-password."),
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    state_db: Annotated[Path | None, typer.Option("--state-db")] = None,
) -> None:
    """Show the last applied record of one resource."""
    try:
        states = asyncio.run(_load(load_settings(config, state_db)))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(1)

    state = states.get(resource_id)
    if state is None:
        console.print(f"[red]No applied state for '{resource_id}'[/red]")
        raise typer.Exit(1)
    console.print(Syntax(json.dumps(state.to_dict(), indent=2, default=str), "json"))
