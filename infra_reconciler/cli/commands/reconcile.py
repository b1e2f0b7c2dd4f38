"""CLI — Reconciliation commands: plan, apply, destroy, drift, rollback.

Exit codes:
    plan      0 ok                 1 error
    apply     0 ok                 1 halted / error
    destroy   0 ok                 1 halted / error
    drift     0 no drift           2 drift detected   1 error
    rollback  0 ok / nothing to do 1 halted / error
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from infra_reconciler.cli.runtime import load_settings, open_runtime, print_error
from infra_reconciler.config import Settings
from infra_reconciler.exceptions import ReconcilerError
from infra_reconciler.graph.builder import build_resource_graph
from infra_reconciler.graph.models import ChangeAction, ChangeOp, DriftReport
from infra_reconciler.orchestration.drift import DriftDetector
from infra_reconciler.orchestration.executor import ApplyResult, OpStatus
from infra_reconciler.orchestration.planner import has_changes, plan, plan_destroy, summarize
from infra_reconciler.orchestration.rollback import rollback_ops

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DRIFT = 2

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
]
StateDbOption = Annotated[
    Path | None, typer.Option("--state-db", help="Override the state database path.")
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print machine-readable JSON.")]

_ACTION_STYLE = {
    ChangeAction.CREATE: "green",
    ChangeAction.UPDATE: "yellow",
    ChangeAction.DELETE: "red",
    ChangeAction.NO_OP: "dim",
}

_OUTCOME_STYLE = {
    OpStatus.APPLIED: "green",
    OpStatus.UNCHANGED: "dim",
    OpStatus.FAILED: "red",
    OpStatus.NOT_ATTEMPTED: "yellow",
}


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_ops(ops: list[ChangeOp], title: str) -> None:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Action")
    table.add_column("Resource", style="cyan")
    table.add_column("Reason")
    for i, op in enumerate(ops, start=1):
        style = _ACTION_STYLE[op.action]
        table.add_row(str(i), f"[{style}]{op.action.value}[/{style}]", op.resource_id, op.reason)
    console.print(table)


def _summary_line(ops: list[ChangeOp]) -> str:
    counts = summarize(ops)
    return (
        f"Plan: {counts['create']} to create, {counts['update']} to update, "
        f"{counts['delete']} to delete."
    )


def _render_result(result: ApplyResult) -> None:
    table = Table(title=f"Run {result.run_id}")
    table.add_column("Action")
    table.add_column("Resource", style="cyan")
    table.add_column("Outcome")
    table.add_column("Retries", justify="right")
    table.add_column("Error")
    for outcome in result.outcomes:
        style = _OUTCOME_STYLE[outcome.status]
        table.add_row(
            outcome.op.action.value,
            outcome.op.resource_id,
            f"[{style}]{outcome.status.value}[/{style}]",
            str(outcome.retries),
            outcome.error or "",
        )
    console.print(table)
    counts = (len(result.applied), len(result.failed), len(result.not_attempted))
    if result.success:
        console.print(f"[green]Run {result.status.value}:[/green] {counts[0]} applied.")
    else:
        console.print(
            f"[red]Run {result.status.value}:[/red] {counts[0]} applied, "
            f"{counts[1]} failed, {counts[2]} not attempted."
        )
        console.print("Re-run plan and apply to resume, or rollback to undo applied changes.")


def _emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _finish(result: ApplyResult, json_output: bool) -> None:
    if json_output:
        _emit_json(result.to_dict())
    else:
        _render_result(result)
    if not result.success:
        raise typer.Exit(EXIT_FAILED)


# ---------------------------------------------------------------------------
# Async bodies
# ---------------------------------------------------------------------------


async def _plan(settings: Settings, include_noop: bool = False) -> list[ChangeOp]:
    desired = build_resource_graph(settings.deployment)
    async with open_runtime(settings) as runtime:
        current = await runtime.store.load()
    return plan(desired, current, include_noop=include_noop)


async def _apply(settings: Settings) -> ApplyResult | None:
    desired = build_resource_graph(settings.deployment)
    async with open_runtime(settings) as runtime:
        ops = plan(desired, await runtime.store.load())
        if not has_changes(ops):
            return None
        return await runtime.executor().apply(ops, command="apply")


async def _destroy(settings: Settings) -> ApplyResult | None:
    async with open_runtime(settings) as runtime:
        ops = plan_destroy(await runtime.store.load())
        if not ops:
            return None
        return await runtime.executor().apply(ops, command="destroy")


async def _drift(settings: Settings) -> list[DriftReport]:
    async with open_runtime(settings) as runtime:
        current = await runtime.store.load()
        return await DriftDetector(runtime.provider).detect(current)


async def _rollback(settings: Settings) -> ApplyResult | str:
    async with open_runtime(settings) as runtime:
        last = await runtime.store.last_run(("apply", "destroy", "rollback"))
        if last is None:
            return "No run recorded; nothing to roll back."
        if last.command == "rollback":
            if last.status != "completed":
                raise ReconcilerError(
                    f"Previous rollback {last.run_id} did not complete; "
                    "run plan and apply to reconcile",
                    context={"run_id": last.run_id, "status": last.status},
                )
            return f"Run already rolled back by {last.run_id}."
        ops = rollback_ops(ApplyResult.from_dict(last.data))
        if not ops:
            return f"Run {last.run_id} applied nothing; nothing to roll back."
        return await runtime.executor().apply(ops, command="rollback")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def plan_command(
    config: ConfigOption = None,
    state_db: StateDbOption = None,
    show_unchanged: bool = typer.Option(
        False, "--show-unchanged", help="Also list resources that are up to date."
    ),
    json_output: JsonOption = False,
) -> None:
    """Show the changes apply would make."""
    try:
        settings = load_settings(config, state_db)
        ops = asyncio.run(_plan(settings, include_noop=show_unchanged))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(EXIT_FAILED)

    if json_output:
        _emit_json({"ops": [op.model_dump(mode="json") for op in ops], "summary": summarize(ops)})
        return
    if not has_changes(ops):
        console.print("[green]No changes.[/green] Infrastructure matches the configuration.")
        if show_unchanged and ops:
            _render_ops(ops, "Resources")
        return
    _render_ops(ops, "Planned changes")
    console.print(_summary_line(ops))


def apply_command(
    config: ConfigOption = None,
    state_db: StateDbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Apply the planned changes in dependency order."""
    try:
        settings = load_settings(config, state_db)
        result = asyncio.run(_apply(settings))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(EXIT_FAILED)

    if result is None:
        if json_output:
            _emit_json({"status": "no-changes", "outcomes": []})
        else:
            console.print("[green]No changes.[/green] Nothing to apply.")
        return
    _finish(result, json_output)


def destroy_command(
    config: ConfigOption = None,
    state_db: StateDbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Delete every recorded resource, dependents first."""
    try:
        settings = load_settings(config, state_db)
        result = asyncio.run(_destroy(settings))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(EXIT_FAILED)

    if result is None:
        if json_output:
            _emit_json({"status": "no-changes", "outcomes": []})
        else:
            console.print("Nothing to destroy.")
        return
    _finish(result, json_output)


def drift_command(
    config: ConfigOption = None,
    state_db: StateDbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Compare live resources with the last applied state."""
    try:
        settings = load_settings(config, state_db)
        reports = asyncio.run(_drift(settings))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(EXIT_FAILED)

    if json_output:
        _emit_json({"drift": [r.model_dump(mode="json") for r in reports]})
    elif not reports:
        console.print("[green]No drift detected.[/green]")
    else:
        table = Table(title="Drift")
        table.add_column("Resource", style="cyan")
        table.add_column("Type")
        table.add_column("Attribute")
        table.add_column("Expected")
        table.add_column("Actual")
        for report in reports:
            if not report.differences:
                table.add_row(report.resource_id, report.drift_type.value, "", "", "")
            for diff in report.differences:
                table.add_row(
                    report.resource_id,
                    report.drift_type.value,
                    diff.attribute,
                    json.dumps(diff.expected, default=str),
                    json.dumps(diff.actual, default=str),
                )
        console.print(table)
        console.print(f"[yellow]Drift detected on {len(reports)} resource(s).[/yellow]")
    if reports:
        raise typer.Exit(EXIT_DRIFT)


def rollback_command(
    config: ConfigOption = None,
    state_db: StateDbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Reverse the changes applied by the most recent apply or destroy run."""
    try:
        settings = load_settings(config, state_db)
        outcome = asyncio.run(_rollback(settings))
    except ReconcilerError as exc:
        print_error(console, exc)
        raise typer.Exit(EXIT_FAILED)

    if isinstance(outcome, str):
        if json_output:
            _emit_json({"status": "no-changes", "message": outcome, "outcomes": []})
        else:
            console.print(outcome)
        return
    _finish(outcome, json_output)
