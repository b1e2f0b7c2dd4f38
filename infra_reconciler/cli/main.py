"""Infra Reconciler CLI — Entry point.

Usage:
    infra-reconciler plan [--show-unchanged] [--json]
    infra-reconciler apply
    infra-reconciler destroy
    infra-reconciler drift
    infra-reconciler rollback
    infra-reconciler state list
    infra-reconciler state show <resource_id>
"""

from __future__ import annotations

import typer

from infra_reconciler.cli.commands import reconcile, state

app = typer.Typer(
    name="infra-reconciler",
    help="Infra Reconciler — plan, apply and drift-check the app's cloud resources.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.command("plan")(reconcile.plan_command)
app.command("apply")(reconcile.apply_command)
app.command("destroy")(reconcile.destroy_command)
app.command("drift")(reconcile.drift_command)
app.command("rollback")(reconcile.rollback_command)
app.add_typer(state.app, name="state")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
