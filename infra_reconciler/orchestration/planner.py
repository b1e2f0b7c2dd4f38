"""Orchestration layer — Planner.

Diffs the desired graph against the applied state and produces an ordered
change list:

  1. For each desired resource, in topological order:
       absent from state       -> create
       attributes differ       -> update
       attributes equal        -> no-op (omitted unless include_noop=True)
  2. For each recorded resource missing from the desired graph:
       -> delete, in reverse dependency order, after all creates/updates

Diffs are whole-value, attribute by attribute.  Immutable attributes (secret
values) are left out of the comparison so an existing secret is never
rotated by a plan.
"""

from __future__ import annotations

from collections import Counter
from typing import Mapping

from infra_reconciler.graph.dag import ResourceGraph, topological_ids
from infra_reconciler.graph.models import ChangeAction, ChangeOp, comparable_attributes
from infra_reconciler.logging import get_logger
from infra_reconciler.orchestration.state import AppliedState

log = get_logger(__name__)


def plan(
    desired: ResourceGraph,
    current: Mapping[str, AppliedState],
    include_noop: bool = False,
) -> list[ChangeOp]:
    """Return the ordered change list that moves *current* to *desired*."""
    ops: list[ChangeOp] = []

    for resource in desired.topological_order():
        state = current.get(resource.id)
        if state is None:
            ops.append(
                ChangeOp(
                    resource_id=resource.id,
                    action=ChangeAction.CREATE,
                    reason="not present in applied state",
                    kind=resource.kind,
                    attributes=resource.comparable_attributes(),
                    depends_on=list(resource.depends_on),
                )
            )
            continue

        wanted = resource.comparable_attributes()
        applied = comparable_attributes(state.kind, state.attributes)
        op = ChangeOp(
            resource_id=resource.id,
            action=ChangeAction.NO_OP,
            reason="up to date",
            kind=resource.kind,
            attributes=wanted,
            previous_attributes=applied,
            remote_id=state.remote_id,
            depends_on=list(resource.depends_on),
        )
        if wanted != applied:
            op.action = ChangeAction.UPDATE
            op.reason = f"attributes changed: {', '.join(op.changed_keys())}"
            ops.append(op)
        elif include_noop:
            ops.append(op)

    orphans = {rid: state for rid, state in current.items() if rid not in desired}
    ops.extend(_delete_ops(orphans, reason="not present in desired graph"))

    log.debug("plan_computed", **summarize(ops))
    return ops


def plan_destroy(current: Mapping[str, AppliedState]) -> list[ChangeOp]:
    """Return delete ops for every recorded resource, dependents first."""
    return _delete_ops(current, reason="destroy requested")


def _delete_ops(states: Mapping[str, AppliedState], reason: str) -> list[ChangeOp]:
    order = topological_ids({rid: s.depends_on for rid, s in states.items()})
    ops = []
    for rid in reversed(order):
        state = states[rid]
        ops.append(
            ChangeOp(
                resource_id=rid,
                action=ChangeAction.DELETE,
                reason=reason,
                kind=state.kind,
                previous_attributes=comparable_attributes(state.kind, state.attributes),
                remote_id=state.remote_id,
                depends_on=list(state.depends_on),
            )
        )
    return ops


def summarize(ops: list[ChangeOp]) -> dict[str, int]:
    """Count ops per action, always including every action key."""
    counts = Counter(op.action.value for op in ops)
    return {action.value: counts.get(action.value, 0) for action in ChangeAction}


def has_changes(ops: list[ChangeOp]) -> bool:
    return any(op.action != ChangeAction.NO_OP for op in ops)
