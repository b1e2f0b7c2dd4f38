"""Orchestration layer — Rollback op builder.

The executor never undoes applied changes on its own.  A rollback is an
explicit second run whose change list is the inverse of the applied ops,
in reverse order:

    create  -> delete the created remote resource
    update  -> update back to the previous attributes
    delete  -> create again from the previous attributes

Re-created secrets receive a fresh value from the provider; the old value is
not recoverable.
"""

from __future__ import annotations

from infra_reconciler.graph.models import ChangeAction, ChangeOp
from infra_reconciler.logging import get_logger
from infra_reconciler.orchestration.executor import ApplyResult, OpOutcome, OpStatus

log = get_logger(__name__)


def rollback_ops(result: ApplyResult) -> list[ChangeOp]:
    """Return the change list that reverses every applied op of *result*."""
    applied = [o for o in result.outcomes if o.status == OpStatus.APPLIED]
    ops = [_invert(outcome) for outcome in reversed(applied)]
    log.debug("rollback_planned", run_id=result.run_id, op_count=len(ops))
    return ops


def _invert(outcome: OpOutcome) -> ChangeOp:
    op = outcome.op
    reason = f"rollback of {op.action.value} from run"
    if op.action == ChangeAction.CREATE:
        return ChangeOp(
            resource_id=op.resource_id,
            action=ChangeAction.DELETE,
            reason=reason,
            kind=op.kind,
            previous_attributes=dict(op.attributes),
            remote_id=outcome.remote_id,
            depends_on=list(op.depends_on),
        )
    if op.action == ChangeAction.UPDATE:
        return ChangeOp(
            resource_id=op.resource_id,
            action=ChangeAction.UPDATE,
            reason=reason,
            kind=op.kind,
            attributes=dict(op.previous_attributes or {}),
            previous_attributes=dict(op.attributes),
            remote_id=outcome.remote_id or op.remote_id,
            depends_on=list(op.depends_on),
        )
    if op.action == ChangeAction.DELETE:
        return ChangeOp(
            resource_id=op.resource_id,
            action=ChangeAction.CREATE,
            reason=reason,
            kind=op.kind,
            attributes=dict(op.previous_attributes or {}),
            depends_on=list(op.depends_on),
        )
    raise ValueError(f"Cannot invert a {op.action.value} op")
