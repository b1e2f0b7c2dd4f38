"""Orchestration layer — Per-resource lifecycle.

State transitions:
    absent -> pending-create -> created
    created -> pending-update -> created
    created -> pending-delete -> absent

Every change passes through its pending state, including retries, which
re-enter the same pending state.  A failed change falls back to the state
it started from.
"""

from __future__ import annotations

from infra_reconciler.exceptions import OrchestrationError
from infra_reconciler.graph.models import ResourceStatus
from infra_reconciler.logging import get_logger

log = get_logger(__name__)

_S = ResourceStatus

ALLOWED_TRANSITIONS: dict[ResourceStatus, frozenset[ResourceStatus]] = {
    _S.ABSENT: frozenset({_S.PENDING_CREATE}),
    _S.PENDING_CREATE: frozenset({_S.PENDING_CREATE, _S.CREATED, _S.ABSENT}),
    _S.CREATED: frozenset({_S.PENDING_UPDATE, _S.PENDING_DELETE}),
    _S.PENDING_UPDATE: frozenset({_S.PENDING_UPDATE, _S.CREATED}),
    _S.PENDING_DELETE: frozenset({_S.PENDING_DELETE, _S.ABSENT, _S.CREATED}),
}


class ResourceLifecycle:
    """Tracks the status of every resource touched during one run."""

    def __init__(self, initial: dict[str, ResourceStatus] | None = None) -> None:
        self._status: dict[str, ResourceStatus] = dict(initial or {})
        self.history: list[tuple[str, ResourceStatus, ResourceStatus]] = []

    def status(self, resource_id: str) -> ResourceStatus:
        return self._status.get(resource_id, ResourceStatus.ABSENT)

    def transition(self, resource_id: str, target: ResourceStatus) -> None:
        current = self.status(resource_id)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise OrchestrationError(
                f"Illegal transition for '{resource_id}': {current.value} -> {target.value}",
                context={"resource_id": resource_id, "from": current.value, "to": target.value},
            )
        self._status[resource_id] = target
        self.history.append((resource_id, current, target))
        log.debug("resource_transition", resource_id=resource_id, to=target.value)

    def snapshot(self) -> dict[str, ResourceStatus]:
        return dict(self._status)
