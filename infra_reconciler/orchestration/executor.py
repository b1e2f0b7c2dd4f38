"""Orchestration layer — Change executor.

The ReconcileExecutor applies an ordered change list:
  1. Ops run strictly in order, one at a time.
  2. Each op moves its resource into the matching pending state, calls the
     provider, and on success commits the new AppliedState before the next
     op starts.
  3. ``TransientProviderError`` is retried per the RetryPolicy; every other
     provider error fails the op at once.
  4. The first failed op halts the run.  Ops after it are reported as
     not attempted; already committed changes stay committed.
  5. A run-level deadline bounds wall-clock time.  It is checked before each
     op and before each retry sleep, never during a provider call: an op in
     flight always finishes and is committed.  Past the deadline the run
     halts with ``RunTimeoutError``; the next op is left not attempted, or
     an op waiting to retry is failed.

Nothing is rolled back automatically.  Use ``rollback_ops(result)`` to build
the reverse change list and pass it to ``apply`` again.

Re-running plan + apply after a halted run resumes from the first
incomplete op because committed creates are already in the state store.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from infra_reconciler.exceptions import (
    NotFoundError,
    OrchestrationError,
    ProviderError,
    ReconcilerError,
    RunTimeoutError,
)
from infra_reconciler.graph.models import ChangeAction, ChangeOp, ResourceStatus
from infra_reconciler.logging import (
    bind_run_context,
    clear_run_context,
    get_logger,
    resource_context,
)
from infra_reconciler.orchestration.lifecycle import ResourceLifecycle
from infra_reconciler.orchestration.retry import RetryPolicy
from infra_reconciler.orchestration.state import AppliedState, AppliedStateStore, RunRecord
from infra_reconciler.providers.base import ProviderClient

log = get_logger(__name__)

_PENDING = {
    ChangeAction.CREATE: ResourceStatus.PENDING_CREATE,
    ChangeAction.UPDATE: ResourceStatus.PENDING_UPDATE,
    ChangeAction.DELETE: ResourceStatus.PENDING_DELETE,
}


class OpStatus(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    NOT_ATTEMPTED = "not-attempted"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    HALTED = "halted"
    TIMED_OUT = "timed_out"


@dataclass
class OpOutcome:
    op: ChangeOp
    status: OpStatus = OpStatus.NOT_ATTEMPTED
    attempts: int = 0
    remote_id: str | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "op": self.op.model_dump(mode="json"),
            "status": self.status.value,
            "attempts": self.attempts,
            "retries": self.retries,
            "remote_id": self.remote_id,
            "error": self.error,
            "error_type": self.error_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OpOutcome":
        return cls(
            op=ChangeOp.model_validate(data["op"]),
            status=OpStatus(data["status"]),
            attempts=data.get("attempts", 0),
            remote_id=data.get("remote_id"),
            error=data.get("error"),
            error_type=data.get("error_type"),
        )


@dataclass
class ApplyResult:
    """Outcome of one executor run."""

    run_id: str
    status: RunStatus = RunStatus.COMPLETED
    outcomes: list[OpOutcome] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    error: ReconcilerError | None = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def _ops_with(self, status: OpStatus) -> list[ChangeOp]:
        return [o.op for o in self.outcomes if o.status == status]

    @property
    def applied(self) -> list[ChangeOp]:
        return self._ops_with(OpStatus.APPLIED)

    @property
    def failed(self) -> list[ChangeOp]:
        return self._ops_with(OpStatus.FAILED)

    @property
    def not_attempted(self) -> list[ChangeOp]:
        return self._ops_with(OpStatus.NOT_ATTEMPTED)

    def outcome_for(self, resource_id: str) -> OpOutcome:
        for outcome in self.outcomes:
            if outcome.op.resource_id == resource_id:
                return outcome
        raise KeyError(resource_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error.message if self.error else None,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplyResult":
        return cls(
            run_id=data["run_id"],
            status=RunStatus(data["status"]),
            outcomes=[OpOutcome.from_dict(o) for o in data.get("outcomes", [])],
            started_at=data.get("started_at", 0.0),
            finished_at=data.get("finished_at"),
        )


class ReconcileExecutor:
    """Applies change lists against a provider, one op at a time.

    Usage::

        executor = ReconcileExecutor(provider=provider, state_store=store)
        result = await executor.apply(ops)
        if not result.success:
            ...
    """

    def __init__(
        self,
        provider: ProviderClient,
        state_store: AppliedStateStore,
        retry_policy: RetryPolicy | None = None,
        run_timeout: float = 1800.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._store = state_store
        self._retry = retry_policy or RetryPolicy()
        self._run_timeout = run_timeout
        self._sleep = sleep

    async def apply(
        self,
        ops: list[ChangeOp],
        command: str = "apply",
        run_id: str | None = None,
    ) -> ApplyResult:
        """Apply *ops* in order and return the (possibly partial) result."""
        result = ApplyResult(run_id=run_id or uuid.uuid4().hex[:12])
        bind_run_context(run_id=result.run_id)
        try:
            await self._run(result, ops, command)
        finally:
            clear_run_context()
        return result

    async def _run(self, result: ApplyResult, ops: list[ChangeOp], command: str) -> None:
        result.outcomes = [OpOutcome(op=op) for op in ops]

        current = await self._store.load()
        lifecycle = ResourceLifecycle({rid: ResourceStatus.CREATED for rid in current})

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._run_timeout
        log.info("run_started", command=command, op_count=len(ops))

        for outcome in result.outcomes:
            op = outcome.op
            if op.action == ChangeAction.NO_OP:
                outcome.status = OpStatus.UNCHANGED
                continue

            if loop.time() >= deadline:
                # Ops are never started past the deadline; this one stays not-attempted.
                result.status = RunStatus.TIMED_OUT
                result.error = RunTimeoutError(self._run_timeout, resource_id=op.resource_id)
                log.error("run_deadline_exceeded", next_resource_id=op.resource_id)
                break

            try:
                with resource_context(op.resource_id):
                    await self._apply_op(outcome, lifecycle, deadline)
            except RunTimeoutError as exc:
                self._record_failure(outcome, lifecycle, exc)
                result.status = RunStatus.TIMED_OUT
                result.error = exc
                break
            except ReconcilerError as exc:
                if exc.context.get("resource_id") is None:
                    exc.context["resource_id"] = op.resource_id
                if isinstance(exc, ProviderError) and exc.resource_id is None:
                    exc.resource_id = op.resource_id
                self._record_failure(outcome, lifecycle, exc)
                result.status = RunStatus.HALTED
                result.error = exc
                break

        result.finished_at = time.time()
        await self._store.record_run(
            RunRecord(
                run_id=result.run_id,
                command=command,
                status=result.status.value,
                started_at=result.started_at,
                finished_at=result.finished_at,
                data=result.to_dict(),
            )
        )
        log.info(
            "run_finished",
            command=command,
            status=result.status.value,
            applied=len(result.applied),
            failed=len(result.failed),
            not_attempted=len(result.not_attempted),
        )

    # ------------------------------------------------------------------
    # Single op
    # ------------------------------------------------------------------

    async def _apply_op(
        self, outcome: OpOutcome, lifecycle: ResourceLifecycle, deadline: float
    ) -> None:
        op = outcome.op
        loop = asyncio.get_running_loop()
        retries = 0
        while True:
            outcome.attempts += 1
            lifecycle.transition(op.resource_id, _PENDING[op.action])
            try:
                remote_id = await self._call_provider(op)
                break
            except ReconcilerError as exc:
                if not self._retry.should_retry(exc, retries):
                    raise
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise RunTimeoutError(self._run_timeout, resource_id=op.resource_id) from exc
                retries += 1
                delay = min(self._retry.delay_for_retry(retries), remaining)
                log.warning(
                    "op_retry",
                    action=op.action.value,
                    retry=retries,
                    delay=round(delay, 3),
                    error=str(exc),
                )
                await self._sleep(delay)
                if loop.time() >= deadline:
                    raise RunTimeoutError(self._run_timeout, resource_id=op.resource_id) from exc

        await self._commit(op, remote_id)
        lifecycle.transition(
            op.resource_id,
            ResourceStatus.ABSENT if op.action == ChangeAction.DELETE else ResourceStatus.CREATED,
        )
        outcome.status = OpStatus.APPLIED
        outcome.remote_id = remote_id
        log.info(
            "op_applied",
            action=op.action.value,
            remote_id=remote_id,
            attempts=outcome.attempts,
        )

    async def _call_provider(self, op: ChangeOp) -> str:
        if op.action == ChangeAction.CREATE:
            return await self._provider.create(op.kind, dict(op.attributes))

        if op.remote_id is None:
            raise OrchestrationError(
                f"Cannot {op.action.value} '{op.resource_id}' without a remote_id",
                context={"resource_id": op.resource_id, "action": op.action.value},
            )
        if op.action == ChangeAction.UPDATE:
            await self._provider.update(op.remote_id, dict(op.attributes))
        else:
            try:
                await self._provider.delete(op.remote_id)
            except NotFoundError:
                log.info("op_delete_already_absent")
        return op.remote_id

    async def _commit(self, op: ChangeOp, remote_id: str) -> None:
        if op.action == ChangeAction.DELETE:
            await self._store.remove(op.resource_id)
            return
        await self._store.put(
            AppliedState(
                resource_id=op.resource_id,
                kind=op.kind,
                remote_id=remote_id,
                attributes=dict(op.attributes),
                depends_on=list(op.depends_on),
            )
        )

    @staticmethod
    def _record_failure(
        outcome: OpOutcome, lifecycle: ResourceLifecycle, error: ReconcilerError
    ) -> None:
        op = outcome.op
        outcome.status = OpStatus.FAILED
        outcome.error = error.message
        outcome.error_type = type(error).__name__
        pending = lifecycle.status(op.resource_id)
        if pending == ResourceStatus.PENDING_CREATE:
            lifecycle.transition(op.resource_id, ResourceStatus.ABSENT)
        elif pending in (ResourceStatus.PENDING_UPDATE, ResourceStatus.PENDING_DELETE):
            lifecycle.transition(op.resource_id, ResourceStatus.CREATED)
        log.error(
            "op_failed",
            resource_id=op.resource_id,
            action=op.action.value,
            attempts=outcome.attempts,
            error_type=outcome.error_type,
            error=error.message,
        )
