"""Orchestration layer — state store, planner, executor, rollback, drift detection."""

from infra_reconciler.orchestration.drift import DriftDetector
from infra_reconciler.orchestration.executor import (
    ApplyResult,
    OpOutcome,
    OpStatus,
    ReconcileExecutor,
    RunStatus,
)
from infra_reconciler.orchestration.planner import plan, plan_destroy, summarize
from infra_reconciler.orchestration.retry import RetryPolicy
from infra_reconciler.orchestration.rollback import rollback_ops
from infra_reconciler.orchestration.state import AppliedState, AppliedStateStore

__all__ = [
    "AppliedState",
    "AppliedStateStore",
    "ApplyResult",
    "DriftDetector",
    "OpOutcome",
    "OpStatus",
    "ReconcileExecutor",
    "RetryPolicy",
    "RunStatus",
    "plan",
    "plan_destroy",
    "rollback_ops",
    "summarize",
]
