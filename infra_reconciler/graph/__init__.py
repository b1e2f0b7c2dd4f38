"""Resource graph layer — models, dependency DAG, desired-state builder."""

from infra_reconciler.graph.builder import build_resource_graph
from infra_reconciler.graph.dag import ResourceGraph
from infra_reconciler.graph.models import (
    ChangeAction,
    ChangeOp,
    DriftReport,
    Resource,
    ResourceKind,
    ResourceStatus,
)

__all__ = [
    "build_resource_graph",
    "ResourceGraph",
    "ChangeAction",
    "ChangeOp",
    "DriftReport",
    "Resource",
    "ResourceKind",
    "ResourceStatus",
]
