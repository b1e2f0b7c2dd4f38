"""Infra Reconciler — Desired-state reconciler for a serverless app stack.

Provisions a fixed set of cloud resources (service account, two secrets,
database instance, two role bindings, compute service) with dependency
ordering, idempotent apply and drift detection.

Architecture layers (bottom to top):
    1. Graph         — resource models, dependency DAG, desired-state builder
    2. Providers     — async ProviderClient interface, simulated backend
    3. Orchestration — state store, planner, executor, rollback, drift detector
    4. CLI           — plan / apply / destroy / drift / rollback / state
"""

__version__ = "0.1.0"
__author__ = "Infra Reconciler Contributors"
__license__ = "Apache-2.0"

from infra_reconciler.graph.models import ChangeOp, Resource

__all__ = [
    "__version__",
    "ChangeOp",
    "Resource",
]
