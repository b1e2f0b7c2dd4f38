"""Unit tests — DriftDetector."""

from __future__ import annotations

import pytest

from infra_reconciler.graph.dag import ResourceGraph
from infra_reconciler.graph.models import DriftType
from infra_reconciler.orchestration.drift import DriftDetector, diff_attributes
from infra_reconciler.orchestration.executor import ReconcileExecutor
from infra_reconciler.orchestration.planner import plan
from infra_reconciler.orchestration.state import AppliedStateStore


@pytest.mark.unit
def test_diff_attributes_sorted_and_whole_value() -> None:
    diffs = diff_attributes(
        {"b": [1, 2], "a": 1, "same": "x"},
        {"b": [1, 3], "a": 2, "same": "x", "extra": True},
    )
    assert [d.attribute for d in diffs] == ["a", "b", "extra"]
    assert diffs[1].expected == [1, 2]
    assert diffs[1].actual == [1, 3]
    assert diffs[2].expected is None


@pytest.mark.asyncio
class TestDriftDetector:
    async def test_no_drift_after_apply(
        self,
        executor: ReconcileExecutor,
        provider,
        state_store: AppliedStateStore,
        desired_graph: ResourceGraph,
    ) -> None:
        await executor.apply(plan(desired_graph, {}))
        reports = await DriftDetector(provider).detect(await state_store.load())
        assert reports == []

    async def test_out_of_band_change_reported(
        self,
        executor: ReconcileExecutor,
        provider,
        state_store: AppliedStateStore,
        desired_graph: ResourceGraph,
    ) -> None:
        await executor.apply(plan(desired_graph, {}))
        state = await state_store.load()
        db = state["database-instance/app-db"]
        live = await provider.read(db.remote_id)
        await provider.update(db.remote_id, {**live, "tier": "db-custom-2-4096"})

        reports = await DriftDetector(provider).detect(state)

        (report,) = reports
        assert report.resource_id == "database-instance/app-db"
        assert report.drift_type == DriftType.MODIFIED
        (difference,) = report.differences
        assert difference.attribute == "tier"
        assert difference.expected == "db-f1-micro"
        assert difference.actual == "db-custom-2-4096"

    async def test_deleted_resource_reported_missing(
        self,
        executor: ReconcileExecutor,
        provider,
        state_store: AppliedStateStore,
        desired_graph: ResourceGraph,
    ) -> None:
        await executor.apply(plan(desired_graph, {}))
        state = await state_store.load()
        await provider.delete(state["compute-service/app"].remote_id)

        reports = await DriftDetector(provider).detect(state)
        assert [(r.resource_id, r.drift_type) for r in reports] == [
            ("compute-service/app", DriftType.MISSING)
        ]

    async def test_detection_is_read_only(
        self,
        executor: ReconcileExecutor,
        provider,
        state_store: AppliedStateStore,
        desired_graph: ResourceGraph,
    ) -> None:
        await executor.apply(plan(desired_graph, {}))
        state = await state_store.load()
        await provider.delete(state["secret/encryption-key"].remote_id)
        provider.calls.clear()

        await DriftDetector(provider).detect(state)

        assert provider.calls == []
        assert list(await state_store.load()) == list(state)
