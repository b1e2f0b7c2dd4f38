"""Integration tests — full reconcile lifecycle through the runtime wiring.

Uses a file-backed InMemoryProvider and a real SQLite state store, opening a
fresh runtime for every step the way separate CLI invocations would.
"""

from __future__ import annotations

import pytest

from infra_reconciler.cli.runtime import open_runtime
from infra_reconciler.config import Settings
from infra_reconciler.exceptions import TransientProviderError
from infra_reconciler.graph.builder import COMPUTE_SERVICE_ID, build_resource_graph
from infra_reconciler.graph.models import ChangeAction, DriftType, ResourceKind
from infra_reconciler.orchestration.drift import DriftDetector
from infra_reconciler.orchestration.executor import RunStatus
from infra_reconciler.orchestration.planner import plan, plan_destroy
from infra_reconciler.providers.memory import InMemoryProvider


async def _plan(settings: Settings):
    async with open_runtime(settings) as runtime:
        return plan(build_resource_graph(settings.deployment), await runtime.store.load())


async def _apply(settings: Settings):
    async with open_runtime(settings) as runtime:
        ops = plan(build_resource_graph(settings.deployment), await runtime.store.load())
        return await runtime.executor().apply(ops)


async def _drift(settings: Settings):
    async with open_runtime(settings) as runtime:
        return await DriftDetector(runtime.provider).detect(await runtime.store.load())


@pytest.mark.integration
@pytest.mark.asyncio
class TestReconcileFlow:
    async def test_full_lifecycle(self, test_settings: Settings, expected_order: list[str]) -> None:
        first = await _apply(test_settings)
        assert first.status == RunStatus.COMPLETED
        assert [op.resource_id for op in first.applied] == expected_order
        assert await _plan(test_settings) == []
        assert await _drift(test_settings) == []

        toggled = test_settings.model_copy(
            update={
                "deployment": test_settings.deployment.model_copy(
                    update={"use_custom_image": True}
                )
            }
        )
        ops = await _plan(toggled)
        assert [(op.action, op.resource_id) for op in ops] == [
            (ChangeAction.UPDATE, COMPUTE_SERVICE_ID)
        ]
        second = await _apply(toggled)
        assert len(second.applied) == 1
        assert await _drift(toggled) == []

        async with open_runtime(toggled) as runtime:
            destroy = await runtime.executor().apply(
                plan_destroy(await runtime.store.load()), command="destroy"
            )
            assert destroy.success
            assert await runtime.store.load() == {}
            assert runtime.provider.remote_ids() == []

    async def test_out_of_band_delete_then_reapply(self, test_settings: Settings) -> None:
        await _apply(test_settings)
        async with open_runtime(test_settings) as runtime:
            state = await runtime.store.load()
            await runtime.provider.delete(state["secret/encryption-key"].remote_id)

        (report,) = await _drift(test_settings)
        assert report.drift_type == DriftType.MISSING
        # Drift does not feed the planner; the store still records the secret.
        assert await _plan(test_settings) == []

    async def test_transient_errors_recovered_end_to_end(
        self, test_settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        original = InMemoryProvider.create
        failures = {"left": 2}

        async def flaky_create(self, kind: ResourceKind, attributes: dict) -> str:
            if kind == ResourceKind.COMPUTE_SERVICE and failures["left"]:
                failures["left"] -= 1
                raise TransientProviderError("503 from control plane")
            return await original(self, kind, attributes)

        monkeypatch.setattr(InMemoryProvider, "create", flaky_create)

        result = await _apply(test_settings)

        assert result.success
        assert result.outcome_for(COMPUTE_SERVICE_ID).retries == 2
