"""Shared pytest fixtures for the infra-reconciler test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import yaml

from infra_reconciler.config import DeploymentConfig, Settings, override_settings
from infra_reconciler.graph.builder import build_resource_graph
from infra_reconciler.graph.dag import ResourceGraph
from infra_reconciler.graph.models import ResourceKind
from infra_reconciler.orchestration.executor import ReconcileExecutor
from infra_reconciler.orchestration.retry import RetryPolicy
from infra_reconciler.orchestration.state import AppliedStateStore
from infra_reconciler.providers.memory import InMemoryProvider

EXPECTED_ORDER = [
    "service-account/app-runner",
    "secret/db-password",
    "secret/encryption-key",
    "database-instance/app-db",
    "role-binding/cloudsql-client",
    "role-binding/secret-accessor",
    "compute-service/app",
]


class ScriptedProvider(InMemoryProvider):
    """InMemoryProvider that fails chosen mutating calls.

    Calls are numbered from 1 across create/update/delete in the order they
    arrive; reads are not counted.
    """

    def __init__(self, path: Path | None = None) -> None:
        super().__init__(path=path)
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[int, Exception] = {}

    def fail_calls(self, *numbers: int, error: Exception) -> None:
        for n in numbers:
            self._failures[n] = error

    def _tick(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        error = self._failures.pop(len(self.calls), None)
        if error is not None:
            raise error

    async def create(self, kind: ResourceKind, attributes: dict[str, Any]) -> str:
        self._tick("create", kind.value)
        return await super().create(kind, attributes)

    async def update(self, remote_id: str, attributes: dict[str, Any]) -> None:
        self._tick("update", remote_id)
        await super().update(remote_id, attributes)

    async def delete(self, remote_id: str) -> None:
        self._tick("delete", remote_id)
        await super().delete(remote_id)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings() -> Any:
    yield
    override_settings(None)
    # CLI runs attach handlers to streams the runner closes afterwards.
    logging.getLogger().handlers = []


@pytest.fixture
def deployment() -> DeploymentConfig:
    return DeploymentConfig(project_id="demo-project", region="us-central1")


@pytest.fixture
def desired_graph(deployment: DeploymentConfig) -> ResourceGraph:
    return build_resource_graph(deployment)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        deployment={"project_id": "demo-project", "region": "us-central1"},
        state={"db_path": str(tmp_path / "state.db")},
        provider={
            "class_path": "infra_reconciler.providers.memory.InMemoryProvider",
            "options": {"path": str(tmp_path / "provider.json")},
        },
        executor={"backoff_base_seconds": 0.0, "backoff_jitter": 0.0},
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A config.yaml pointing state and provider storage into tmp_path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "deployment": {"project_id": "demo-project", "region": "us-central1"},
                "state": {"db_path": str(tmp_path / "state.db")},
                "provider": {
                    "class_path": "infra_reconciler.providers.memory.InMemoryProvider",
                    "options": {"path": str(tmp_path / "provider.json")},
                },
                "executor": {"backoff_base_seconds": 0.0, "backoff_jitter": 0.0},
                "logging": {"level": "error"},
            }
        )
    )
    return path


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def state_store(tmp_path: Path) -> AsyncGenerator[AppliedStateStore, None]:
    store = AppliedStateStore(tmp_path / "state.db")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def executor(
    provider: ScriptedProvider, state_store: AppliedStateStore, fake_sleep: AsyncMock
) -> ReconcileExecutor:
    return ReconcileExecutor(
        provider=provider,
        state_store=state_store,
        retry_policy=RetryPolicy(jitter=0.0),
        run_timeout=60.0,
        sleep=fake_sleep,
    )


@pytest.fixture
def expected_order() -> list[str]:
    return list(EXPECTED_ORDER)
