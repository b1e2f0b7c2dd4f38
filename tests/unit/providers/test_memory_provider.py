"""Unit tests — InMemoryProvider and load_provider."""

from __future__ import annotations

from pathlib import Path

import pytest

from infra_reconciler.exceptions import NotFoundError, PermanentProviderError, ValidationError
from infra_reconciler.graph.models import ResourceKind
from infra_reconciler.providers import InMemoryProvider, load_provider


@pytest.mark.asyncio
class TestInMemoryProvider:
    async def test_create_then_read(self) -> None:
        provider = InMemoryProvider()
        remote_id = await provider.create(ResourceKind.SERVICE_ACCOUNT, {"account_id": "x"})
        assert remote_id.startswith("service-account/")
        assert await provider.read(remote_id) == {"account_id": "x"}

    async def test_secret_value_generated(self) -> None:
        provider = InMemoryProvider()
        remote_id = await provider.create(ResourceKind.SECRET, {"secret_id": "s", "length": 16})
        live = await provider.read(remote_id)
        assert isinstance(live["value"], str)
        assert len(live["value"]) > 0

    async def test_update_keeps_secret_value(self) -> None:
        provider = InMemoryProvider()
        remote_id = await provider.create(ResourceKind.SECRET, {"secret_id": "s"})
        original = (await provider.read(remote_id))["value"]
        await provider.update(remote_id, {"secret_id": "s", "replication": "user-managed"})
        live = await provider.read(remote_id)
        assert live["value"] == original
        assert live["replication"] == "user-managed"

    async def test_read_returns_copy(self) -> None:
        provider = InMemoryProvider()
        remote_id = await provider.create(ResourceKind.SERVICE_ACCOUNT, {"env": {"A": "1"}})
        live = await provider.read(remote_id)
        live["env"]["A"] = "changed"
        assert (await provider.read(remote_id))["env"] == {"A": "1"}

    async def test_missing_resource_raises_not_found(self) -> None:
        provider = InMemoryProvider()
        with pytest.raises(NotFoundError):
            await provider.read("secret/nope")
        with pytest.raises(NotFoundError):
            await provider.update("secret/nope", {"a": 1})
        with pytest.raises(NotFoundError):
            await provider.delete("secret/nope")

    async def test_empty_create_rejected(self) -> None:
        with pytest.raises(PermanentProviderError):
            await InMemoryProvider().create(ResourceKind.SECRET, {})

    async def test_delete(self) -> None:
        provider = InMemoryProvider()
        remote_id = await provider.create(ResourceKind.SECRET, {"secret_id": "s"})
        await provider.delete(remote_id)
        assert provider.remote_ids() == []

    async def test_persistence_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "world.json"
        first = InMemoryProvider(path=path)
        remote_id = await first.create(ResourceKind.DATABASE_INSTANCE, {"tier": "db-f1-micro"})

        second = InMemoryProvider(path=path)
        assert await second.read(remote_id) == {"tier": "db-f1-micro"}
        assert second.kind_of(remote_id) == ResourceKind.DATABASE_INSTANCE

    async def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "world.json"
        path.write_text("{not json")
        with pytest.raises(PermanentProviderError, match="Corrupt"):
            InMemoryProvider(path=path)


@pytest.mark.unit
class TestLoadProvider:
    def test_loads_by_class_path(self, tmp_path: Path) -> None:
        provider = load_provider(
            "infra_reconciler.providers.memory.InMemoryProvider",
            {"path": str(tmp_path / "p.json")},
        )
        assert isinstance(provider, InMemoryProvider)

    def test_unqualified_path_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_provider("InMemoryProvider")

    def test_unknown_module_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Cannot load"):
            load_provider("no_such_module.Provider")

    def test_non_provider_class_rejected(self) -> None:
        with pytest.raises(ValidationError, match="not a ProviderClient"):
            load_provider("pathlib.Path")
