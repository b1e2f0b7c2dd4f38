"""Provider layer — In-memory simulated provider.

Keeps resources in a dict, optionally mirrored to a JSON file so that
separate CLI invocations observe the same "remote" world.  Secret values are
generated on create with :func:`secrets.token_urlsafe`, standing in for the
provider's random-secret primitive.
"""

from __future__ import annotations

import copy
import json
import secrets
import uuid
from pathlib import Path
from typing import Any

from infra_reconciler.exceptions import NotFoundError, PermanentProviderError
from infra_reconciler.graph.models import IMMUTABLE_ATTRIBUTES, ResourceKind
from infra_reconciler.logging import get_logger
from infra_reconciler.providers.base import ProviderClient

log = get_logger(__name__)


class InMemoryProvider(ProviderClient):
    """Simulated provider.

    Usage::

        provider = InMemoryProvider()                       # volatile
        provider = InMemoryProvider(path="~/world.json")    # persisted
    """

    name = "memory"

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path else None
        self._resources: dict[str, dict[str, Any]] = {}
        if self._path and self._path.exists():
            try:
                self._resources = json.loads(self._path.read_text())
            except json.JSONDecodeError as exc:
                raise PermanentProviderError(
                    f"Corrupt provider file {self._path}: {exc}"
                ) from exc

    # ------------------------------------------------------------------
    # ProviderClient
    # ------------------------------------------------------------------

    async def create(self, kind: ResourceKind, attributes: dict[str, Any]) -> str:
        if not attributes:
            raise PermanentProviderError(f"Refusing to create {kind.value} with no attributes")
        remote_id = f"{kind.value}/{uuid.uuid4().hex[:12]}"
        stored = copy.deepcopy(attributes)
        if kind == ResourceKind.SECRET and "value" not in stored:
            stored["value"] = secrets.token_urlsafe(int(stored.get("length", 32)))
        self._resources[remote_id] = {"kind": kind.value, "attributes": stored}
        self._save()
        log.debug("provider_created", remote_id=remote_id, kind=kind.value)
        return remote_id

    async def read(self, remote_id: str) -> dict[str, Any]:
        entry = self._get(remote_id)
        return copy.deepcopy(entry["attributes"])

    async def update(self, remote_id: str, attributes: dict[str, Any]) -> None:
        entry = self._get(remote_id)
        kind = ResourceKind(entry["kind"])
        stored = copy.deepcopy(attributes)
        for key in IMMUTABLE_ATTRIBUTES.get(kind, frozenset()):
            if key in entry["attributes"]:
                stored[key] = entry["attributes"][key]
        entry["attributes"] = stored
        self._save()
        log.debug("provider_updated", remote_id=remote_id)

    async def delete(self, remote_id: str) -> None:
        self._get(remote_id)
        del self._resources[remote_id]
        self._save()
        log.debug("provider_deleted", remote_id=remote_id)

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    def remote_ids(self) -> list[str]:
        return list(self._resources)

    def kind_of(self, remote_id: str) -> ResourceKind:
        return ResourceKind(self._get(remote_id)["kind"])

    def _get(self, remote_id: str) -> dict[str, Any]:
        try:
            return self._resources[remote_id]
        except KeyError:
            raise NotFoundError(
                f"Remote resource '{remote_id}' not found", remote_id=remote_id
            ) from None

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._resources, indent=2, sort_keys=True))
