"""Provider layer — ProviderClient interface.

Every provider backend subclasses ``ProviderClient`` and implements the four
resource calls.  The reconciler treats each call as atomic: it either fully
succeeds or raises.

Error contract:
  - ``TransientProviderError``  retryable (rate limit, timeout, unavailable)
  - ``PermanentProviderError``  not retryable (validation, permission, conflict)
  - ``NotFoundError``           the remote resource does not exist
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from infra_reconciler.graph.models import ResourceKind


class ProviderClient(ABC):
    """Thin async interface to a cloud provider's resource API."""

    name: str = "provider"

    @abstractmethod
    async def create(self, kind: ResourceKind, attributes: dict[str, Any]) -> str:
        """Create a resource and return its remote identifier."""

    @abstractmethod
    async def read(self, remote_id: str) -> dict[str, Any]:
        """Return the live attributes of *remote_id*.

        Raises:
            NotFoundError: The resource does not exist.
        """

    @abstractmethod
    async def update(self, remote_id: str, attributes: dict[str, Any]) -> None:
        """Replace the attributes of *remote_id*."""

    @abstractmethod
    async def delete(self, remote_id: str) -> None:
        """Delete *remote_id*."""

    async def close(self) -> None:
        """Release any connection held by the client."""
