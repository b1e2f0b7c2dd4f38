"""Infra Reconciler — Exception hierarchy.

All exceptions raised by the reconciler inherit from ReconcilerError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    ReconcilerError
    ├── ValidationError
    ├── ProviderError
    │   ├── TransientProviderError
    │   └── PermanentProviderError
    │       └── NotFoundError
    ├── OrchestrationError
    │   ├── CycleError
    │   └── RunTimeoutError
    └── StateStoreError
"""

from __future__ import annotations

from typing import Any


class ReconcilerError(Exception):
    """Base exception for all reconciler errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ValidationError(ReconcilerError):
    """The deployment configuration is invalid.  Raised before any provider call."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, context={"validation_errors": errors or []})
        self.errors = errors or []


# ---------------------------------------------------------------------------
# Provider layer
# ---------------------------------------------------------------------------


class ProviderError(ReconcilerError):
    """Base for errors reported by a provider client."""

    def __init__(
        self,
        message: str,
        resource_id: str | None = None,
        remote_id: str | None = None,
    ) -> None:
        super().__init__(
            message, context={"resource_id": resource_id, "remote_id": remote_id}
        )
        self.resource_id = resource_id
        self.remote_id = remote_id


class TransientProviderError(ProviderError):
    """Retryable provider failure (rate limit, timeout, unavailable)."""


class PermanentProviderError(ProviderError):
    """Non-retryable provider failure (validation, permission denied, conflict)."""


class NotFoundError(PermanentProviderError):
    """The remote resource does not exist."""


# ---------------------------------------------------------------------------
# Orchestration layer
# ---------------------------------------------------------------------------


class OrchestrationError(ReconcilerError):
    """Base for all planning and execution errors."""


class CycleError(OrchestrationError):
    """The resource dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            context={"cycle": cycle},
        )
        self.cycle = cycle


class RunTimeoutError(OrchestrationError):
    """The apply run exceeded its wall-clock budget."""

    def __init__(self, timeout: float, resource_id: str | None = None) -> None:
        super().__init__(
            f"Run exceeded timeout of {timeout}s"
            + (f" at '{resource_id}'" if resource_id else ""),
            context={"timeout": timeout, "resource_id": resource_id},
        )
        self.timeout = timeout
        self.resource_id = resource_id


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class StateStoreError(ReconcilerError):
    """SQLite state store operation failed."""
