"""Resource graph — Canonical data models.

Data shapes shared by the graph, planner, executor and drift detector.
Do not add business logic here — only data shapes and their invariants.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{0,62}$")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ResourceKind(str, Enum):
    COMPUTE_SERVICE = "compute-service"
    DATABASE_INSTANCE = "database-instance"
    SECRET = "secret"
    SERVICE_ACCOUNT = "service-account"
    ROLE_BINDING = "role-binding"


class ChangeAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_OP = "no-op"


class ResourceStatus(str, Enum):
    """Lifecycle status of a single resource during reconciliation."""

    ABSENT = "absent"
    PENDING_CREATE = "pending-create"
    CREATED = "created"
    PENDING_UPDATE = "pending-update"
    PENDING_DELETE = "pending-delete"


class DriftType(str, Enum):
    MODIFIED = "modified"
    MISSING = "missing"


# Attributes that are generated once by the provider and never diffed,
# compared for drift, or persisted.
IMMUTABLE_ATTRIBUTES: dict[ResourceKind, frozenset[str]] = {
    ResourceKind.SECRET: frozenset({"value"}),
}


def comparable_attributes(kind: ResourceKind, attributes: dict[str, Any]) -> dict[str, Any]:
    """Return *attributes* without the immutable keys for *kind*."""
    hidden = IMMUTABLE_ATTRIBUTES.get(kind, frozenset())
    return {k: v for k, v in attributes.items() if k not in hidden}


def resource_id(kind: ResourceKind, name: str) -> str:
    return f"{kind.value}/{name}"


# ---------------------------------------------------------------------------
# Core models
# ---------------------------------------------------------------------------


class Resource(BaseModel):
    """A single node of the desired resource graph."""

    kind: ResourceKind
    name: str = Field(description="Logical name, unique per kind.")
    attributes: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(
        default_factory=list,
        description="Resource IDs that must exist before this resource is applied.",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(f"Resource name '{v}' must match [a-z][a-z0-9-]*.")
        return v

    @model_validator(mode="after")
    def validate_no_self_dependency(self) -> "Resource":
        if self.id in self.depends_on:
            raise ValueError(f"Resource '{self.id}' cannot depend on itself.")
        return self

    @property
    def id(self) -> str:
        return resource_id(self.kind, self.name)

    def comparable_attributes(self) -> dict[str, Any]:
        return comparable_attributes(self.kind, self.attributes)


class ChangeOp(BaseModel):
    """One planned change against one resource."""

    resource_id: str
    action: ChangeAction
    reason: str
    kind: ResourceKind
    attributes: dict[str, Any] = Field(
        default_factory=dict, description="Desired attributes (create/update)."
    )
    previous_attributes: dict[str, Any] | None = Field(
        default=None, description="Last applied attributes (update/delete)."
    )
    remote_id: str | None = None
    depends_on: list[str] = Field(default_factory=list)

    def changed_keys(self) -> list[str]:
        """Attribute keys whose value differs between previous and desired."""
        if self.previous_attributes is None:
            return sorted(self.attributes)
        keys = set(self.attributes) | set(self.previous_attributes)
        return sorted(
            k for k in keys if self.attributes.get(k) != self.previous_attributes.get(k)
        )


class AttributeDrift(BaseModel):
    attribute: str
    expected: Any = None
    actual: Any = None


class DriftReport(BaseModel):
    resource_id: str
    remote_id: str
    drift_type: DriftType
    differences: list[AttributeDrift] = Field(default_factory=list)
    message: str = ""
