"""Provider layer — ProviderClient interface, simulated backend, loader."""

from __future__ import annotations

import importlib
from typing import Any

from infra_reconciler.exceptions import ValidationError
from infra_reconciler.providers.base import ProviderClient
from infra_reconciler.providers.memory import InMemoryProvider


def load_provider(class_path: str, options: dict[str, Any] | None = None) -> ProviderClient:
    """Instantiate the ProviderClient named by a fully-qualified *class_path*.

    Raises:
        ValidationError: The class cannot be imported or is not a ProviderClient.
    """
    module_path, _, class_name = class_path.rpartition(".")
    if not module_path:
        raise ValidationError(f"Provider class path '{class_path}' is not fully qualified")
    try:
        module = importlib.import_module(module_path)
        provider_cls = getattr(module, class_name)
    except (ImportError, AttributeError) as exc:
        raise ValidationError(f"Cannot load provider '{class_path}': {exc}") from exc
    if not (isinstance(provider_cls, type) and issubclass(provider_cls, ProviderClient)):
        raise ValidationError(f"'{class_path}' is not a ProviderClient subclass")
    return provider_cls(**(options or {}))


__all__ = ["ProviderClient", "InMemoryProvider", "load_provider"]
