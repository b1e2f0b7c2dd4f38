"""Orchestration layer — Drift detector.

Reads the live attributes of every recorded resource and compares them with
the last applied attributes.  Read-only: the state store is never touched,
so a drift check is safe to run on any schedule.
"""

from __future__ import annotations

from typing import Any, Mapping

from infra_reconciler.exceptions import NotFoundError
from infra_reconciler.graph.models import (
    AttributeDrift,
    DriftReport,
    DriftType,
    comparable_attributes,
)
from infra_reconciler.logging import get_logger
from infra_reconciler.orchestration.state import AppliedState
from infra_reconciler.providers.base import ProviderClient

log = get_logger(__name__)


class DriftDetector:
    """Usage::

        reports = await DriftDetector(provider).detect(await store.load())
    """

    def __init__(self, provider: ProviderClient) -> None:
        self._provider = provider

    async def detect(self, current_state: Mapping[str, AppliedState]) -> list[DriftReport]:
        reports: list[DriftReport] = []
        for resource_id, state in current_state.items():
            try:
                live = await self._provider.read(state.remote_id)
            except NotFoundError:
                reports.append(
                    DriftReport(
                        resource_id=resource_id,
                        remote_id=state.remote_id,
                        drift_type=DriftType.MISSING,
                        message="resource no longer exists remotely",
                    )
                )
                log.warning("drift_missing", resource_id=resource_id)
                continue

            differences = diff_attributes(
                comparable_attributes(state.kind, state.attributes),
                comparable_attributes(state.kind, live),
            )
            if differences:
                reports.append(
                    DriftReport(
                        resource_id=resource_id,
                        remote_id=state.remote_id,
                        drift_type=DriftType.MODIFIED,
                        differences=differences,
                        message=f"{len(differences)} attribute(s) differ",
                    )
                )
                log.warning(
                    "drift_modified",
                    resource_id=resource_id,
                    attributes=[d.attribute for d in differences],
                )

        log.info("drift_checked", resources=len(current_state), drifted=len(reports))
        return reports


def diff_attributes(expected: dict[str, Any], actual: dict[str, Any]) -> list[AttributeDrift]:
    """Whole-value comparison of two attribute maps, sorted by key."""
    return [
        AttributeDrift(attribute=key, expected=expected.get(key), actual=actual.get(key))
        for key in sorted(set(expected) | set(actual))
        if expected.get(key) != actual.get(key)
    ]
