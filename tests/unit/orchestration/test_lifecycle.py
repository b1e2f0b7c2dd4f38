"""Unit tests — ResourceLifecycle transitions."""

import pytest

from infra_reconciler.exceptions import OrchestrationError
from infra_reconciler.graph.models import ResourceStatus as S
from infra_reconciler.orchestration.lifecycle import ResourceLifecycle


@pytest.mark.unit
class TestResourceLifecycle:
    def test_unknown_resource_is_absent(self) -> None:
        assert ResourceLifecycle().status("secret/x") == S.ABSENT

    def test_create_path(self) -> None:
        lc = ResourceLifecycle()
        lc.transition("secret/x", S.PENDING_CREATE)
        lc.transition("secret/x", S.PENDING_CREATE)
        lc.transition("secret/x", S.CREATED)
        assert lc.status("secret/x") == S.CREATED
        assert len(lc.history) == 3

    def test_update_and_delete_paths(self) -> None:
        lc = ResourceLifecycle({"secret/x": S.CREATED})
        lc.transition("secret/x", S.PENDING_UPDATE)
        lc.transition("secret/x", S.CREATED)
        lc.transition("secret/x", S.PENDING_DELETE)
        lc.transition("secret/x", S.ABSENT)
        assert lc.snapshot() == {"secret/x": S.ABSENT}

    def test_failed_delete_falls_back_to_created(self) -> None:
        lc = ResourceLifecycle({"secret/x": S.CREATED})
        lc.transition("secret/x", S.PENDING_DELETE)
        lc.transition("secret/x", S.CREATED)
        assert lc.status("secret/x") == S.CREATED

    @pytest.mark.parametrize(
        ("start", "target"),
        [
            (S.ABSENT, S.CREATED),
            (S.ABSENT, S.PENDING_UPDATE),
            (S.CREATED, S.PENDING_CREATE),
            (S.CREATED, S.ABSENT),
            (S.PENDING_UPDATE, S.ABSENT),
        ],
    )
    def test_illegal_transitions(self, start: S, target: S) -> None:
        lc = ResourceLifecycle({"secret/x": start})
        with pytest.raises(OrchestrationError, match="Illegal transition"):
            lc.transition("secret/x", target)
        assert lc.status("secret/x") == start
