"""Resource graph — Dependency DAG.

Builds a NetworkX DiGraph over resources and answers ordering queries for
the planner.  Edges point from a dependency to its dependent.
"""

from __future__ import annotations

from typing import Iterable, Mapping

import networkx as nx

from infra_reconciler.exceptions import CycleError, ValidationError
from infra_reconciler.graph.models import Resource


class ResourceGraph:
    """An acyclic graph of :class:`Resource` nodes.

    Usage::

        graph = ResourceGraph(resources)
        for resource in graph.topological_order():
            ...
    """

    def __init__(self, resources: Iterable[Resource]) -> None:
        self._resources: dict[str, Resource] = {}
        for resource in resources:
            if resource.id in self._resources:
                raise ValidationError(f"Duplicate resource id '{resource.id}'")
            self._resources[resource.id] = resource
        self._position = {rid: i for i, rid in enumerate(self._resources)}
        self._graph = self._build_graph(self._resources)

    @staticmethod
    def _build_graph(resources: dict[str, Resource]) -> nx.DiGraph:
        graph: nx.DiGraph = nx.DiGraph()
        for rid in resources:
            graph.add_node(rid)
        for rid, resource in resources.items():
            for dep in resource.depends_on:
                if dep not in resources:
                    raise ValidationError(
                        f"Resource '{rid}' depends on unknown resource '{dep}'",
                        errors=[{"resource_id": rid, "missing": dep}],
                    )
                graph.add_edge(dep, rid)

        if not nx.is_directed_acyclic_graph(graph):
            try:
                cycle = nx.find_cycle(graph)
                cycle_ids = [edge[0] for edge in cycle] + [cycle[-1][1]]
            except nx.NetworkXNoCycle:
                cycle_ids = []
            raise CycleError(cycle_ids)

        return graph

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def get(self, resource_id: str) -> Resource:
        return self._resources[resource_id]

    def ids(self) -> list[str]:
        return list(self._resources)

    def topological_order(self) -> list[Resource]:
        """Return every resource after all of its dependencies.

        Ties are broken by declaration order, so the result is stable.
        """
        order = nx.lexicographical_topological_sort(
            self._graph, key=lambda rid: self._position[rid]
        )
        return [self._resources[rid] for rid in order]

    def reverse_topological_order(self) -> list[Resource]:
        return list(reversed(self.topological_order()))

    def dependencies(self, resource_id: str) -> set[str]:
        """Return all transitive dependencies of *resource_id*."""
        return nx.ancestors(self._graph, resource_id)

    def dependents(self, resource_id: str) -> set[str]:
        """Return all transitive dependents of *resource_id*."""
        return nx.descendants(self._graph, resource_id)


def topological_ids(depends_on: Mapping[str, Iterable[str]]) -> list[str]:
    """Order bare resource IDs so dependencies come first.

    Used for persisted records, where a dependency may already be gone;
    edges to unknown IDs are ignored.  Ties are broken by mapping order.
    """
    position = {rid: i for i, rid in enumerate(depends_on)}
    graph: nx.DiGraph = nx.DiGraph()
    graph.add_nodes_from(depends_on)
    for rid, deps in depends_on.items():
        for dep in deps:
            if dep in position:
                graph.add_edge(dep, rid)
    try:
        return list(nx.lexicographical_topological_sort(graph, key=lambda rid: position[rid]))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph)
        raise CycleError([edge[0] for edge in cycle] + [cycle[-1][1]])
