"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from fleet_hardener.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    Node order in *nodes* is the declaration order and breaks ties between
    nodes of equal priority.
    """

    def __init__(
        self,
        nodes: Sequence[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._index = {n: i for i, n in enumerate(dict.fromkeys(nodes))}
        self._priorities = priorities or {}
        # node -> filtered deps within graph
        self._deps: dict[str, set[str]] = {}
        for node in self._index:
            deps = set(dependencies.get(node, []))
            self._deps[node] = {d for d in deps if d in self._index and d != node}

    def _rank(self, node: str) -> tuple[int, int, str]:
        return (self._priorities.get(node, 0), self._index[node], node)

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (priority, then declaration order)."""
        indegree: dict[str, int] = dict.fromkeys(self._index, 0)
        dependents: dict[str, set[str]] = {n: set() for n in self._index}

        for node, deps in self._deps.items():
            indegree[node] = len(deps)
            for dep in deps:
                dependents[dep].add(node)

        ready = [self._rank(n) for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            *_, node = heapq.heappop(ready)
            order.append(node)
            for child in dependents[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, self._rank(child))

        if len(order) != len(self._index):
            remaining = sorted(set(self._index) - set(order))
            raise DependencyCycleError(remaining)

        return order

    def dependency_map(self) -> dict[str, list[str]]:
        """Direct dependencies per node, sorted by declaration order."""
        return {n: sorted(deps, key=self._index.__getitem__) for n, deps in self._deps.items()}
