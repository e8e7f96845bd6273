"""Dependency graph utilities and the resource graph builder."""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from infragraph.engine.errors import CycleDetected, DuplicateAddressError, UnresolvedReference

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping, Sequence

    from infragraph.resources.base import ResourceDeclaration
    from infragraph.resources.expressions import Reference

logger = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    Ties between independent nodes are broken by priority, then by the
    order in which nodes were given.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = list(dict.fromkeys(nodes))
        self._index = {n: i for i, n in enumerate(self._nodes)}
        self._priorities = priorities or {}
        # node -> filtered deps within graph, in node order
        self._deps: dict[str, list[str]] = {}
        self._dependents: dict[str, list[str]] = {n: [] for n in self._nodes}
        for node in self._nodes:
            deps = {d for d in dependencies.get(node, []) if d in self._index}
            self._deps[node] = sorted(deps, key=self._key)
            for dep in self._deps[node]:
                self._dependents[dep].append(node)
        for dependents in self._dependents.values():
            dependents.sort(key=self._key)

    def _key(self, node: str) -> tuple[int, int]:
        return (self._priorities.get(node, 0), self._index[node])

    @property
    def nodes(self) -> list[str]:
        return list(self._nodes)

    def dependencies_of(self, node: str) -> list[str]:
        return list(self._deps[node])

    def dependents_of(self, node: str) -> list[str]:
        return list(self._dependents[node])

    def find_cycle(self) -> list[str] | None:
        """Return one cycle as a path (first node repeated at the end), or None.

        Depth-first traversal; a node still on the traversal stack when it is
        reached again closes a cycle.
        """
        marks: dict[str, int] = {}
        for root in self._nodes:
            if root in marks:
                continue
            marks[root] = _VISITING
            path = [root]
            stack: list[tuple[str, Iterator[str]]] = [(root, iter(self._deps[root]))]
            while stack:
                node, deps = stack[-1]
                for dep in deps:
                    mark = marks.get(dep)
                    if mark is None:
                        marks[dep] = _VISITING
                        path.append(dep)
                        stack.append((dep, iter(self._deps[dep])))
                        break
                    if mark == _VISITING:
                        return [*path[path.index(dep) :], dep]
                else:
                    marks[node] = _DONE
                    path.pop()
                    stack.pop()
        return None

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (priority, then node order tie-break)."""
        cycle = self.find_cycle()
        if cycle is not None:
            raise CycleDetected(cycle)

        indegree = {n: len(deps) for n, deps in self._deps.items()}
        ready = [(*self._key(n), n) for n, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            *_, node = heapq.heappop(ready)
            order.append(node)
            for child in self._dependents[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (*self._key(child), child))
        return order

    def reverse_topological_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order

    def transitive_dependents(self, node: str) -> set[str]:
        """Every node that depends on *node*, directly or indirectly."""
        seen: set[str] = set()
        pending = list(self._dependents[node])
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self._dependents[current])
        return seen


@dataclass(frozen=True, slots=True)
class DependencyEdge:
    """``dependent`` needs ``dependency`` to exist first."""

    dependent: str
    dependency: str


class ResourceGraph:
    """Declarations plus the dependency edges inferred from them. Always acyclic."""

    def __init__(
        self, declarations: Sequence[ResourceDeclaration], edges: Sequence[DependencyEdge]
    ) -> None:
        self._declarations = {d.address: d for d in declarations}
        self._edges = list(edges)
        deps: dict[str, list[str]] = {a: [] for a in self._declarations}
        for edge in self._edges:
            deps[edge.dependent].append(edge.dependency)
        self._graph = DependencyGraph(self._declarations, deps)
        cycle = self._graph.find_cycle()
        if cycle is not None:
            raise CycleDetected(cycle)

    def __contains__(self, address: object) -> bool:
        return address in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)

    @property
    def addresses(self) -> list[str]:
        """Addresses in declaration order."""
        return list(self._declarations)

    @property
    def declarations(self) -> list[ResourceDeclaration]:
        return list(self._declarations.values())

    @property
    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    def get(self, address: str) -> ResourceDeclaration:
        return self._declarations[address]

    def dependencies_of(self, address: str) -> list[str]:
        return self._graph.dependencies_of(address)

    def dependents_of(self, address: str) -> list[str]:
        return self._graph.dependents_of(address)

    def transitive_dependents(self, address: str) -> set[str]:
        return self._graph.transitive_dependents(address)

    def topological_order(self) -> list[str]:
        """Dependencies first; independent resources keep declaration order."""
        return self._graph.topological_order()

    def reverse_topological_order(self) -> list[str]:
        return self._graph.reverse_topological_order()


def build_graph(declarations: Iterable[ResourceDeclaration]) -> ResourceGraph:
    """Build the resource graph from declarations.

    Raises:
        DuplicateAddressError: Two declarations share an address.
        UnresolvedReference: A reference or ``depends_on`` names an undeclared address.
        CycleDetected: The references form a cycle.
    """
    ordered: dict[str, ResourceDeclaration] = {}
    for decl in declarations:
        if decl.address in ordered:
            raise DuplicateAddressError(decl.address)
        ordered[decl.address] = decl

    missing: list[tuple[str, Reference | str]] = []
    edges: list[DependencyEdge] = []
    for address, decl in ordered.items():
        missing.extend((address, dep) for dep in decl.depends_on if dep not in ordered)
        missing.extend((address, ref) for ref in decl.references() if ref.address not in ordered)
        edges.extend(
            DependencyEdge(dependent=address, dependency=dep)
            for dep in decl.dependency_addresses()
            if dep in ordered
        )
    if missing:
        raise UnresolvedReference(missing)

    graph = ResourceGraph(list(ordered.values()), edges)
    logger.debug("Built resource graph: %d resources, %d edges", len(graph), len(edges))
    return graph
