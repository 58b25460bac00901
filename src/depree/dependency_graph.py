"""
Directed dependency graph over commit identities.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .models import DependencyEdge


logger = logging.getLogger(__name__)


class DependencyGraph:
    """Append-only adjacency sets in both directions.

    Cycles are allowed; deciding what a cycle means is up to the caller.
    """

    def __init__(self) -> None:
        self._depends_on: Dict[str, Set[str]] = {}
        self._depended_by: Dict[str, Set[str]] = {}

    def add_node(self, node: str) -> None:
        self._depends_on.setdefault(node, set())
        self._depended_by.setdefault(node, set())

    def add_edge(self, dependent: str, dependency: str) -> bool:
        """Record that `dependent` depends on `dependency`.

        Returns:
            True if the edge is new; self edges are ignored and return False
        """
        if dependent == dependency:
            return False
        self.add_node(dependent)
        self.add_node(dependency)
        if dependency in self._depends_on[dependent]:
            return False
        self._depends_on[dependent].add(dependency)
        self._depended_by[dependency].add(dependent)
        return True

    def add_dependencies(self, dependent: str, dependencies: Iterable[str]) -> None:
        self.add_node(dependent)
        for dependency in dependencies:
            self.add_edge(dependent, dependency)

    def __contains__(self, node: object) -> bool:
        return node in self._depends_on

    def __len__(self) -> int:
        return len(self._depends_on)

    @property
    def nodes(self) -> Set[str]:
        return set(self._depends_on)

    def dependencies_of(self, node: str) -> Set[str]:
        """Commits `node` depends on."""
        return set(self._depends_on.get(node, ()))

    def dependents_of(self, node: str) -> Set[str]:
        """Commits that depend on `node`."""
        return set(self._depended_by.get(node, ()))

    def edges(self) -> Iterator[DependencyEdge]:
        for dependent in sorted(self._depends_on):
            for dependency in sorted(self._depends_on[dependent]):
                yield DependencyEdge(dependent, dependency)

    def edge_count(self) -> int:
        return sum(len(deps) for deps in self._depends_on.values())

    def strongly_connected_components(self, within: Optional[Iterable[str]] = None) -> List[List[str]]:
        """Tarjan's algorithm, iterative, optionally restricted to a node subset.

        Returns every component (singletons included), each sorted, in order
        of discovery.
        """
        allowed = set(self._depends_on) if within is None else set(within) & set(self._depends_on)
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        on_stack: Set[str] = set()
        stack: List[str] = []
        components: List[List[str]] = []
        counter = 0

        for root in sorted(allowed):
            if root in index:
                continue
            work = [(root, iter(sorted(self._depends_on[root] & allowed)))]
            index[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)

            while work:
                node, children = work[-1]
                advanced = False
                for child in children:
                    if child not in index:
                        index[child] = lowlink[child] = counter
                        counter += 1
                        stack.append(child)
                        on_stack.add(child)
                        work.append((child, iter(sorted(self._depends_on[child] & allowed))))
                        advanced = True
                        break
                    if child in on_stack:
                        lowlink[node] = min(lowlink[node], index[child])
                if advanced:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(sorted(component))

        return components

    def cycles(self, within: Optional[Iterable[str]] = None) -> List[List[str]]:
        """Components with more than one member."""
        return [c for c in self.strongly_connected_components(within) if len(c) > 1]
