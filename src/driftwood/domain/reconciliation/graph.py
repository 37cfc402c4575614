"""Desired resource graph for one planning cycle.

Edges point from a dependent node to the node it depends on. The graph is
validated on construction and never mutated afterwards: a new graph is built
for every cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import networkx as nx

from driftwood.domain.errors import CycleError, UnresolvedReferenceError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from driftwood.domain.model import ResourceAddress, ResourceNode


@dataclass(slots=True)
class ResourceGraph:
    _nodes: dict[ResourceAddress, ResourceNode] = field(default_factory=dict, repr=False)
    _graph: nx.DiGraph = field(default_factory=nx.DiGraph, repr=False)
    outputs: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_nodes(
        cls,
        nodes: Iterable[ResourceNode],
        *,
        outputs: Mapping[str, object] | None = None,
    ) -> ResourceGraph:
        """Build and validate a graph, raising on dangling edges or cycles."""

        graph = cls(outputs=dict(outputs or {}))
        for node in nodes:
            graph._nodes[node.address] = node
            graph._graph.add_node(node.address)

        for node in graph._nodes.values():
            for dependency in sorted(node.dependencies):
                if dependency not in graph._nodes:
                    raise UnresolvedReferenceError(str(dependency), source=str(node.address))
                graph._graph.add_edge(node.address, dependency)

        graph.validate_invariants()
        return graph

    @property
    def nodes(self) -> tuple[ResourceNode, ...]:
        return tuple(self._nodes[address] for address in sorted(self._nodes))

    def __contains__(self, address: object) -> bool:
        return address in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self.nodes)

    def node(self, address: ResourceAddress) -> ResourceNode:
        return self._nodes[address]

    def get(self, address: ResourceAddress) -> ResourceNode | None:
        return self._nodes.get(address)

    def dependents(self, address: ResourceAddress) -> frozenset[ResourceAddress]:
        """Nodes with a direct edge to ``address``."""

        return frozenset(self._graph.predecessors(address))

    def transitive_dependents(self, address: ResourceAddress) -> frozenset[ResourceAddress]:
        return frozenset(nx.ancestors(self._graph, address))

    def creation_order(self) -> tuple[ResourceAddress, ...]:
        """Addresses ordered so that every dependency precedes its dependents."""

        return tuple(
            nx.lexicographical_topological_sort(self._graph.reverse(copy=False), key=str)
        )

    def validate_invariants(self) -> None:
        try:
            cycle = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return
        raise CycleError([source for source, _target in cycle])
