"""Planner: diff the desired graph against the state store.

Classification rules per node:
- absent from state: ``CREATE``
- present and equal: ``NOOP`` (still rewrites recorded dependencies if they changed)
- present and divergent: ``REPLACE`` if the provider schema marks a changed
  attribute as replace-forcing, otherwise ``UPDATE``
- present in state but absent from the graph: ``DELETE``

The resulting plan is a DAG of actions. Dependencies are applied before their
dependents; deletions run after every action whose prior state depended on the
deleted resource.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING, Final

import networkx as nx

from driftwood.domain.errors import CycleError, PreventDestroyError
from driftwood.domain.model import ActionKind

from .references import resolve_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from driftwood.domain.model import Reference, ResourceAddress, ResourceNode, StateEntry
    from driftwood.domain.ports import ProviderRegistry, StateStore

    from .graph import ResourceGraph

log = getLogger(__name__)


class _Marker:
    __slots__ = ("_label",)

    def __init__(self, label: str) -> None:
        self._label = label

    def __repr__(self) -> str:
        return self._label


UNKNOWN: Final = _Marker("(known after apply)")
ABSENT: Final = _Marker("(absent)")


class _UnknownValueError(Exception):
    """Raised internally when a reference cannot be resolved at plan time."""


@dataclass(frozen=True, slots=True)
class AttributeChange:
    attribute: str
    before: object
    after: object
    forces_replacement: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class ChangeAction:
    """One planned step. ``node`` is ``None`` only for deletions of orphaned state."""

    address: ResourceAddress
    kind: ActionKind
    node: ResourceNode | None = None
    prior: StateEntry | None = None
    changes: tuple[AttributeChange, ...] = ()

    @property
    def create_before_destroy(self) -> bool:
        return self.node is not None and self.node.lifecycle.create_before_destroy

    @property
    def dependencies(self) -> frozenset[ResourceAddress]:
        if self.node is not None:
            return self.node.dependencies
        return frozenset()

    @property
    def rewrites_dependencies(self) -> bool:
        """A NOOP whose recorded dependencies no longer match the document."""

        return (
            self.kind is ActionKind.NOOP
            and self.node is not None
            and self.prior is not None
            and self.node.dependencies != self.prior.dependencies
        )

    def change_for(self, attribute: str) -> AttributeChange | None:
        return next((change for change in self.changes if change.attribute == attribute), None)


@dataclass(slots=True)
class Plan:
    """Ordered change list for one cycle."""

    _actions: dict[ResourceAddress, ChangeAction] = field(default_factory=dict, repr=False)
    _graph: nx.DiGraph = field(default_factory=nx.DiGraph, repr=False)
    _order: tuple[ResourceAddress, ...] = ()

    @classmethod
    def from_actions(
        cls,
        actions: Iterable[ChangeAction],
        *,
        edges: Iterable[tuple[ResourceAddress, ResourceAddress]] = (),
    ) -> Plan:
        """Create a plan; ``edges`` run from prerequisite to dependent action."""

        plan = cls()
        for action in actions:
            plan._actions[action.address] = action
            plan._graph.add_node(action.address)
        for prerequisite, dependent in edges:
            plan._graph.add_edge(prerequisite, dependent)
        try:
            cycle = nx.find_cycle(plan._graph)
        except nx.NetworkXNoCycle:
            pass
        else:
            raise CycleError([source for source, _target in cycle])
        plan._order = tuple(nx.lexicographical_topological_sort(plan._graph, key=str))
        return plan

    @property
    def actions(self) -> tuple[ChangeAction, ...]:
        return tuple(self._actions[address] for address in self._order)

    @property
    def has_changes(self) -> bool:
        return any(action.kind is not ActionKind.NOOP for action in self._actions.values())

    def __len__(self) -> int:
        return len(self._actions)

    def action_for(self, address: ResourceAddress) -> ChangeAction:
        return self._actions[address]

    def prerequisites(self, address: ResourceAddress) -> frozenset[ResourceAddress]:
        return frozenset(self._graph.predecessors(address))

    def blocked_by(self, address: ResourceAddress) -> frozenset[ResourceAddress]:
        """Every action that cannot run if ``address`` fails."""

        return frozenset(nx.descendants(self._graph, address))

    def summary(self) -> dict[ActionKind, int]:
        counts = dict.fromkeys(ActionKind, 0)
        for action in self._actions.values():
            counts[action.kind] += 1
        return counts


@dataclass(slots=True)
class Planner:
    providers: ProviderRegistry

    def __call__(
        self,
        graph: ResourceGraph,
        store: StateStore,
        *,
        refresh: bool = False,
        destroy: bool = False,
    ) -> Plan:
        entries = {entry.address: entry for entry in store.entries()}
        vanished: dict[ResourceAddress, StateEntry] = {}
        if refresh:
            entries, vanished = self.refresh(entries)

        actions: dict[ResourceAddress, ChangeAction] = {}
        if destroy:
            for node in graph.nodes:
                if node.address in entries and node.lifecycle.prevent_destroy:
                    raise PreventDestroyError(node.address, action="destroy")
        else:
            for address in graph.creation_order():
                node = graph.node(address)
                action = self._classify(node, entries.get(address), actions)
                if address in vanished:
                    # recreate over the stale record so the store version check still applies
                    action = replace(action, prior=vanished[address])
                actions[address] = action

        for address in sorted((entries.keys() | vanished.keys()) - actions.keys()):
            self.providers.get(address.type)
            actions[address] = ChangeAction(
                address=address,
                kind=ActionKind.DELETE,
                prior=entries.get(address) or vanished[address],
            )

        recorded = {
            address: entry.dependencies for address, entry in {**vanished, **entries}.items()
        }
        if destroy:
            # teardown follows the document when it names a dependency state has not seen yet
            for node in graph.nodes:
                recorded[node.address] = recorded.get(node.address, frozenset()) | node.dependencies
        plan = Plan.from_actions(actions.values(), edges=_plan_edges(actions, recorded))
        counts = plan.summary()
        log.info(
            "Plan: %s to create, %s to update, %s to replace, %s to delete, %s unchanged",
            counts[ActionKind.CREATE],
            counts[ActionKind.UPDATE],
            counts[ActionKind.REPLACE],
            counts[ActionKind.DELETE],
            counts[ActionKind.NOOP],
        )
        return plan

    def refresh(
        self, entries: Mapping[ResourceAddress, StateEntry]
    ) -> tuple[dict[ResourceAddress, StateEntry], dict[ResourceAddress, StateEntry]]:
        """Read every entry back from its provider to detect drift.

        Returns the refreshed entries and, separately, the entries whose remote
        resource no longer exists. Nothing is written to the store.
        """

        refreshed: dict[ResourceAddress, StateEntry] = {}
        vanished: dict[ResourceAddress, StateEntry] = {}
        for address, entry in sorted(entries.items()):
            provider = self.providers.get(address.type)
            remote = provider.read(entry.external_id)
            if remote is None:
                log.warning("%s (%s) no longer exists remotely", address, entry.external_id)
                vanished[address] = entry
                continue
            current = entry.with_remote(remote)
            if current.attributes != entry.attributes:
                log.warning("%s has drifted from recorded state", address)
            refreshed[address] = current
        return refreshed, vanished

    def _classify(
        self,
        node: ResourceNode,
        prior: StateEntry | None,
        planned: Mapping[ResourceAddress, ChangeAction],
    ) -> ChangeAction:
        schema = self.providers.get(node.type).schema
        schema.validate(node.address, node.attributes)
        desired = _resolve_planned(node, planned)

        if prior is None:
            changes = tuple(
                AttributeChange(attribute=key, before=ABSENT, after=value)
                for key, value in sorted(desired.items())
            )
            return ChangeAction(
                address=node.address, kind=ActionKind.CREATE, node=node, changes=changes
            )

        changes = tuple(
            AttributeChange(
                attribute=key,
                before=prior.attributes.get(key, ABSENT),
                after=desired.get(key, ABSENT),
                forces_replacement=schema.requires_replacement(key),
            )
            for key in sorted(
                (desired.keys() | prior.attributes.keys()) - node.lifecycle.ignore_changes
            )
            if _differs(prior.attributes.get(key, ABSENT), desired.get(key, ABSENT))
        )
        if not changes:
            kind = ActionKind.NOOP
        elif any(change.forces_replacement for change in changes):
            if node.lifecycle.prevent_destroy:
                raise PreventDestroyError(node.address, action="replace")
            kind = ActionKind.REPLACE
        else:
            kind = ActionKind.UPDATE
        return ChangeAction(
            address=node.address, kind=kind, node=node, prior=prior, changes=changes
        )


def _resolve_planned(
    node: ResourceNode, planned: Mapping[ResourceAddress, ChangeAction]
) -> dict[str, object]:
    def lookup(reference: Reference) -> object:
        dependency = planned[reference.address]
        if dependency.kind is ActionKind.UPDATE:
            change = dependency.change_for(reference.attribute)
            if change is not None:
                if change.after is UNKNOWN or change.after is ABSENT:
                    raise _UnknownValueError
                return change.after
        if dependency.kind in {ActionKind.NOOP, ActionKind.UPDATE} and dependency.prior:
            outputs = dependency.prior.outputs
            if reference.attribute in outputs:
                return outputs[reference.attribute]
        raise _UnknownValueError

    resolved: dict[str, object] = {}
    for key, value in node.attributes.items():
        try:
            resolved[key] = resolve_value(value, lookup)
        except _UnknownValueError:
            resolved[key] = UNKNOWN
    return resolved


def _differs(before: object, after: object) -> bool:
    return after is UNKNOWN or before != after


def _plan_edges(
    actions: Mapping[ResourceAddress, ChangeAction],
    recorded: Mapping[ResourceAddress, frozenset[ResourceAddress]],
) -> list[tuple[ResourceAddress, ResourceAddress]]:
    edges: list[tuple[ResourceAddress, ResourceAddress]] = []
    for address, action in actions.items():
        edges.extend((dependency, address) for dependency in sorted(action.dependencies))

    for address, action in actions.items():
        if action.kind is not ActionKind.DELETE:
            continue
        for dependent, dependencies in sorted(recorded.items()):
            if dependent != address and address in dependencies and dependent in actions:
                edges.append((dependent, address))
    return edges
