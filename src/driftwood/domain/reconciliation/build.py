"""Resource graph builder.

Turns a ``Document`` into a validated ``ResourceGraph``:
1) evaluate ``enabled`` predicates once; disabled resources are dropped
2) substitute variables and parse resource references into deferred values
3) infer edges from references and explicit ``depends_on`` hints
4) reject dangling references and dependency cycles

The builder is a pure transformation and performs no I/O.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from driftwood.domain.errors import BuildError, UnresolvedReferenceError
from driftwood.domain.model import (
    DeferredValue,
    Lifecycle,
    ResourceAddress,
    ResourceNode,
)

from .graph import ResourceGraph
from .references import iter_references, parse_value

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from driftwood.domain.model import Document, ResourceDeclaration

log = getLogger(__name__)

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


class BuildResourceGraph(Protocol):
    """Build the desired graph for one planning cycle."""

    def __call__(self, document: Document) -> ResourceGraph: ...


def build_graph(document: Document) -> ResourceGraph:
    variables = document.variables
    declared: dict[ResourceAddress, ResourceDeclaration] = {}
    for declaration in document.resources:
        address = ResourceAddress(declaration.type, declaration.name)
        if address in declared:
            raise BuildError(f"Resource {address} is declared more than once")
        declared[address] = declaration

    enabled = {
        address
        for address, declaration in declared.items()
        if _evaluate_enabled(declaration.enabled, variables=variables, source=str(address))
    }
    skipped = sorted(str(address) for address in declared.keys() - enabled)
    if skipped:
        log.debug("Skipping disabled resources: %s", ", ".join(skipped))

    nodes = [
        _build_node(address, declared[address], variables=variables, available=enabled)
        for address in sorted(enabled)
    ]

    outputs: dict[str, object] = {}
    for name, expression in document.outputs.items():
        source = f"output.{name}"
        value = parse_value(expression, variables=variables, source=source)
        _check_references(value, available=enabled, source=source)
        outputs[name] = value

    graph = ResourceGraph.from_nodes(nodes, outputs=outputs)
    log.debug("Built resource graph with %s nodes", len(graph))
    return graph


def _build_node(
    address: ResourceAddress,
    declaration: ResourceDeclaration,
    *,
    variables: Mapping[str, object],
    available: Collection[ResourceAddress],
) -> ResourceNode:
    attributes: dict[str, object] = {}
    dependencies: set[ResourceAddress] = set()
    for key, raw in declaration.attributes.items():
        source = f"{address}.{key}"
        value = parse_value(raw, variables=variables, source=source)
        dependencies.update(_check_references(value, available=available, source=source))
        attributes[key] = value

    for hint in declaration.depends_on:
        try:
            dependency = ResourceAddress.parse(hint)
        except ValueError as exc:
            raise BuildError(f"{address}.depends_on: {exc}") from exc
        if dependency not in available:
            raise UnresolvedReferenceError(hint, source=f"{address}.depends_on")
        dependencies.add(dependency)

    return ResourceNode(
        address=address,
        attributes=attributes,
        dependencies=frozenset(dependencies),
        lifecycle=Lifecycle(
            create_before_destroy=declaration.create_before_destroy,
            prevent_destroy=declaration.prevent_destroy,
            ignore_changes=frozenset(declaration.ignore_changes),
        ),
    )


def _check_references(
    value: object,
    *,
    available: Collection[ResourceAddress],
    source: str,
) -> set[ResourceAddress]:
    addresses: set[ResourceAddress] = set()
    for reference in iter_references(value):
        if reference.address not in available:
            raise UnresolvedReferenceError(str(reference), source=source)
        addresses.add(reference.address)
    return addresses


def _evaluate_enabled(raw: bool | str, *, variables: Mapping[str, object], source: str) -> bool:
    value = parse_value(raw, variables=variables, source=f"{source}.enabled")
    if isinstance(value, DeferredValue):
        raise BuildError(f"{source}.enabled must be known at build time, got {value}")
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value not in {0, 1}:
            raise BuildError(f"{source}.enabled must be 0 or 1, got {value}")
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise BuildError(f"{source}.enabled is not a boolean: {value!r}")
