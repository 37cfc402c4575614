"""Resource nodes, addresses and deferred attribute values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


@dataclass(frozen=True, slots=True, order=True)
class ResourceAddress:
    """Identifier of a resource: its type plus a document-local name."""

    type: str
    name: str

    def __str__(self) -> str:
        return f"{self.type}.{self.name}"

    @classmethod
    def parse(cls, value: str) -> ResourceAddress:
        resource_type, sep, name = value.strip().partition(".")
        if not sep or not resource_type or not name or "." in name:
            raise ValueError(f"Invalid resource address: {value!r}")
        return cls(resource_type, name)


@dataclass(frozen=True, slots=True)
class Reference:
    """Reference to one attribute of another resource."""

    address: ResourceAddress
    attribute: str

    def __str__(self) -> str:
        return f"{self.address}.{self.attribute}"


@dataclass(frozen=True, slots=True)
class DeferredValue:
    """Attribute value that can only be computed once its dependencies are applied.

    ``parts`` interleaves literal text with references. A value made of exactly
    one reference resolves to the referenced value unchanged; anything else is
    rendered as a string.
    """

    expression: str
    parts: tuple[str | Reference, ...]

    @property
    def references(self) -> tuple[Reference, ...]:
        return tuple(part for part in self.parts if isinstance(part, Reference))

    def resolve(self, lookup: Callable[[Reference], object]) -> object:
        if len(self.parts) == 1 and isinstance(self.parts[0], Reference):
            return lookup(self.parts[0])
        return "".join(
            part if isinstance(part, str) else str(lookup(part)) for part in self.parts
        )

    def __str__(self) -> str:
        return self.expression


@dataclass(frozen=True, slots=True)
class Lifecycle:
    create_before_destroy: bool = False
    prevent_destroy: bool = False
    ignore_changes: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class ResourceNode:
    """One desired resource in the graph.

    ``attributes`` may contain ``DeferredValue`` instances (possibly nested in
    lists or mappings). ``dependencies`` holds outgoing edges: the addresses this
    node depends on, inferred from references and explicit ``depends_on``.
    """

    address: ResourceAddress
    attributes: Mapping[str, object]
    dependencies: frozenset[ResourceAddress] = frozenset()
    lifecycle: Lifecycle = field(default_factory=Lifecycle)

    @property
    def type(self) -> str:
        return self.address.type
