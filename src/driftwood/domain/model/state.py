"""Persisted state records."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .resources import ResourceAddress


@dataclass(frozen=True, slots=True, kw_only=True)
class StateEntry:
    """Last-applied record of one remote resource.

    ``attributes`` holds the resolved inputs sent to the provider, ``outputs``
    the attributes the provider reported back. ``version`` is bumped by the
    store on every write and is used for optimistic concurrency checks.
    """

    address: ResourceAddress
    external_id: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    outputs: Mapping[str, object] = field(default_factory=dict)
    dependencies: frozenset[ResourceAddress] = frozenset()
    version: int = 0

    def with_remote(self, outputs: Mapping[str, object]) -> StateEntry:
        """Return a copy reflecting attributes read back from the remote system."""

        attributes = {key: outputs[key] for key in self.attributes if key in outputs}
        return replace(self, attributes=attributes, outputs=dict(outputs))
