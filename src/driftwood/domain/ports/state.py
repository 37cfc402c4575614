"""State store port."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from driftwood.domain.model import ResourceAddress, StateEntry


@runtime_checkable
class StateStore(Protocol):
    """Persisted mapping of resource address to last-applied state.

    Every operation is scoped to a single entry. ``put`` and ``delete`` check
    ``expected_version`` against the stored version (``None`` meaning "must be
    absent") and raise ``StateConflictError`` on mismatch. Writes are durable
    when the call returns.
    """

    def get(self, address: ResourceAddress) -> StateEntry | None: ...

    def entries(self) -> tuple[StateEntry, ...]: ...

    def put(self, entry: StateEntry, *, expected_version: int | None) -> StateEntry: ...

    def delete(self, address: ResourceAddress, *, expected_version: int) -> None: ...
