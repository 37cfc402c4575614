"""In-memory state store, used by tests and throwaway runs."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import replace
from typing import TYPE_CHECKING

from driftwood.domain.errors import StateConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from driftwood.domain.model import ResourceAddress, StateEntry


class InMemoryStateStore:
    def __init__(self, entries: Iterable[StateEntry] = ()) -> None:
        self._entries: dict[ResourceAddress, StateEntry] = {}
        self._guard = threading.Lock()
        self._locks: defaultdict[ResourceAddress, threading.Lock] = defaultdict(threading.Lock)
        for entry in entries:
            self._entries[entry.address] = replace(entry, version=max(entry.version, 1))

    def get(self, address: ResourceAddress) -> StateEntry | None:
        with self._guard:
            return self._entries.get(address)

    def entries(self) -> tuple[StateEntry, ...]:
        with self._guard:
            return tuple(self._entries[address] for address in sorted(self._entries))

    def put(self, entry: StateEntry, *, expected_version: int | None) -> StateEntry:
        with self._lock_for(entry.address):
            current = self.get(entry.address)
            _check_version(entry.address, current, expected_version)
            stored = replace(entry, version=(current.version if current else 0) + 1)
            with self._guard:
                self._entries[entry.address] = stored
            return stored

    def delete(self, address: ResourceAddress, *, expected_version: int) -> None:
        with self._lock_for(address):
            current = self.get(address)
            _check_version(address, current, expected_version)
            with self._guard:
                del self._entries[address]

    def _lock_for(self, address: ResourceAddress) -> threading.Lock:
        with self._guard:
            return self._locks[address]


def _check_version(
    address: ResourceAddress, current: StateEntry | None, expected_version: int | None
) -> None:
    actual = current.version if current is not None else None
    if actual != expected_version:
        raise StateConflictError(
            f"State for {address} changed concurrently: "
            f"expected version {expected_version}, found {actual}"
        )
