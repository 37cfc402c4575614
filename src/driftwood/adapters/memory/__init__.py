"""In-memory adapters: a simulated cloud and a state store."""

from __future__ import annotations

from .cloud import CloudCall, InMemoryCloud, InMemoryResourceProvider, build_memory_registry
from .state import InMemoryStateStore

__all__ = [
    "CloudCall",
    "InMemoryCloud",
    "InMemoryResourceProvider",
    "InMemoryStateStore",
    "build_memory_registry",
]
