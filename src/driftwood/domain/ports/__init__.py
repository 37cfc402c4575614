"""Ports implemented by adapters."""

from __future__ import annotations

from .providers import ProviderRegistry, ProviderResult, ResourceProvider
from .state import StateStore

__all__ = [
    "ProviderRegistry",
    "ProviderResult",
    "ResourceProvider",
    "StateStore",
]
