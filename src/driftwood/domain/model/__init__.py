"""Domain model for the reconciler."""

from __future__ import annotations

from .document import Document, ResourceDeclaration
from .enums import ActionKind, NodeStatus, ResourceType
from .resources import DeferredValue, Lifecycle, Reference, ResourceAddress, ResourceNode
from .state import StateEntry

__all__ = [
    "ActionKind",
    "DeferredValue",
    "Document",
    "Lifecycle",
    "NodeStatus",
    "Reference",
    "ResourceAddress",
    "ResourceDeclaration",
    "ResourceNode",
    "ResourceType",
    "StateEntry",
]
