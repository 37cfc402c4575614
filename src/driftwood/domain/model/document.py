"""Provider-agnostic representation of a declarative document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class ResourceDeclaration:
    """A resource as written in the document, before expressions are evaluated."""

    type: str
    name: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    enabled: bool | str = True
    create_before_destroy: bool = False
    prevent_destroy: bool = False
    ignore_changes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class Document:
    variables: Mapping[str, object] = field(default_factory=dict)
    resources: tuple[ResourceDeclaration, ...] = ()
    outputs: Mapping[str, str] = field(default_factory=dict)
