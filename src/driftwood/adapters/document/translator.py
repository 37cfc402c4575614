"""Translate validated document payloads into the domain ``Document``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from driftwood.domain.errors import DocumentError
from driftwood.domain.model import Document, ResourceDeclaration

if TYPE_CHECKING:
    from .schema import DocumentSpec, ResourceSpec


def translate_document(spec: DocumentSpec) -> Document:
    resources = tuple(
        _build_declaration(resource_type, name, block)
        for resource_type, blocks in sorted(spec.resources.items())
        for name, block in sorted(blocks.items())
    )
    return Document(
        variables=dict(spec.variables),
        resources=resources,
        outputs=dict(spec.outputs),
    )


def _build_declaration(resource_type: str, name: str, block: ResourceSpec) -> ResourceDeclaration:
    return ResourceDeclaration(
        type=resource_type,
        name=name,
        attributes=block.attributes,
        depends_on=tuple(block.depends_on),
        enabled=_enabled(block.enabled, source=f"{resource_type}.{name}"),
        create_before_destroy=block.lifecycle.create_before_destroy,
        prevent_destroy=block.lifecycle.prevent_destroy,
        ignore_changes=tuple(block.lifecycle.ignore_changes),
    )


def _enabled(value: bool | int | str, *, source: str) -> bool | str:
    if isinstance(value, bool | str):
        return value
    if value not in {0, 1}:
        raise DocumentError(f"{source}.enabled must be 0 or 1, got {value}")
    return bool(value)
