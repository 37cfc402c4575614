"""Expression parsing for document attributes.

Two expression forms are recognised inside strings:

- ``${var.NAME}`` is substituted from the document variables at build time
- ``${type.name.attribute}`` becomes a ``Reference`` wrapped in a ``DeferredValue``

A string that is exactly one expression keeps the type of the value it
resolves to; strings mixing text and expressions always resolve to strings.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Final

from driftwood.domain.errors import BuildError, UnresolvedReferenceError
from driftwood.domain.model import DeferredValue, Reference, ResourceAddress

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

EXPRESSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{\s*([^}]*?)\s*\}")
VARIABLE_PREFIX: Final[str] = "var."


def parse_value(value: object, *, variables: Mapping[str, object], source: str) -> object:
    """Substitute variables and turn resource references into deferred values."""

    if isinstance(value, str):
        return _parse_string(value, variables=variables, source=source)
    if isinstance(value, Mapping):
        return {
            str(key): parse_value(item, variables=variables, source=f"{source}.{key}")
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [
            parse_value(item, variables=variables, source=f"{source}[{index}]")
            for index, item in enumerate(value)
        ]
    return value


def parse_reference(expression: str, *, source: str) -> Reference:
    resource_type, _, remainder = expression.partition(".")
    name, _, attribute = remainder.partition(".")
    if not resource_type or not name or not attribute:
        raise BuildError(f"{source}: invalid reference expression ${{{expression}}}")
    return Reference(ResourceAddress(resource_type, name), attribute)


def iter_references(value: object) -> Iterator[Reference]:
    if isinstance(value, DeferredValue):
        yield from value.references
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, list | tuple):
        for item in value:
            yield from iter_references(item)


def is_deferred(value: object) -> bool:
    return next(iter_references(value), None) is not None


def resolve_value(value: object, lookup: Callable[[Reference], object]) -> object:
    """Replace every deferred value inside ``value`` using ``lookup``."""

    if isinstance(value, DeferredValue):
        return value.resolve(lookup)
    if isinstance(value, Mapping):
        return {key: resolve_value(item, lookup) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [resolve_value(item, lookup) for item in value]
    return value


def _parse_string(value: str, *, variables: Mapping[str, object], source: str) -> object:
    matches = list(EXPRESSION_PATTERN.finditer(value))
    if not matches:
        return value

    parts: list[str | Reference] = []
    cursor = 0
    for match in matches:
        if match.start() > cursor:
            parts.append(value[cursor : match.start()])
        parts.append(_parse_expression(match.group(1), variables=variables, source=source))
        cursor = match.end()
    if cursor < len(value):
        parts.append(value[cursor:])

    if len(matches) == 1 and len(parts) == 1:
        only = parts[0]
        if isinstance(only, Reference):
            return DeferredValue(expression=value, parts=(only,))
        return _variable_value(matches[0].group(1), variables=variables, source=source)

    merged = _merge_literals(parts)
    if not any(isinstance(part, Reference) for part in merged):
        return "".join(str(part) for part in merged)
    return DeferredValue(expression=value, parts=tuple(merged))


def _parse_expression(
    expression: str, *, variables: Mapping[str, object], source: str
) -> str | Reference:
    if expression.startswith(VARIABLE_PREFIX):
        return str(_variable_value(expression, variables=variables, source=source))
    return parse_reference(expression, source=source)


def _variable_value(expression: str, *, variables: Mapping[str, object], source: str) -> object:
    name = expression.removeprefix(VARIABLE_PREFIX)
    if name not in variables:
        raise UnresolvedReferenceError(expression, source=source)
    return variables[name]


def _merge_literals(parts: list[str | Reference]) -> list[str | Reference]:
    merged: list[str | Reference] = []
    for part in parts:
        if isinstance(part, str) and merged and isinstance(merged[-1], str):
            merged[-1] = merged[-1] + part
        else:
            merged.append(part)
    return merged
