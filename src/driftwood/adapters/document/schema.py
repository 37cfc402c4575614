"""Pydantic models for declarative documents."""

from __future__ import annotations

import re
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

IDENTIFIER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _check_identifier(value: str, *, kind: str) -> str:
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"invalid {kind} {value!r}")
    return value


class LifecycleSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    create_before_destroy: bool = False
    prevent_destroy: bool = False
    ignore_changes: list[str] = Field(default_factory=list)


class ResourceSpec(BaseModel):
    """One resource block. Keys other than the meta arguments are attributes."""

    model_config = ConfigDict(extra="allow")

    depends_on: list[str] = Field(default_factory=list)
    enabled: bool | int | str = True
    lifecycle: LifecycleSpec = Field(default_factory=LifecycleSpec)

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class DocumentSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    variables: dict[str, Any] = Field(default_factory=dict)
    resources: dict[str, dict[str, ResourceSpec]] = Field(default_factory=dict)
    outputs: dict[str, str] = Field(default_factory=dict)

    @field_validator("variables", "outputs")
    @classmethod
    def _check_names(cls, value: dict[str, Any]) -> dict[str, Any]:
        for name in value:
            _check_identifier(name, kind="name")
        return value

    @field_validator("resources")
    @classmethod
    def _check_resource_names(
        cls, value: dict[str, dict[str, ResourceSpec]]
    ) -> dict[str, dict[str, ResourceSpec]]:
        for resource_type, blocks in value.items():
            _check_identifier(resource_type, kind="resource type")
            for name in blocks:
                _check_identifier(name, kind="resource name")
        return value
