"""Payloads exchanged with a REST resource API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResourcePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    attributes: dict[str, Any] = Field(default_factory=dict)


class ErrorPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: str | None = None
    message: str | None = None

    @property
    def text(self) -> str | None:
        return self.message or self.error


class AttributesRequest(BaseModel):
    attributes: dict[str, Any]
