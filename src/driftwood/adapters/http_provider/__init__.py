"""HTTP adapter for remote resource APIs."""

from __future__ import annotations

from .client import ResourceApiClient, classify_status
from .provider import HttpResourceProvider, build_http_registry
from .schema import ErrorPayload, ResourcePayload

__all__ = [
    "ErrorPayload",
    "HttpResourceProvider",
    "ResourceApiClient",
    "ResourcePayload",
    "build_http_registry",
    "classify_status",
]
