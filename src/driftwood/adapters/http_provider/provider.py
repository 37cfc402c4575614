"""Resource providers backed by the REST resource API."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from driftwood.domain.catalog import BUILTIN_SCHEMAS
from driftwood.domain.ports import ProviderRegistry, ProviderResult

from .client import ResourceApiClient

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from driftwood.adapters.http_resilience import ResilientClient
    from driftwood.config.http_resilience import ResilienceConfig
    from driftwood.config.resource_api import ResourceApiConfig
    from driftwood.domain.catalog import ResourceSchema

log = getLogger(__name__)


class HttpResourceProvider:
    def __init__(self, client: ResourceApiClient, schema: ResourceSchema) -> None:
        self._client = client
        self._schema = schema

    @property
    def schema(self) -> ResourceSchema:
        return self._schema

    def read(self, external_id: str) -> Mapping[str, object] | None:
        payload = self._client.fetch(self._schema.type, external_id)
        return None if payload is None else payload.attributes

    def create(self, attributes: Mapping[str, object]) -> ProviderResult:
        payload = self._client.create(self._schema.type, attributes)
        log.debug("Created %s %s", self._schema.type, payload.id)
        return ProviderResult(external_id=payload.id, outputs={**attributes, **payload.attributes})

    def update(self, external_id: str, attributes: Mapping[str, object]) -> Mapping[str, object]:
        payload = self._client.replace(self._schema.type, external_id, attributes)
        return {**attributes, **payload.attributes}

    def delete(self, external_id: str) -> None:
        self._client.remove(self._schema.type, external_id)

    def close(self) -> None:
        self._client.close()


def build_http_registry(
    config: ResourceApiConfig,
    *,
    client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
) -> ProviderRegistry:
    client = ResourceApiClient(config=config, client_factory=client_factory)
    registry = ProviderRegistry()
    for resource_type, schema in BUILTIN_SCHEMAS.items():
        registry.register(resource_type, HttpResourceProvider(client, schema))
    return registry
