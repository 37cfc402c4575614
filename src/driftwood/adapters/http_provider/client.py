"""Client for a generic REST resource API.

Routes are ``POST /{type}`` to create and ``GET|PUT|DELETE /{type}/{id}`` for an
existing resource. Every method is a sync facade so that it can run inside
executor worker threads; the requests themselves run on one background event
loop owning a single ``ResilientClient``, which keeps the rate limit shared.
"""

from __future__ import annotations

import asyncio
import threading
from logging import getLogger
from typing import TYPE_CHECKING, Final, TypeVar

import httpx
from pydantic import ValidationError

from driftwood.adapters.http_resilience import ResilientClient
from driftwood.domain.errors import ProviderError, ProviderErrorKind

from .schema import AttributesRequest, ErrorPayload, ResourcePayload

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Mapping

    from driftwood.config.http_resilience import ResilienceConfig
    from driftwood.config.resource_api import ResourceApiConfig

log = getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES: Final[frozenset[int]] = frozenset({408, 425, 429})


def classify_status(status_code: int) -> ProviderErrorKind:
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return ProviderErrorKind.TRANSIENT
    return ProviderErrorKind.PERMANENT


class ResourceApiClient:
    """Low-level HTTP client for the resource API."""

    def __init__(
        self,
        *,
        config: ResourceApiConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient
        self._guard = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._client: ResilientClient | None = None

    def __enter__(self) -> ResourceApiClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP session and stop the background loop; safe to call twice."""

        with self._guard:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or thread is None:
            return
        asyncio.run_coroutine_threadsafe(self._aclose(), loop).result()
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()

    def fetch(self, resource_type: str, external_id: str) -> ResourcePayload | None:
        return self._run(self._fetch_async(resource_type, external_id))

    def create(self, resource_type: str, attributes: Mapping[str, object]) -> ResourcePayload:
        return self._run(self._create_async(resource_type, attributes))

    def replace(
        self, resource_type: str, external_id: str, attributes: Mapping[str, object]
    ) -> ResourcePayload:
        return self._run(self._replace_async(resource_type, external_id, attributes))

    def remove(self, resource_type: str, external_id: str) -> None:
        self._run(self._remove_async(resource_type, external_id))

    def _run(self, coroutine: Coroutine[object, object, T]) -> T:
        return asyncio.run_coroutine_threadsafe(coroutine, self._event_loop()).result()

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        with self._guard:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever, name=f"{self._resilience.name}-loop", daemon=True
                )
                thread.start()
                self._loop, self._thread = loop, thread
            return self._loop

    async def _session(self) -> ResilientClient:
        if self._client is None:
            self._client = self._client_factory(self._resilience)
        return self._client

    async def _aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _fetch_async(self, resource_type: str, external_id: str) -> ResourcePayload | None:
        path = f"{resource_type}/{external_id}"
        client = await self._session()
        response = await self._perform(client, "GET", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            log.info("%s %s is gone", resource_type, external_id)
            return None
        _raise_for_status(response, f"read {path}")
        return _parse_resource(response, f"read {path}")

    async def _create_async(
        self, resource_type: str, attributes: Mapping[str, object]
    ) -> ResourcePayload:
        body = AttributesRequest(attributes=dict(attributes)).model_dump(mode="json")
        client = await self._session()
        response = await self._perform(client, "POST", resource_type, json=body)
        _raise_for_status(response, f"create {resource_type}")
        return _parse_resource(response, f"create {resource_type}")

    async def _replace_async(
        self, resource_type: str, external_id: str, attributes: Mapping[str, object]
    ) -> ResourcePayload:
        path = f"{resource_type}/{external_id}"
        body = AttributesRequest(attributes=dict(attributes)).model_dump(mode="json")
        client = await self._session()
        response = await self._perform(client, "PUT", path, json=body)
        _raise_for_status(response, f"update {path}")
        return _parse_resource(response, f"update {path}")

    async def _remove_async(self, resource_type: str, external_id: str) -> None:
        path = f"{resource_type}/{external_id}"
        client = await self._session()
        response = await self._perform(client, "DELETE", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            log.info("%s was already deleted", path)
            return
        _raise_for_status(response, f"delete {path}")

    async def _perform(
        self,
        client: ResilientClient,
        method: str,
        path: str,
        *,
        json: object = None,
    ) -> httpx.Response:
        if self._resilience.base_url is None:
            raise ProviderError("Missing resource API base_url in resilience configuration")
        try:
            return await client.request(method, path, json=json)
        except httpx.TransportError as exc:
            raise ProviderError(
                f"{method} {path} failed: {exc}", kind=ProviderErrorKind.TRANSIENT
            ) from exc


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.is_success:
        return
    detail = _error_text(response)
    kind = classify_status(response.status_code)
    message = f"{operation} returned HTTP {response.status_code}"
    if detail:
        message = f"{message}: {detail}"
    raise ProviderError(message, kind=kind)


def _error_text(response: httpx.Response) -> str | None:
    try:
        return ErrorPayload.model_validate(response.json()).text
    except (ValueError, ValidationError):
        return response.text.strip() or None


def _parse_resource(response: httpx.Response, operation: str) -> ResourcePayload:
    try:
        return ResourcePayload.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise ProviderError(f"{operation} returned an unexpected payload: {exc}") from exc
