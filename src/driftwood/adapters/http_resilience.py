from __future__ import annotations

from logging import getLogger
from time import perf_counter
from typing import TYPE_CHECKING, TypedDict

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import HeaderTypes, TimeoutTypes

    from driftwood.config.http_resilience import ResilienceConfig, ResponseHook

log = getLogger(__name__)


class AsyncClientOptions(TypedDict, total=False):
    base_url: str
    timeout: TimeoutTypes
    headers: HeaderTypes
    event_hooks: dict[str, list[ResponseHook]]
    transport: httpx.AsyncBaseTransport


class ResilientClient:
    """Rate-limited ``httpx.AsyncClient`` with transport-level retries.

    ``transport`` replaces the network layer underneath the retry transport,
    which is how tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )

        options: AsyncClientOptions = {
            "timeout": config.timeout_seconds,
            "transport": RetryTransport(transport=transport, retry=config.retry.build()),
        }
        if config.base_url is not None:
            options["base_url"] = config.base_url
        if config.default_headers:
            options["headers"] = dict(config.default_headers)
        if config.response_hooks:
            options["event_hooks"] = {"response": list(config.response_hooks)}

        self._client = httpx.AsyncClient(**options)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, path: str, *, json: object = None) -> httpx.Response:
        if self._limiter is None:
            return await self._timed(method, path, json)
        async with self._limiter:
            return await self._timed(method, path, json)

    async def _timed(self, method: str, path: str, json: object) -> httpx.Response:
        started = perf_counter()
        if json is None:
            response = await self._client.request(method, path)
        else:
            response = await self._client.request(method, path, json=json)
        log.debug(
            "%s %s %s -> %s in %.3fs",
            self.config.name,
            method,
            path,
            response.status_code,
            perf_counter() - started,
        )
        return response
