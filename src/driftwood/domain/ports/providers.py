"""Provider interface: the boundary to remote systems."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from driftwood.domain.errors import ProviderNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from driftwood.domain.catalog import ResourceSchema


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """Outcome of a successful create call."""

    external_id: str
    outputs: Mapping[str, object] = field(default_factory=dict)


@runtime_checkable
class ResourceProvider(Protocol):
    """Read/Create/Update/Delete capability for one resource type.

    Implementations raise ``ProviderError`` on failure and mark it transient when
    retrying the same call may succeed.
    """

    @property
    def schema(self) -> ResourceSchema: ...

    def read(self, external_id: str) -> Mapping[str, object] | None: ...

    def create(self, attributes: Mapping[str, object]) -> ProviderResult: ...

    def update(
        self, external_id: str, attributes: Mapping[str, object]
    ) -> Mapping[str, object]: ...

    def delete(self, external_id: str) -> None: ...


class ProviderRegistry:
    """Maps resource types to their providers."""

    def __init__(self, providers: Mapping[str, ResourceProvider] | None = None) -> None:
        self._providers: dict[str, ResourceProvider] = dict(providers or {})

    def register(self, resource_type: str, provider: ResourceProvider) -> None:
        self._providers[str(resource_type)] = provider

    def get(self, resource_type: str) -> ResourceProvider:
        try:
            return self._providers[resource_type]
        except KeyError:
            raise ProviderNotFoundError(resource_type) from None

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def close(self) -> None:
        """Release what registered providers hold open, such as HTTP sessions."""

        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if callable(close):
                close()
