"""Simulated remote system backing the built-in resource types.

``InMemoryCloud`` keeps resources in a dict, records every call in a journal
and can be told to fail specific operations. It is the reference provider for
tests and for dry local runs of a document.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final, Literal, TypeAlias

from driftwood.domain.catalog import BUILTIN_SCHEMAS
from driftwood.domain.errors import ProviderError, ProviderErrorKind
from driftwood.domain.model import ResourceType
from driftwood.domain.ports import ProviderRegistry, ProviderResult

if TYPE_CHECKING:
    from driftwood.domain.catalog import ResourceSchema

log = getLogger(__name__)

Operation: TypeAlias = Literal["read", "create", "update", "delete"]
ComputeOutputs: TypeAlias = Callable[[str, Mapping[str, object]], dict[str, object]]


@dataclass(frozen=True, slots=True)
class CloudCall:
    operation: Operation
    resource_type: str
    external_id: str | None


@dataclass(slots=True)
class _FailureRule:
    resource_type: str
    operation: Operation
    kind: ProviderErrorKind
    remaining: int | None
    when: Callable[[Mapping[str, object]], bool] | None = None

    def matches(
        self, resource_type: str, operation: Operation, attributes: Mapping[str, object]
    ) -> bool:
        if self.resource_type != resource_type or self.operation != operation:
            return False
        if self.remaining is not None and self.remaining <= 0:
            return False
        return self.when is None or self.when(attributes)


@dataclass(slots=True)
class _StoredResource:
    resource_type: str
    attributes: dict[str, object] = field(default_factory=dict)


class InMemoryCloud:
    def __init__(self) -> None:
        self._resources: dict[str, _StoredResource] = {}
        self._counters: dict[str, itertools.count[int]] = {}
        self._failures: list[_FailureRule] = []
        self._lock = threading.Lock()
        self.journal: list[CloudCall] = []

    # -- failure injection and out-of-band changes ---------------------------

    def fail(
        self,
        resource_type: str,
        operation: Operation,
        *,
        kind: ProviderErrorKind = ProviderErrorKind.PERMANENT,
        times: int | None = None,
        when: Callable[[Mapping[str, object]], bool] | None = None,
    ) -> None:
        """Make matching calls fail; ``times=None`` fails them indefinitely."""

        with self._lock:
            self._failures.append(
                _FailureRule(str(resource_type), operation, kind, times, when)
            )

    def drift(self, external_id: str, **attributes: object) -> None:
        with self._lock:
            self._resources[external_id].attributes.update(attributes)

    def remove(self, external_id: str) -> None:
        with self._lock:
            self._resources.pop(external_id, None)

    def resources(self, resource_type: str | None = None) -> dict[str, dict[str, object]]:
        with self._lock:
            return {
                external_id: dict(resource.attributes)
                for external_id, resource in self._resources.items()
                if resource_type is None or resource.resource_type == resource_type
            }

    def calls(self, operation: Operation | None = None) -> list[CloudCall]:
        with self._lock:
            return [
                call for call in self.journal if operation is None or call.operation == operation
            ]

    # -- operations used by providers -----------------------------------------

    def read(self, resource_type: str, external_id: str) -> dict[str, object] | None:
        with self._lock:
            self._enter("read", resource_type, external_id, {})
            resource = self._resources.get(external_id)
            return dict(resource.attributes) if resource else None

    def create(
        self,
        resource_type: str,
        attributes: Mapping[str, object],
        *,
        compute: ComputeOutputs | None = None,
    ) -> str:
        """Store a new resource; ``compute`` adds provider-assigned attributes to it."""

        with self._lock:
            self._enter("create", resource_type, None, attributes)
            counter = self._counters.setdefault(resource_type, itertools.count(1))
            external_id = f"{resource_type}-{next(counter):04d}"
            stored = dict(attributes)
            if compute is not None:
                stored.update(compute(external_id, attributes))
            self._resources[external_id] = _StoredResource(resource_type, stored)
            self.journal[-1] = CloudCall("create", resource_type, external_id)
            return external_id

    def update(
        self, resource_type: str, external_id: str, attributes: Mapping[str, object]
    ) -> None:
        with self._lock:
            self._enter("update", resource_type, external_id, attributes)
            if external_id not in self._resources:
                raise ProviderError(f"{resource_type} {external_id} does not exist")
            self._resources[external_id].attributes = dict(attributes)

    def delete(self, resource_type: str, external_id: str) -> None:
        with self._lock:
            self._enter("delete", resource_type, external_id, {})
            self._resources.pop(external_id, None)

    def _enter(
        self,
        operation: Operation,
        resource_type: str,
        external_id: str | None,
        attributes: Mapping[str, object],
    ) -> None:
        self.journal.append(CloudCall(operation, resource_type, external_id))
        for rule in self._failures:
            if rule.matches(resource_type, operation, attributes):
                if rule.remaining is not None:
                    rule.remaining -= 1
                raise ProviderError(
                    f"simulated {rule.kind} failure on {operation} {resource_type}",
                    kind=rule.kind,
                )


class InMemoryResourceProvider:
    """Provider for one resource type on top of ``InMemoryCloud``."""

    def __init__(
        self,
        cloud: InMemoryCloud,
        schema: ResourceSchema,
        compute_outputs: ComputeOutputs | None = None,
    ) -> None:
        self._cloud = cloud
        self._schema = schema
        self._compute_outputs = compute_outputs

    @property
    def schema(self) -> ResourceSchema:
        return self._schema

    def read(self, external_id: str) -> Mapping[str, object] | None:
        return self._cloud.read(self._schema.type, external_id)

    def create(self, attributes: Mapping[str, object]) -> ProviderResult:
        external_id = self._cloud.create(
            self._schema.type, attributes, compute=self._compute_outputs
        )
        outputs = self._with_computed(external_id, attributes)
        return ProviderResult(external_id=external_id, outputs=outputs)

    def update(self, external_id: str, attributes: Mapping[str, object]) -> Mapping[str, object]:
        outputs = self._with_computed(external_id, attributes)
        self._cloud.update(self._schema.type, external_id, outputs)
        return outputs

    def delete(self, external_id: str) -> None:
        self._cloud.delete(self._schema.type, external_id)

    def _with_computed(
        self, external_id: str, attributes: Mapping[str, object]
    ) -> dict[str, object]:
        outputs = dict(attributes)
        if self._compute_outputs is not None:
            outputs.update(self._compute_outputs(external_id, attributes))
        return outputs


def _bucket_outputs(external_id: str, attributes: Mapping[str, object]) -> dict[str, object]:
    del external_id
    name = attributes["bucket_name"]
    region = attributes.get("region", "local")
    return {
        "arn": f"arn:memory:storage:::{name}",
        "regional_domain_name": f"{name}.storage.{region}.memory.test",
    }


def _certificate_outputs(external_id: str, attributes: Mapping[str, object]) -> dict[str, object]:
    del attributes
    return {"arn": f"arn:memory:certificate:::{external_id}", "status": "ISSUED"}


def _distribution_outputs(external_id: str, attributes: Mapping[str, object]) -> dict[str, object]:
    del attributes
    return {
        "distribution_id": external_id.upper(),
        "domain_name": f"{external_id}.cdn.memory.test",
        "hosted_zone_id": "ZMEMORYCDN",
    }


def _dns_record_outputs(external_id: str, attributes: Mapping[str, object]) -> dict[str, object]:
    del external_id
    return {"fqdn": f"{attributes['record_name']}.{attributes['zone']}".strip(".")}


COMPUTED_OUTPUTS: Final[dict[ResourceType, ComputeOutputs]] = {
    ResourceType.STORAGE_BUCKET: _bucket_outputs,
    ResourceType.CERTIFICATE: _certificate_outputs,
    ResourceType.CDN_DISTRIBUTION: _distribution_outputs,
    ResourceType.DNS_RECORD: _dns_record_outputs,
}


def build_memory_registry(cloud: InMemoryCloud) -> ProviderRegistry:
    registry = ProviderRegistry()
    for resource_type, schema in BUILTIN_SCHEMAS.items():
        registry.register(
            resource_type,
            InMemoryResourceProvider(cloud, schema, COMPUTED_OUTPUTS.get(resource_type)),
        )
    log.debug("Registered in-memory providers: %s", ", ".join(registry))
    return registry
