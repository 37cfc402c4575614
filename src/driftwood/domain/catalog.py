"""Attribute metadata for the built-in resource types.

Whether changing an attribute updates a resource in place or replaces it is
decided by the provider, not by the engine. Each provider exposes a
``ResourceSchema`` and the planner consults it when classifying a diff.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from driftwood.domain.errors import SchemaValidationError
from driftwood.domain.model import ResourceType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from driftwood.domain.model import ResourceAddress


@dataclass(frozen=True, slots=True)
class ResourceSchema:
    type: str
    required: frozenset[str] = frozenset()
    force_replace: frozenset[str] = frozenset()
    computed: frozenset[str] = frozenset()

    def requires_replacement(self, attribute: str) -> bool:
        return attribute in self.force_replace

    def validate(self, address: ResourceAddress, attributes: Mapping[str, object]) -> None:
        missing = sorted(self.required - attributes.keys())
        if missing:
            raise SchemaValidationError(
                f"{address} is missing required attributes: {', '.join(missing)}"
            )
        readonly = sorted(self.computed & attributes.keys())
        if readonly:
            raise SchemaValidationError(
                f"{address} sets computed attributes: {', '.join(readonly)}"
            )


BUILTIN_SCHEMAS: Final[dict[ResourceType, ResourceSchema]] = {
    ResourceType.STORAGE_BUCKET: ResourceSchema(
        type=ResourceType.STORAGE_BUCKET,
        required=frozenset({"bucket_name"}),
        force_replace=frozenset({"bucket_name", "region"}),
        computed=frozenset({"arn", "regional_domain_name"}),
    ),
    ResourceType.ACCESS_POLICY: ResourceSchema(
        type=ResourceType.ACCESS_POLICY,
        required=frozenset({"bucket", "statements"}),
        force_replace=frozenset({"bucket"}),
    ),
    # Certificates cannot be re-keyed in place: any change to the names they
    # cover or to the validation method issues a new certificate.
    ResourceType.CERTIFICATE: ResourceSchema(
        type=ResourceType.CERTIFICATE,
        required=frozenset({"domain_name", "validation_method"}),
        force_replace=frozenset(
            {"domain_name", "subject_alternative_names", "validation_method"}
        ),
        computed=frozenset({"arn", "status"}),
    ),
    ResourceType.CDN_DISTRIBUTION: ResourceSchema(
        type=ResourceType.CDN_DISTRIBUTION,
        required=frozenset({"origin_domain_name"}),
        computed=frozenset({"distribution_id", "domain_name", "hosted_zone_id"}),
    ),
    ResourceType.DNS_RECORD: ResourceSchema(
        type=ResourceType.DNS_RECORD,
        required=frozenset({"zone", "record_name", "record_type", "values"}),
        force_replace=frozenset({"zone", "record_name", "record_type"}),
        computed=frozenset({"fqdn"}),
    ),
}


def schema_for(resource_type: str) -> ResourceSchema:
    return BUILTIN_SCHEMAS[ResourceType(resource_type)]
