from __future__ import annotations

import pytest

from driftwood.domain.catalog import BUILTIN_SCHEMAS, schema_for
from driftwood.domain.errors import SchemaValidationError
from driftwood.domain.model import ResourceAddress, ResourceType


def test_every_builtin_type_has_a_schema() -> None:
    assert set(BUILTIN_SCHEMAS) == set(ResourceType)


def test_certificate_names_force_replacement() -> None:
    schema = schema_for("certificate")

    assert schema.requires_replacement("domain_name")
    assert schema.requires_replacement("subject_alternative_names")
    assert not schema.requires_replacement("tags")


def test_distribution_updates_in_place() -> None:
    schema = schema_for("cdn_distribution")

    assert not schema.requires_replacement("origin_domain_name")
    assert not schema.requires_replacement("aliases")


def test_validate_reports_all_missing_attributes() -> None:
    schema = schema_for("dns_record")

    with pytest.raises(SchemaValidationError) as excinfo:
        schema.validate(ResourceAddress("dns_record", "apex"), {"zone": "example.test"})

    assert "record_name, record_type, values" in str(excinfo.value)
