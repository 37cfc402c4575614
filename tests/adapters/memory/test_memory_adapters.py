from __future__ import annotations

import pytest

from driftwood.adapters.memory import InMemoryCloud, InMemoryStateStore, build_memory_registry
from driftwood.domain.errors import ProviderError, ProviderErrorKind, StateConflictError
from driftwood.domain.model import ResourceAddress, ResourceType, StateEntry

BUCKET = ResourceAddress("storage_bucket", "site")


def test_registry_covers_builtin_types(cloud: InMemoryCloud) -> None:
    registry = build_memory_registry(cloud)

    assert sorted(registry) == sorted(ResourceType)


def test_create_reports_computed_outputs(cloud: InMemoryCloud) -> None:
    provider = build_memory_registry(cloud).get("dns_record")

    result = provider.create(
        {"zone": "example.test", "record_name": "www", "record_type": "CNAME", "values": ["x"]}
    )

    assert result.external_id == "dns_record-0001"
    assert result.outputs["fqdn"] == "www.example.test"
    remote = provider.read(result.external_id)
    assert remote is not None
    assert remote["fqdn"] == "www.example.test"


def test_create_stores_computed_outputs_atomically(
    cloud: InMemoryCloud, monkeypatch: pytest.MonkeyPatch
) -> None:
    def no_second_write(external_id: str, **attributes: object) -> None:
        raise AssertionError(f"{external_id} was written twice")

    monkeypatch.setattr(cloud, "drift", no_second_write)
    provider = build_memory_registry(cloud).get("storage_bucket")

    result = provider.create({"bucket_name": "logs", "region": "eu-central-1"})

    stored = cloud.resources("storage_bucket")[result.external_id]
    assert stored["arn"] == "arn:memory:storage:::logs"
    assert stored == dict(result.outputs)


def test_failure_injection_counts_down(cloud: InMemoryCloud) -> None:
    cloud.fail("storage_bucket", "create", kind=ProviderErrorKind.TRANSIENT, times=1)

    with pytest.raises(ProviderError) as excinfo:
        cloud.create("storage_bucket", {"bucket_name": "a"})
    assert excinfo.value.transient

    assert cloud.create("storage_bucket", {"bucket_name": "a"}) == "storage_bucket-0001"
    assert [call.operation for call in cloud.calls()] == ["create", "create"]


def test_delete_is_idempotent_and_update_of_missing_fails(cloud: InMemoryCloud) -> None:
    external_id = cloud.create("certificate", {"domain_name": "example.test"})
    cloud.delete("certificate", external_id)
    cloud.delete("certificate", external_id)

    assert cloud.read("certificate", external_id) is None
    with pytest.raises(ProviderError) as excinfo:
        cloud.update("certificate", external_id, {"domain_name": "example.test"})
    assert not excinfo.value.transient


def test_memory_store_versions() -> None:
    store = InMemoryStateStore()
    entry = StateEntry(address=BUCKET, external_id="storage_bucket-0001")

    stored = store.put(entry, expected_version=None)
    again = store.put(stored, expected_version=1)

    assert (stored.version, again.version) == (1, 2)
    with pytest.raises(StateConflictError):
        store.put(entry, expected_version=None)
    with pytest.raises(StateConflictError):
        store.delete(BUCKET, expected_version=1)
    store.delete(BUCKET, expected_version=2)
    assert store.get(BUCKET) is None


def test_seeded_memory_store_starts_at_version_one() -> None:
    store = InMemoryStateStore([StateEntry(address=BUCKET, external_id="storage_bucket-0001")])

    entry = store.get(BUCKET)

    assert entry is not None
    assert entry.version == 1
