from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import update

from driftwood.adapters.sqlalchemy import (
    SqlAlchemyStateStore,
    create_state_engine,
    resource_state_table,
    startup,
    state_meta_table,
)
from driftwood.domain.errors import StateConflictError
from driftwood.domain.model import ResourceAddress, StateEntry

if TYPE_CHECKING:
    from pathlib import Path

BUCKET = ResourceAddress("storage_bucket", "site")
POLICY = ResourceAddress("access_policy", "site")


def _entry(address: ResourceAddress = BUCKET, **overrides: object) -> StateEntry:
    values: dict[str, object] = {
        "address": address,
        "external_id": f"{address.type}-0001",
        "attributes": {"bucket_name": "site", "tags": {"env": "prod"}},
        "outputs": {"bucket_name": "site", "arn": "arn:memory:storage:::site"},
    }
    values.update(overrides)
    return StateEntry(**values)  # type: ignore[arg-type]


def test_put_and_get_round_trip(sqlite_store: SqlAlchemyStateStore) -> None:
    stored = sqlite_store.put(
        _entry(POLICY, dependencies=frozenset({BUCKET})), expected_version=None
    )

    loaded = sqlite_store.get(POLICY)

    assert stored.version == 1
    assert loaded == stored
    assert loaded is not None
    assert loaded.attributes["tags"] == {"env": "prod"}
    assert loaded.dependencies == frozenset({BUCKET})


def test_missing_entry_is_none(sqlite_store: SqlAlchemyStateStore) -> None:
    assert sqlite_store.get(BUCKET) is None
    assert sqlite_store.entries() == ()


def test_versions_increase_on_conditional_update(sqlite_store: SqlAlchemyStateStore) -> None:
    first = sqlite_store.put(_entry(), expected_version=None)

    second = sqlite_store.put(_entry(external_id="storage_bucket-0002"), expected_version=1)

    assert (first.version, second.version) == (1, 2)
    loaded = sqlite_store.get(BUCKET)
    assert loaded is not None
    assert loaded.external_id == "storage_bucket-0002"


def test_stale_version_is_a_conflict(sqlite_store: SqlAlchemyStateStore) -> None:
    sqlite_store.put(_entry(), expected_version=None)
    sqlite_store.put(_entry(), expected_version=1)

    with pytest.raises(StateConflictError):
        sqlite_store.put(_entry(), expected_version=1)
    with pytest.raises(StateConflictError):
        sqlite_store.delete(BUCKET, expected_version=1)


def test_insert_over_existing_entry_is_a_conflict(sqlite_store: SqlAlchemyStateStore) -> None:
    sqlite_store.put(_entry(), expected_version=None)

    with pytest.raises(StateConflictError, match="already exists"):
        sqlite_store.put(_entry(), expected_version=None)


def test_delete_removes_entry(sqlite_store: SqlAlchemyStateStore) -> None:
    sqlite_store.put(_entry(), expected_version=None)

    sqlite_store.delete(BUCKET, expected_version=1)

    assert sqlite_store.get(BUCKET) is None


def test_entries_are_sorted_by_address(sqlite_store: SqlAlchemyStateStore) -> None:
    sqlite_store.put(_entry(BUCKET), expected_version=None)
    sqlite_store.put(_entry(POLICY), expected_version=None)

    assert [str(entry.address) for entry in sqlite_store.entries()] == [
        "access_policy.site",
        "storage_bucket.site",
    ]


def test_corrupt_row_is_reported_as_conflict(sqlite_store: SqlAlchemyStateStore) -> None:
    sqlite_store.put(_entry(), expected_version=None)
    with sqlite_store.engine.begin() as connection:
        connection.exec_driver_sql(
            "UPDATE resource_state SET outputs = '{not json' WHERE address = 'storage_bucket.site'"
        )

    with pytest.raises(StateConflictError, match="corrupt"):
        sqlite_store.get(BUCKET)
    with pytest.raises(StateConflictError, match="corrupt"):
        sqlite_store.entries()


def test_non_object_attributes_are_reported_as_conflict(
    sqlite_store: SqlAlchemyStateStore,
) -> None:
    sqlite_store.put(_entry(), expected_version=None)
    with sqlite_store.engine.begin() as connection:
        connection.execute(
            update(resource_state_table)
            .where(resource_state_table.c.address == str(BUCKET))
            .values(attributes=["not", "a", "mapping"])
        )

    with pytest.raises(StateConflictError):
        sqlite_store.get(BUCKET)


def test_state_persists_across_engines(tmp_path: Path) -> None:
    uri = f"sqlite+pysqlite:///{tmp_path / 'state.db'}"
    first = SqlAlchemyStateStore.from_uri(uri)
    first.put(_entry(), expected_version=None)
    first.dispose()

    second = SqlAlchemyStateStore.from_uri(uri)
    try:
        assert second.get(BUCKET) is not None
    finally:
        second.dispose()


def test_unsupported_format_version_is_rejected() -> None:
    engine = create_state_engine("sqlite+pysqlite:///:memory:")
    startup(engine)
    with engine.begin() as connection:
        connection.execute(
            update(state_meta_table)
            .where(state_meta_table.c.key == "format_version")
            .values(value="99")
        )

    with pytest.raises(StateConflictError, match="format version 99"):
        startup(engine)
    engine.dispose()
