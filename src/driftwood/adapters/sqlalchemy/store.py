"""State store backed by a SQLAlchemy engine.

Every entry carries a ``version`` column. Writes are conditional on the version
the caller last saw, so a concurrent writer (another process applying the same
document, or an operator editing state) is detected instead of overwritten.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import nullcontext
from dataclasses import replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import create_engine, delete, insert, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from driftwood.domain.errors import StateConflictError
from driftwood.domain.model import ResourceAddress, StateEntry

from .mappings import (
    STATE_FORMAT_VERSION,
    create_all_tables,
    resource_state_table,
    state_meta_table,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from contextlib import AbstractContextManager

    from sqlalchemy.engine import Engine, Row

log = getLogger(__name__)

FORMAT_VERSION_KEY = "format_version"


def create_state_engine(uri: str) -> Engine:
    """Create an engine suitable for use from several worker threads."""

    url = make_url(uri)
    if url.get_backend_name() == "sqlite":
        if url.database in {None, "", ":memory:"}:
            return create_engine(
                uri,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(uri, future=True, connect_args={"check_same_thread": False})
    return create_engine(uri, future=True)


def startup(engine: Engine) -> None:
    """Create tables and verify the stored state format."""

    create_all_tables(engine)
    with engine.begin() as connection:
        stored = connection.execute(
            select(state_meta_table.c.value).where(state_meta_table.c.key == FORMAT_VERSION_KEY)
        ).scalar_one_or_none()
        if stored is None:
            connection.execute(
                insert(state_meta_table).values(
                    key=FORMAT_VERSION_KEY, value=str(STATE_FORMAT_VERSION)
                )
            )
        elif stored != str(STATE_FORMAT_VERSION):
            raise StateConflictError(
                f"State format version {stored} is not supported "
                f"(expected {STATE_FORMAT_VERSION})"
            )


class SqlAlchemyStateStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._guard = threading.Lock()
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        # SQLite allows one writer at a time; serialise instead of waiting on busy timeouts.
        self._serial = threading.RLock() if engine.dialect.name == "sqlite" else None

    @classmethod
    def from_uri(cls, uri: str) -> SqlAlchemyStateStore:
        engine = create_state_engine(uri)
        startup(engine)
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def get(self, address: ResourceAddress) -> StateEntry | None:
        stmt = select(resource_state_table).where(resource_state_table.c.address == str(address))
        with self._serialized(), self._engine.connect() as connection:
            try:
                row = connection.execute(stmt).one_or_none()
                return None if row is None else _to_entry(row)
            except (ValueError, TypeError) as exc:
                raise StateConflictError(f"Stored state for {address} is corrupt: {exc}") from exc

    def entries(self) -> tuple[StateEntry, ...]:
        stmt = select(resource_state_table).order_by(resource_state_table.c.address)
        with self._serialized(), self._engine.connect() as connection:
            try:
                return tuple(_to_entry(row) for row in connection.execute(stmt))
            except (ValueError, TypeError) as exc:
                raise StateConflictError(f"Stored state is corrupt: {exc}") from exc

    def put(self, entry: StateEntry, *, expected_version: int | None) -> StateEntry:
        key = str(entry.address)
        values = _to_values(entry)
        with self._lock_for(key), self._serialized():
            try:
                with self._engine.begin() as connection:
                    if expected_version is None:
                        connection.execute(insert(resource_state_table).values(**values, version=1))
                        version = 1
                    else:
                        version = expected_version + 1
                        result = connection.execute(
                            update(resource_state_table)
                            .where(resource_state_table.c.address == key)
                            .where(resource_state_table.c.version == expected_version)
                            .values(**values, version=version)
                        )
                        if result.rowcount != 1:
                            raise StateConflictError(
                                f"State for {key} changed concurrently: "
                                f"expected version {expected_version}"
                            )
            except IntegrityError as exc:
                raise StateConflictError(f"State for {key} already exists") from exc
        log.debug("Stored state for %s at version %s", key, version)
        return replace(entry, version=version)

    def delete(self, address: ResourceAddress, *, expected_version: int) -> None:
        key = str(address)
        with self._lock_for(key), self._serialized(), self._engine.begin() as connection:
            result = connection.execute(
                delete(resource_state_table)
                .where(resource_state_table.c.address == key)
                .where(resource_state_table.c.version == expected_version)
            )
            if result.rowcount != 1:
                raise StateConflictError(
                    f"State for {key} changed concurrently: expected version {expected_version}"
                )
        log.debug("Removed state for %s", key)

    def dispose(self) -> None:
        self._engine.dispose()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks[key]

    def _serialized(self) -> AbstractContextManager[object]:
        if self._serial is None:
            return nullcontext()
        return self._serial


def _to_values(entry: StateEntry) -> dict[str, object]:
    return {
        "address": str(entry.address),
        "resource_type": entry.address.type,
        "name": entry.address.name,
        "external_id": entry.external_id,
        "attributes": dict(entry.attributes),
        "outputs": dict(entry.outputs),
        "dependencies": sorted(str(dependency) for dependency in entry.dependencies),
        "updated_at": datetime.now(UTC),
    }


def _to_entry(row: Row[Any]) -> StateEntry:
    attributes = row.attributes
    outputs = row.outputs
    dependencies = row.dependencies
    if not isinstance(attributes, dict) or not isinstance(outputs, dict):
        raise TypeError(f"attributes and outputs of {row.address} must be JSON objects")
    if not isinstance(dependencies, list):
        raise TypeError(f"dependencies of {row.address} must be a JSON list")
    return StateEntry(
        address=ResourceAddress(row.resource_type, row.name),
        external_id=row.external_id,
        attributes=cast("Mapping[str, object]", attributes),
        outputs=cast("Mapping[str, object]", outputs),
        dependencies=frozenset(ResourceAddress.parse(str(item)) for item in dependencies),
        version=row.version,
    )
