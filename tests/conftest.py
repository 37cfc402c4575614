from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from driftwood.adapters.memory import InMemoryCloud, InMemoryStateStore, build_memory_registry
from driftwood.adapters.sqlalchemy import SqlAlchemyStateStore
from driftwood.domain.reconciliation import (
    Executor,
    Planner,
    ReconciliationEngine,
    RetryPolicy,
    build_graph,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from driftwood.domain.ports import ProviderRegistry

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.fixture
def site_document_path() -> Path:
    return DATA_DIR / "site.toml"


@pytest.fixture
def cloud() -> InMemoryCloud:
    return InMemoryCloud()


@pytest.fixture
def providers(cloud: InMemoryCloud) -> ProviderRegistry:
    return build_memory_registry(cloud)


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[SqlAlchemyStateStore]:
    store = SqlAlchemyStateStore.from_uri(f"sqlite+pysqlite:///{tmp_path / 'state.db'}")
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def executor(
    providers: ProviderRegistry, store: InMemoryStateStore, sleeps: list[float]
) -> Executor:
    return Executor(
        providers=providers,
        store=store,
        concurrency=4,
        retry=RetryPolicy(attempts=3, backoff_factor=0.01, backoff_jitter=0.0),
        sleep=sleeps.append,
    )


@pytest.fixture
def planner(providers: ProviderRegistry) -> Planner:
    return Planner(providers)


@pytest.fixture
def engine(
    planner: Planner, executor: Executor, store: InMemoryStateStore
) -> ReconciliationEngine:
    return ReconciliationEngine(build=build_graph, planner=planner, executor=executor, store=store)
