"""Application orchestration entry points."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from driftwood.adapters.document import load_document
from driftwood.adapters.http_provider import build_http_registry
from driftwood.adapters.memory import InMemoryCloud, InMemoryStateStore, build_memory_registry
from driftwood.adapters.sqlalchemy import SqlAlchemyStateStore
from driftwood.config import (
    StateStoreConfig,
    get_execution_config,
    get_resource_api_config,
    get_state_store_config,
)
from driftwood.domain.model import ResourceAddress
from driftwood.domain.reconciliation import (
    Executor,
    Planner,
    ReconciliationEngine,
    build_graph,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from driftwood.config import ExecutionConfig
    from driftwood.domain.model import Document, StateEntry
    from driftwood.domain.ports import ProviderRegistry, StateStore
    from driftwood.domain.reconciliation import ApplyResult, PlanResult

log = getLogger(__name__)


class ProviderKind(StrEnum):
    MEMORY = "memory"
    HTTP = "http"


@dataclass(slots=True)
class ReconcilerSession:
    """An engine bound to one state store and provider registry."""

    engine: ReconciliationEngine
    store: StateStore
    providers: ProviderRegistry
    cloud: InMemoryCloud | None = field(default=None, repr=False)

    def plan(
        self, document: Document, *, refresh: bool = False, destroy: bool = False
    ) -> PlanResult:
        return self.engine.plan(document, refresh=refresh, destroy=destroy)

    def apply(
        self, document: Document, *, refresh: bool = False, destroy: bool = False
    ) -> ApplyResult:
        log.info("Starting apply: refresh=%s, destroy=%s", refresh, destroy)
        return self.engine.apply(document, refresh=refresh, destroy=destroy)

    def outputs(self, document: Document) -> dict[str, object]:
        return self.engine.outputs(self.engine.build(document))

    def state_entries(self) -> tuple[StateEntry, ...]:
        return self.store.entries()

    def state_entry(self, address: str | ResourceAddress) -> StateEntry | None:
        if isinstance(address, str):
            address = ResourceAddress.parse(address)
        return self.store.get(address)

    def cancel(self) -> None:
        self.engine.cancel()


def build_registry(kind: ProviderKind, *, cloud: InMemoryCloud | None = None) -> ProviderRegistry:
    match kind:
        case ProviderKind.MEMORY:
            return build_memory_registry(cloud or InMemoryCloud())
        case ProviderKind.HTTP:
            return build_http_registry(get_resource_api_config())


def open_state_store(uri: str | None = None) -> SqlAlchemyStateStore:
    config = StateStoreConfig(uri=uri) if uri else get_state_store_config()
    log.debug("Opening %s state store", config.backend)
    return SqlAlchemyStateStore.from_uri(config.uri)


def build_engine(
    *,
    providers: ProviderRegistry,
    store: StateStore,
    execution: ExecutionConfig | None = None,
    concurrency: int | None = None,
) -> ReconciliationEngine:
    config = execution or get_execution_config()
    executor = Executor(
        providers=providers,
        store=store,
        concurrency=concurrency or config.concurrency,
        retry=config.retry,
    )
    return ReconciliationEngine(
        build=build_graph,
        planner=Planner(providers),
        executor=executor,
        store=store,
    )


@contextmanager
def open_session(
    *,
    provider: ProviderKind = ProviderKind.MEMORY,
    state_uri: str | None = None,
    concurrency: int | None = None,
    store: StateStore | None = None,
    providers: ProviderRegistry | None = None,
) -> Iterator[ReconcilerSession]:
    """Open a session against the configured state store and providers.

    The in-memory provider simulates a fresh remote system on every run, so it
    is paired with an in-memory state store unless a store is passed in.
    """

    cloud: InMemoryCloud | None = None
    owns_providers = providers is None
    if providers is None:
        if provider is ProviderKind.MEMORY:
            cloud = InMemoryCloud()
        providers = build_registry(provider, cloud=cloud)

    owned: SqlAlchemyStateStore | None = None
    try:
        if store is None:
            if provider is ProviderKind.MEMORY and state_uri is None:
                store = InMemoryStateStore()
            else:
                owned = open_state_store(state_uri)
                store = owned

        engine = build_engine(providers=providers, store=store, concurrency=concurrency)
        yield ReconcilerSession(engine=engine, store=store, providers=providers, cloud=cloud)
    finally:
        if owned is not None:
            owned.dispose()
        if owns_providers:
            providers.close()


def read_document(path: Path) -> Document:
    log.info("Loading document %s", path)
    return load_document(path)
