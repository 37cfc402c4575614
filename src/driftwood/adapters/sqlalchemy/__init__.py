"""SQLAlchemy adapter package for persisted state."""

from __future__ import annotations

from .mappings import (
    STATE_FORMAT_VERSION,
    create_all_tables,
    metadata,
    resource_state_table,
    state_meta_table,
)
from .store import SqlAlchemyStateStore, create_state_engine, startup

__all__ = [
    "STATE_FORMAT_VERSION",
    "SqlAlchemyStateStore",
    "create_all_tables",
    "create_state_engine",
    "metadata",
    "resource_state_table",
    "startup",
    "state_meta_table",
]
