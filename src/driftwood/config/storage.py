"""Where reconciled state lives."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from .errors import InvalidConfigurationError

APP_DIR_NAME: Final[str] = "driftwood"
DEFAULT_STATE_FILENAME: Final[str] = "state.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Local data directory; one sqlite file per state name."""

    data_dir: Path
    state_filename: str = DEFAULT_STATE_FILENAME

    def ensure_data_dir(self) -> Path:
        data_dir = self.data_dir.expanduser().resolve()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def state_path(self) -> Path:
        return self.ensure_data_dir() / self.state_filename


@dataclass(frozen=True, slots=True)
class StateStoreConfig:
    uri: str

    @property
    def url(self) -> URL:
        return make_url(self.uri)

    @property
    def backend(self) -> str:
        return self.url.get_backend_name()


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("DRIFTWOOD_DATA_DIR")
    data_dir = Path(env_dir) if env_dir else _default_data_dir()
    filename = os.getenv("DRIFTWOOD_STATE_FILE", "").strip() or DEFAULT_STATE_FILENAME
    if Path(filename).name != filename:
        raise InvalidConfigurationError(
            "DRIFTWOOD_STATE_FILE", f"must be a bare file name, got {filename!r}"
        )
    return StorageConfig(data_dir=data_dir, state_filename=filename)


def get_state_store_config(*, storage: StorageConfig | None = None) -> StateStoreConfig:
    """``DRIFTWOOD_STATE_URI`` wins; otherwise a sqlite file in the data directory."""

    env_uri = os.getenv("DRIFTWOOD_STATE_URI", "").strip()
    if env_uri:
        try:
            make_url(env_uri)
        except ArgumentError as exc:
            raise InvalidConfigurationError(
                "DRIFTWOOD_STATE_URI", f"is not a database URL: {env_uri!r}"
            ) from exc
        return StateStoreConfig(uri=env_uri)
    storage_config = storage or get_storage_config()
    return StateStoreConfig(uri=f"sqlite+pysqlite:///{storage_config.state_path()}")
