"""Logging setup for the command line."""

from __future__ import annotations

import logging
import os
from typing import Final

from .errors import InvalidConfigurationError

LOG_LEVEL_ENV: Final[str] = "DRIFTWOOD_LOG_LEVEL"
NOISY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore")


def resolve_log_level(default: int = logging.INFO) -> int:
    """Read ``DRIFTWOOD_LOG_LEVEL`` as a level name (``DEBUG``) or number (``10``)."""

    raw = os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return default
    value = raw.strip()
    if value.isdigit():
        return int(value)
    level = logging.getLevelNamesMapping().get(value.upper())
    if level is None:
        raise InvalidConfigurationError(
            LOG_LEVEL_ENV, f"must be a logging level name, got {raw!r}"
        )
    return level


def configure_logging(*, level: int | None = None, force: bool = False) -> None:
    """Initialise the root logger with a terse format suitable for CLI output.

    Without ``level`` the environment decides, falling back to INFO. HTTP client
    loggers stay at WARNING unless the root is at DEBUG.
    """

    effective = resolve_log_level() if level is None else level
    logging.basicConfig(
        level=effective,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    if effective > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
