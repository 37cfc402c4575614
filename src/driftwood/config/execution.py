"""Executor defaults: concurrency and transient-failure retries."""

from __future__ import annotations

from dataclasses import dataclass, field

from driftwood.domain.reconciliation import RetryPolicy
from driftwood.domain.reconciliation.execute import DEFAULT_CONCURRENCY

from .env import optional_env_float, optional_env_int


@dataclass(frozen=True, slots=True)
class ExecutionConfig:
    concurrency: int = DEFAULT_CONCURRENCY
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def get_execution_config() -> ExecutionConfig:
    defaults = RetryPolicy()
    retry = RetryPolicy(
        attempts=optional_env_int("DRIFTWOOD_RETRY_ATTEMPTS", defaults.attempts, minimum=1),
        backoff_factor=optional_env_float("DRIFTWOOD_RETRY_BACKOFF", defaults.backoff_factor),
        max_backoff_wait=defaults.max_backoff_wait,
        backoff_jitter=defaults.backoff_jitter,
    )
    return ExecutionConfig(
        concurrency=optional_env_int("DRIFTWOOD_CONCURRENCY", DEFAULT_CONCURRENCY, minimum=1),
        retry=retry,
    )
