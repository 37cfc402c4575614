"""Retry policy for transient provider failures."""

from __future__ import annotations

import random
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

from driftwood.domain.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter, bounded by ``attempts`` total calls."""

    attempts: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 30.0
    backoff_jitter: float = 1.0

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after the ``attempt``-th failed call."""

        base = self.backoff_factor * (2 ** (attempt - 1))
        if self.backoff_jitter:
            base += random.uniform(0, self.backoff_jitter * base)  # noqa: S311
        return min(base, self.max_backoff_wait)


def call_with_retry(
    func: Callable[[], T],
    *,
    policy: RetryPolicy,
    description: str,
    sleep: Callable[[float], None],
    on_attempt: Callable[[], None] | None = None,
) -> T:
    """Call ``func`` and retry transient ``ProviderError`` failures.

    Once the policy is exhausted the last transient error is promoted to a
    permanent one.
    """

    attempt = 0
    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt()
        try:
            return func()
        except ProviderError as exc:
            if not exc.transient:
                raise
            if attempt >= policy.attempts:
                raise ProviderError.promote(exc, attempts=attempt) from exc
            delay = policy.backoff(attempt)
            log.warning(
                "%s failed (attempt %s/%s), retrying in %.2fs: %s",
                description,
                attempt,
                policy.attempts,
                delay,
                exc,
            )
            sleep(delay)
