"""Retry with exponential backoff; the single resilience policy for source fetches."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        delay = min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        return delay


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    retryable: Tuple[Type[BaseException], ...],
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T, int]:
    """Call *fn* until it succeeds or *policy* is exhausted.

    Returns ``(result, attempts)``. Only exceptions listed in *retryable* are
    retried; anything else propagates on the first occurrence. When the last
    attempt fails its exception is re-raised with ``attempts`` attached.
    """
    name = label or getattr(fn, "__qualname__", repr(fn))
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn(), attempt
        except retryable as exc:
            if attempt == attempts:
                logger.error("%s failed after %d attempts: %s", name, attempts, exc)
                exc.attempts = attempt  # type: ignore[attr-defined]
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.1fs",
                name,
                attempt,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")
