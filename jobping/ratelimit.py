"""In-process fixed-window rate limiter.

Each key gets a counter that resets wholesale once its window has passed.
Expired entries are swept opportunistically (a small random chance on each
call) instead of by a background timer.
"""
from __future__ import annotations

import random
import threading
import time
import zlib
from dataclasses import dataclass
from typing import Callable

from jobping.log import get_logger
from jobping.models import RateLimitDecision

log = get_logger(__name__)

_SHARDS = 16


@dataclass
class RateLimitEntry:
    count: int
    window_start: float
    window: float

    @property
    def reset_time(self) -> float:
        return self.window_start + self.window


class RateLimiter:
    def __init__(
        self,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng
        self._shards: list[dict[str, RateLimitEntry]] = [{} for _ in range(_SHARDS)]
        self._locks = [threading.Lock() for _ in range(_SHARDS)]

    def _shard(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % _SHARDS

    def check_limit(self, key: str, limit: int, window: float) -> RateLimitDecision:
        """Count one call against *key*; *window* is in seconds."""
        if limit < 1 or window <= 0:
            raise ValueError("limit must be >= 1 and window > 0")
        now = self._clock()
        idx = self._shard(key)
        with self._locks[idx]:
            entries = self._shards[idx]
            entry = entries.get(key)
            if entry is None or now > entry.reset_time:
                entry = RateLimitEntry(count=0, window_start=now, window=window)
                entries[key] = entry
            if entry.count >= limit:
                decision = RateLimitDecision(allowed=False, remaining=0, reset_time=entry.reset_time)
            else:
                entry.count += 1
                decision = RateLimitDecision(
                    allowed=True, remaining=limit - entry.count, reset_time=entry.reset_time,
                )

        if self._rng() < self.sweep_probability:
            self.sweep()
        if not decision.allowed:
            log.debug("Rate limit hit for %s (resets in %.1fs)", key, decision.reset_time - now)
        return decision

    def sweep(self) -> int:
        """Drop entries whose window has ended; returns how many were removed."""
        now = self._clock()
        removed = 0
        for idx, lock in enumerate(self._locks):
            with lock:
                entries = self._shards[idx]
                expired = [k for k, e in entries.items() if now > e.reset_time]
                for k in expired:
                    del entries[k]
                removed += len(expired)
        if removed:
            log.debug("Swept %d expired rate-limit entries", removed)
        return removed

    def reset(self, key: str) -> bool:
        idx = self._shard(key)
        with self._locks[idx]:
            return self._shards[idx].pop(key, None) is not None

    def stats(self) -> dict[str, int]:
        total_keys = 0
        total_requests = 0
        for idx, lock in enumerate(self._locks):
            with lock:
                total_keys += len(self._shards[idx])
                total_requests += sum(e.count for e in self._shards[idx].values())
        return {"total_keys": total_keys, "total_requests": total_requests}
