"""Dedup-safe persistence: batched upserts keyed by identity_hash."""
from __future__ import annotations

from datetime import datetime, timezone
from dataclasses import replace
from typing import Callable, Iterable

from jobping.errors import PersistenceBatchFailed
from jobping.log import get_logger
from jobping.models import Posting, UpsertCounts
from jobping.store import CONFLICT_KEY, JobStore

log = get_logger(__name__)


def dedupe(postings: Iterable[Posting]) -> list[Posting]:
    """Collapse repeated hashes; the last sighting wins, first position is kept."""
    by_hash: dict[str, Posting] = {}
    for p in postings:
        by_hash[p.identity_hash] = p
    return list(by_hash.values())


class DedupGateway:
    """Writes canonical postings to the job store in bounded batches.

    There is no transaction spanning batches: a failing batch is logged and
    counted while the others still commit.
    """

    def __init__(
        self,
        store: JobStore,
        batch_size: int = 100,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.batch_size = batch_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def upsert_batch(self, postings: Iterable[Posting]) -> UpsertCounts:
        now = self._clock()
        unique = [replace(p, last_seen_at=now) for p in dedupe(postings)]
        totals = UpsertCounts()
        for index, start in enumerate(range(0, len(unique), self.batch_size)):
            chunk = unique[start:start + self.batch_size]
            try:
                counts = self.store.upsert(chunk, conflict_key=CONFLICT_KEY)
            except Exception as exc:
                failure = PersistenceBatchFailed(index, len(chunk), exc)
                log.error("Persistence %s", failure)
                totals = totals + UpsertCounts(failed=len(chunk), failed_batches=1)
                continue
            totals = totals + counts
        log.info(
            "Upserted %d postings: inserted=%d updated=%d failed=%d",
            len(unique), totals.inserted, totals.updated, totals.failed,
        )
        return totals
