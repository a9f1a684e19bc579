"""Order scored postings into the final, capped top-N."""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Iterable

from jobping.locations import fold
from jobping.matching.base import ScoredPosting


def _ts(value: datetime | None) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _sort_key(item: ScoredPosting) -> tuple[float, int, float]:
    posted = item.posting.posted_at
    return (-item.score, 0 if posted else 1, -_ts(posted))


def best_per_posting(scored: Iterable[ScoredPosting]) -> list[ScoredPosting]:
    best: dict[str, ScoredPosting] = {}
    for item in scored:
        key = item.posting.identity_hash
        if key not in best or item.score > best[key].score:
            best[key] = item
    return list(best.values())


def rank(
    scored: Iterable[ScoredPosting],
    top_n: int,
    max_per_company: int = 0,
    already: Iterable[ScoredPosting] = (),
) -> list[ScoredPosting]:
    """Dedupe by identity hash, sort, cap per company and truncate.

    Ties on score go to the more recently posted listing; postings with no
    date sort after dated ones. ``max_per_company`` of 0 disables the cap.
    Postings in ``already`` count toward the cap but are not returned.
    """
    ordered = sorted(best_per_posting(scored), key=_sort_key)
    picked: list[ScoredPosting] = []
    per_company: Counter[str] = Counter(fold(s.posting.company) for s in already)
    for item in ordered:
        if len(picked) >= top_n:
            break
        company = fold(item.posting.company)
        if max_per_company and per_company[company] >= max_per_company:
            continue
        per_company[company] += 1
        picked.append(item)
    return picked
