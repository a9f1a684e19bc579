"""
Matching engine.

Runs: validate → filter candidates → primary scorer (or fallback) → freshness
boost → rank → MatchResult.

A usable result always comes back: any primary failure is logged and the
heuristic fallback takes over for the same candidate set.
"""
from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from jobping.config import MatchingSettings
from jobping.errors import ScorerError, ScorerHardFailure
from jobping.log import get_logger
from jobping.matching.base import ScoredPosting, Scorer
from jobping.matching.candidates import apply_freshness, filter_candidates, validate_inputs
from jobping.matching.fallback import FallbackScorer
from jobping.matching.ranking import rank
from jobping.models import Match, MatchResult, Posting, Profile

log = get_logger(__name__)


class MatchingEngine:
    def __init__(
        self,
        settings: MatchingSettings | None = None,
        primary: Scorer | None = None,
        fallback: FallbackScorer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or MatchingSettings()
        self.primary = primary
        self.fallback = fallback or FallbackScorer(self.settings.weights)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _primary_ready(self) -> bool:
        if self.primary is None:
            return False
        return getattr(self.primary, "available", True)

    def perform_matching(
        self,
        candidates: Iterable[Posting],
        profile: Profile,
        top_n: int | None = None,
    ) -> MatchResult:
        postings = validate_inputs(candidates, profile)
        limit = top_n or self.settings.top_n
        started = time.monotonic()
        pool = filter_candidates(postings, profile)

        if not pool:
            log.info("No candidates for %s after filtering (%d in)", profile.subscriber_id, len(postings))
            return MatchResult(matches=[], scorer="none", candidate_count=0,
                               latency_ms=(time.monotonic() - started) * 1000)

        scorer_path = "fallback"
        degraded_reason: str | None = None
        scored: list[ScoredPosting] = []

        if self._primary_ready():
            try:
                scored = self.primary.score(pool, profile)
                scorer_path = "primary"
            except ScorerHardFailure as exc:
                log.error("Primary scorer failed for %s, using fallback: %s", profile.subscriber_id, exc)
                degraded_reason = exc.reason
            except ScorerError as exc:
                log.warning("Primary scorer unavailable for %s (%s), using fallback: %s",
                            profile.subscriber_id, exc.reason, exc)
                degraded_reason = exc.reason
            except Exception:
                log.exception("Primary scorer crashed for %s, using fallback", profile.subscriber_id)
                degraded_reason = ScorerHardFailure.reason
        else:
            degraded_reason = "primary_unavailable"

        now = self._clock()
        cap = self.settings.max_per_company
        if scorer_path == "primary":
            ranked = rank(self._boost(scored, now), limit, cap)
            ranked += self._top_up(ranked, scored, pool, profile, limit, now)
        else:
            ranked = rank(self._boost(self.fallback.score(pool, profile), now), limit, cap)
        latency_ms = (time.monotonic() - started) * 1000

        log.info(
            "Matched %s: scorer=%s candidates=%d matches=%d latency=%.0fms",
            profile.subscriber_id, scorer_path, len(pool), len(ranked), latency_ms,
        )
        return MatchResult(
            matches=[
                Match(
                    identity_hash=s.posting.identity_hash,
                    score=s.score,
                    reason=s.reason,
                    posted_at=s.posting.posted_at,
                    company=s.posting.company,
                    tags=s.tags,
                )
                for s in ranked
            ],
            scorer=scorer_path,
            degraded_reason=degraded_reason,
            candidate_count=len(pool),
            latency_ms=latency_ms,
        )

    def _boost(self, scored: list[ScoredPosting], now: datetime) -> list[ScoredPosting]:
        return [
            replace(s, score=round(apply_freshness(
                s.score, s.posting, now, self.settings.freshness_days, self.settings.freshness_boost,
            ), 4))
            for s in scored
        ]

    def _top_up(
        self,
        picks: list[ScoredPosting],
        primary_scored: list[ScoredPosting],
        pool: list[Posting],
        profile: Profile,
        limit: int,
        now: datetime,
    ) -> list[ScoredPosting]:
        """Fallback fillers for the slots a short primary answer left open.

        Fillers never outscore the weakest primary pick, so they always rank
        below everything the primary chose.
        """
        open_slots = limit - len(picks)
        if open_slots <= 0:
            return []
        covered = {s.posting.identity_hash for s in primary_scored}
        rest = [p for p in pool if p.identity_hash not in covered]
        if not rest:
            return []
        floor = min((s.score for s in picks), default=1.0)
        fillers = [
            replace(s, score=min(s.score, floor))
            for s in self._boost(self.fallback.score(rest, profile), now)
        ]
        log.debug("Topping up %d primary match(es) with up to %d fallback pick(s)", len(picks), open_slots)
        return rank(fillers, open_slots, self.settings.max_per_company, already=picks)
