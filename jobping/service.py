"""Entry points other components call: ingestion, matching and rate checks.

Every inbound call is counted against the rate limiter under
``ingest:{caller}`` or ``match:{caller}``; a denied call raises RateLimited
before any work starts.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from jobping.config import Settings
from jobping.delivery import plan_for
from jobping.errors import RateLimited
from jobping.gateway import DedupGateway
from jobping.ingest import IngestionOrchestrator
from jobping.log import get_logger
from jobping.matching import MatchingEngine, PrimaryScorer
from jobping.models import IngestionSummary, MatchResult, Posting, Profile, RateLimitDecision, SourceConfig
from jobping.normalize import EntryLevelFilter, Normalizer
from jobping.ratelimit import RateLimiter
from jobping.store import InMemoryJobStore, JobStore, ProfileStore, QueryFilters, YamlProfileStore

log = get_logger(__name__)


class JobPingService:
    def __init__(
        self,
        settings: Settings | None = None,
        job_store: JobStore | None = None,
        profile_store: ProfileStore | None = None,
        limiter: RateLimiter | None = None,
        engine: MatchingEngine | None = None,
        orchestrator: IngestionOrchestrator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.job_store = job_store or InMemoryJobStore()
        self.profile_store = profile_store or YamlProfileStore(self.settings.profiles_path)
        self.limiter = limiter or RateLimiter(self.settings.rate_limits.sweep_probability)

        if orchestrator is None:
            gateway = DedupGateway(self.job_store, self.settings.ingestion.batch_size, clock=self._clock)
            normalizer = Normalizer(EntryLevelFilter.from_settings(self.settings.normalizer), clock=self._clock)
            orchestrator = IngestionOrchestrator(gateway, normalizer, self.settings.ingestion)
        self.orchestrator = orchestrator

        if engine is None:
            primary = None
            if self.settings.scorer.enabled:
                primary = PrimaryScorer(
                    self.settings.scorer, self.limiter, self.settings.rate_limits,
                    top_n=self.settings.matching.top_n,
                )
            engine = MatchingEngine(self.settings.matching, primary=primary, clock=self._clock)
        self.engine = engine

    def now(self) -> datetime:
        return self._clock()

    def check_limit(self, key: str, limit: int, window: float) -> RateLimitDecision:
        return self.limiter.check_limit(key, limit, window)

    def _gate(self, key: str, limit: int, window: float) -> None:
        decision = self.limiter.check_limit(key, limit, window)
        if not decision.allowed:
            log.warning("Rejected %s: rate limit exceeded", key)
            raise RateLimited(key, decision)

    def ingest_once(self, source_configs: Iterable[SourceConfig] | None = None, caller: str = "system") -> IngestionSummary:
        limits = self.settings.rate_limits
        self._gate(f"ingest:{caller}", limits.ingest_limit, limits.ingest_window)
        configs = self.settings.sources if source_configs is None else source_configs
        return self.orchestrator.run(configs)

    def perform_matching(
        self,
        candidates: Iterable[Posting],
        profile: Profile,
        caller: str = "system",
        top_n: int | None = None,
    ) -> MatchResult:
        limits = self.settings.rate_limits
        self._gate(f"match:{caller}", limits.match_limit, limits.match_window)
        return self.engine.perform_matching(candidates, profile, top_n=top_n)

    def candidates_for(self, profile: Profile) -> list[Posting]:
        since = self._clock() - timedelta(days=self.settings.matching.lookback_days)
        return self.job_store.query(QueryFilters(
            seen_since=since,
            cities=profile.target_cities,
            countries=profile.target_countries,
            include_remote=profile.allow_remote,
        ))

    def match_subscriber(self, subscriber_id: str, caller: str | None = None) -> MatchResult:
        """Match one stored subscriber against stored postings; sized by their plan."""
        profile = self.profile_store.get(subscriber_id)
        candidates = self.candidates_for(profile)
        return self.perform_matching(
            candidates, profile, caller=caller or subscriber_id, top_n=plan_for(profile).per_send,
        )
