"""Heuristic scorer used whenever the primary scorer is unavailable.

Weighted overlap across role family, seniority, city, language and work
environment. Deterministic, offline, and it always returns a score for every
candidate.
"""
from __future__ import annotations

from jobping.config import FallbackWeights
from jobping.locations import fold
from jobping.log import get_logger
from jobping.matching.base import ScoredPosting
from jobping.models import Posting, Profile

log = get_logger(__name__)

SENIORITY_RANK: dict[str, int] = {
    "internship": 0,
    "graduate": 1,
    "entry": 1,
    "junior": 2,
    "mid": 3,
    "senior": 4,
}

NEUTRAL = 0.5


def _word_overlap_ratio(role: str, text: str) -> float:
    """Fraction of words in *role* that appear in *text*.

    Multi-word roles need at least 2 overlapping words, so "product" alone
    does not match every "product ..." title.
    """
    role_words = set(role.split())
    text_words = set(text.split())
    if not role_words:
        return 0.0
    overlap = role_words & text_words
    if len(overlap) < 2 and len(role_words) > 1:
        return 0.0
    return len(overlap) / len(role_words)


def role_component(posting: Posting, profile: Profile) -> tuple[float, str]:
    if not profile.career_paths and not profile.roles:
        return NEUTRAL, ""
    title = fold(posting.title)
    desc = fold(posting.description)
    best, label = 0.0, ""
    for role in profile.roles:
        if role in title:
            return 1.0, f"Role match: {role}"
        if _word_overlap_ratio(role, title) >= 0.6 and best < 0.8:
            best, label = 0.8, f"Role match: {role}"
        elif role in desc and best < 0.5:
            best, label = 0.5, f"Mentions {role}"
    shared = sorted(profile.career_paths & set(posting.categories))
    if shared and best < 0.9:
        best, label = 0.9, f"Career path: {shared[0]}"
    return best, label


def seniority_component(posting: Posting, profile: Profile) -> tuple[float, str]:
    want = SENIORITY_RANK.get(profile.seniority)
    have = SENIORITY_RANK.get(posting.seniority)
    if want is None or have is None:
        return NEUTRAL, ""
    gap = abs(want - have)
    if gap == 0:
        return 1.0, f"{posting.seniority.capitalize()} level"
    if gap == 1:
        return 0.6, ""
    return 0.0, ""


def city_component(posting: Posting, profile: Profile) -> tuple[float, str]:
    loc = posting.location
    if loc.city and loc.city in profile.target_cities:
        return 1.0, f"Based in {loc.city}"
    if loc.country and loc.country in profile.target_countries:
        return 0.8, f"Based in {loc.country}"
    if loc.remote and profile.allow_remote:
        return 0.6, "Remote-friendly"
    if not profile.target_cities and not profile.target_countries:
        return NEUTRAL, ""
    return 0.0, ""


def language_component(posting: Posting, profile: Profile) -> tuple[float, str]:
    required = set(posting.languages)
    if not required:
        return 0.7, ""
    if not profile.languages:
        return NEUTRAL, ""
    spoken = required & profile.languages
    if spoken == required:
        return 1.0, f"Speaks {', '.join(sorted(spoken)).title()}"
    if spoken:
        return 0.5, ""
    return 0.0, ""


def work_environment_component(posting: Posting, profile: Profile) -> tuple[float, str]:
    want = profile.work_environment
    have = posting.work_environment
    if not want or want in ("any", "no-preference") or not have:
        return NEUTRAL, ""
    if want == have:
        return 1.0, f"{have.capitalize()} as preferred"
    if {want, have} == {"remote", "hybrid"}:
        return 0.5, ""
    return 0.0, ""


class FallbackScorer:
    name = "fallback"

    def __init__(self, weights: FallbackWeights | None = None) -> None:
        self.weights = weights or FallbackWeights()
        self._components = (
            (self.weights.role, role_component),
            (self.weights.seniority, seniority_component),
            (self.weights.city, city_component),
            (self.weights.language, language_component),
            (self.weights.work_environment, work_environment_component),
        )
        self._total_weight = sum(w for w, _ in self._components) or 1.0

    def score_one(self, posting: Posting, profile: Profile) -> ScoredPosting:
        total = 0.0
        reasons: list[str] = []
        for weight, component in self._components:
            value, reason = component(posting, profile)
            total += weight * value
            if reason:
                reasons.append(reason)
        score = round(min(max(total / self._total_weight, 0.0), 1.0), 4)
        tags = tuple(t for t in (posting.seniority, posting.work_environment) if t and t != "unknown")
        return ScoredPosting(
            posting=posting,
            score=score,
            reason="; ".join(reasons[:3]) or "Recent opportunity near your targets",
            tags=tags,
        )

    def score(self, candidates: list[Posting], profile: Profile) -> list[ScoredPosting]:
        scored: list[ScoredPosting] = []
        for posting in candidates:
            try:
                scored.append(self.score_one(posting, profile))
            except Exception:
                # one odd record must not cost the subscriber the whole cycle
                log.exception("Fallback scoring failed for %s", posting.identity_hash)
                scored.append(ScoredPosting(posting=posting, score=0.0, reason="Recent opportunity"))
        return scored
