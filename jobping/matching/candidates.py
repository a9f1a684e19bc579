"""Candidate filtering and the freshness boost."""
from __future__ import annotations

from datetime import datetime, timedelta

from jobping.models import Posting, PostingStatus, Profile


def validate_inputs(candidates: object, profile: object) -> list[Posting]:
    """Fail fast on caller contract violations."""
    if not isinstance(profile, Profile):
        raise TypeError(f"profile must be a Profile, got {type(profile).__name__}")
    if isinstance(candidates, (str, bytes)) or not hasattr(candidates, "__iter__"):
        raise TypeError(f"candidates must be an iterable of Posting, got {type(candidates).__name__}")
    postings = list(candidates)  # type: ignore[call-overload]
    for p in postings:
        if not isinstance(p, Posting):
            raise TypeError(f"candidate must be a Posting, got {type(p).__name__}")
    return postings


def location_matches(posting: Posting, profile: Profile) -> bool:
    loc = posting.location
    if not profile.target_cities and not profile.target_countries:
        return True
    if loc.city and loc.city in profile.target_cities:
        return True
    if loc.country and loc.country in profile.target_countries:
        return True
    return bool(loc.remote and profile.allow_remote)


def filter_candidates(candidates: list[Posting], profile: Profile) -> list[Posting]:
    return [
        p for p in candidates
        if p.status == PostingStatus.ACTIVE
        and p.identity_hash not in profile.excluded_hashes
        and location_matches(p, profile)
    ]


def is_fresh(posting: Posting, now: datetime, horizon_days: float) -> bool:
    stamp = posting.recency
    if stamp is None:
        return False
    return now - stamp <= timedelta(days=horizon_days)


def apply_freshness(score: float, posting: Posting, now: datetime, horizon_days: float, boost: float) -> float:
    if is_fresh(posting, now, horizon_days):
        return min(1.0, score + boost)
    return score
