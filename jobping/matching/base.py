"""Shared scorer types."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from jobping.models import Posting, Profile


@dataclass(frozen=True)
class ScoredPosting:
    posting: Posting
    score: float
    reason: str
    tags: tuple[str, ...] = ()


@runtime_checkable
class Scorer(Protocol):
    """Scores a filtered candidate set for one profile; scores lie in [0, 1]."""

    def score(self, candidates: list[Posting], profile: Profile) -> list[ScoredPosting]: ...
