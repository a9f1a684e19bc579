"""Data models for raw and canonical postings, profiles and match results."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class Source(str, Enum):
    GREENHOUSE = "greenhouse"
    LEVER = "lever"
    REMOTEOK = "remoteok"
    CAREER_PAGE = "career_page"
    MOCK = "mock"


class PostingStatus(str, Enum):
    ACTIVE = "active"
    STALE = "stale"
    REMOVED = "removed"


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


@dataclass
class SourceConfig:
    name: str
    source: Source
    company: str = ""
    url: str = ""
    timeout: float = 20.0
    enabled: bool = True
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class RawPosting:
    """A listing as scraped, before normalization. Owned by its adapter."""

    source: Source
    title: str | None = None
    company: str | None = None
    location: str | None = None
    description: str | None = None
    url: str | None = None
    external_id: str | None = None
    posted_at: Any = None
    base_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Location:
    raw: str
    city: str | None = None
    country: str | None = None
    remote: bool = False

    @property
    def resolved(self) -> bool:
        return bool(self.city or self.country)

    def label(self) -> str:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.city or self.country or self.raw


@dataclass
class Posting:
    identity_hash: str
    title: str
    company: str
    location: Location
    description: str
    url: str
    source: Source
    posted_at: datetime | None = None
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    status: PostingStatus = PostingStatus.ACTIVE
    categories: list[str] = field(default_factory=list)
    seniority: str = "unknown"
    work_environment: str | None = None
    languages: list[str] = field(default_factory=list)

    @property
    def recency(self) -> datetime | None:
        return self.posted_at or self.first_seen_at


@dataclass(frozen=True)
class Rejection:
    """Normalizer verdict for a raw posting that cannot be stored."""

    reason: str
    source: Source
    title: str | None = None


NormalizeResult = Union[Posting, Rejection]


@dataclass(frozen=True)
class Profile:
    """Read-only subscriber snapshot used for one matching invocation."""

    subscriber_id: str
    email: str = ""
    target_cities: frozenset[str] = frozenset()
    target_countries: frozenset[str] = frozenset()
    career_paths: frozenset[str] = frozenset()
    roles: tuple[str, ...] = ()
    seniority: str = "entry"
    languages: frozenset[str] = frozenset()
    work_environment: str | None = None
    tier: Tier = Tier.FREE
    allow_remote: bool = True
    excluded_hashes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Match:
    identity_hash: str
    score: float
    reason: str
    posted_at: datetime | None = None
    company: str = ""
    tags: tuple[str, ...] = ()


@dataclass
class MatchResult:
    matches: list[Match] = field(default_factory=list)
    scorer: str = "none"
    degraded_reason: str | None = None
    candidate_count: int = 0
    latency_ms: float = 0.0

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self):
        return iter(self.matches)

    @property
    def hashes(self) -> list[str]:
        return [m.identity_hash for m in self.matches]


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: float


@dataclass
class UpsertCounts:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    failed_batches: int = 0

    def __add__(self, other: "UpsertCounts") -> "UpsertCounts":
        return UpsertCounts(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            failed=self.failed + other.failed,
            failed_batches=self.failed_batches + other.failed_batches,
        )


@dataclass(frozen=True)
class SourceOutcome:
    """Result of running one adapter: either postings or a degradation reason."""

    name: str
    raw: tuple[RawPosting, ...] = ()
    error: str | None = None
    attempts: int = 1

    @classmethod
    def ok(cls, name: str, raw: list[RawPosting], attempts: int = 1) -> "SourceOutcome":
        return cls(name=name, raw=tuple(raw), attempts=attempts)

    @classmethod
    def degraded(cls, name: str, reason: str, attempts: int = 1) -> "SourceOutcome":
        return cls(name=name, error=reason, attempts=attempts)

    @property
    def is_ok(self) -> bool:
        return self.error is None


@dataclass
class SourceReport:
    count: int = 0
    rejected: int = 0
    error: str | None = None
    attempts: int = 1

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"count": self.count, "rejected": self.rejected, "attempts": self.attempts}
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class IngestionSummary:
    sources: dict[str, SourceReport] = field(default_factory=dict)
    store: UpsertCounts = field(default_factory=UpsertCounts)
    duration_s: float = 0.0

    @property
    def total_postings(self) -> int:
        return sum(r.count for r in self.sources.values())

    @property
    def rejected(self) -> int:
        return sum(r.rejected for r in self.sources.values())

    @property
    def errored(self) -> list[str]:
        return [name for name, r in self.sources.items() if r.error]

    @property
    def failed(self) -> bool:
        """True only when no source produced postings and at least one errored."""
        return self.total_postings == 0 and bool(self.errored)

    @property
    def degraded(self) -> bool:
        return bool(self.errored) or self.store.failed > 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "sources": {name: r.as_dict() for name, r in self.sources.items()},
            "inserted": self.store.inserted,
            "updated": self.store.updated,
            "failed": self.store.failed,
            "rejected": self.rejected,
            "run_failed": self.failed,
            "duration_s": round(self.duration_s, 2),
        }
