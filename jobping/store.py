"""Job store and profile store: the narrow interfaces the core consumes.

The production stores live outside this package; the implementations here
(in-memory, CSV file, YAML profiles) back local runs and tests and follow the
same upsert-on-``identity_hash`` contract.
"""
from __future__ import annotations

import csv
import fcntl
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Protocol

import yaml

from jobping.errors import ConfigError, ProfileNotFound
from jobping.locations import canonical_city, canonical_country, fold
from jobping.log import get_logger
from jobping.models import Location, Posting, PostingStatus, Profile, Source, Tier, UpsertCounts

log = get_logger(__name__)

CONFLICT_KEY = "identity_hash"


@dataclass(frozen=True)
class QueryFilters:
    statuses: tuple[PostingStatus, ...] = (PostingStatus.ACTIVE,)
    seen_since: datetime | None = None
    cities: frozenset[str] = frozenset()
    countries: frozenset[str] = frozenset()
    include_remote: bool = True
    limit: int | None = None

    def accepts(self, posting: Posting) -> bool:
        if self.statuses and posting.status not in self.statuses:
            return False
        if self.seen_since and posting.last_seen_at and posting.last_seen_at < self.seen_since:
            return False
        if self.cities or self.countries:
            loc = posting.location
            in_place = (loc.city in self.cities) or (loc.country in self.countries)
            if not in_place and not (self.include_remote and loc.remote):
                return False
        return True


class JobStore(Protocol):
    def upsert(self, postings: list[Posting], conflict_key: str = CONFLICT_KEY) -> UpsertCounts: ...

    def query(self, filters: QueryFilters | None = None) -> list[Posting]: ...


class ProfileStore(Protocol):
    def get(self, subscriber_id: str) -> Profile: ...

    def list(self) -> list[Profile]: ...


def merge_posting(existing: Posting, incoming: Posting) -> Posting:
    """Conflict policy: refresh mutable fields, keep identity and first sighting."""
    return replace(
        incoming,
        identity_hash=existing.identity_hash,
        first_seen_at=existing.first_seen_at or incoming.first_seen_at,
        posted_at=existing.posted_at or incoming.posted_at,
    )


def _sorted_by_recency(postings: Iterable[Posting]) -> list[Posting]:
    return sorted(
        postings,
        key=lambda p: (p.recency is not None, p.recency or datetime.min),
        reverse=True,
    )


class InMemoryJobStore:
    def __init__(self) -> None:
        self._rows: dict[str, Posting] = {}
        self._lock = threading.Lock()

    def upsert(self, postings: list[Posting], conflict_key: str = CONFLICT_KEY) -> UpsertCounts:
        if conflict_key != CONFLICT_KEY:
            raise ValueError(f"unsupported conflict key {conflict_key!r}")
        counts = UpsertCounts()
        with self._lock:
            for p in postings:
                existing = self._rows.get(p.identity_hash)
                if existing is None:
                    self._rows[p.identity_hash] = p
                    counts.inserted += 1
                else:
                    self._rows[p.identity_hash] = merge_posting(existing, p)
                    counts.updated += 1
        return counts

    def query(self, filters: QueryFilters | None = None) -> list[Posting]:
        filters = filters or QueryFilters()
        with self._lock:
            rows = [p for p in self._rows.values() if filters.accepts(p)]
        rows = _sorted_by_recency(rows)
        return rows[: filters.limit] if filters.limit else rows

    def get(self, identity_hash: str) -> Posting | None:
        with self._lock:
            return self._rows.get(identity_hash)

    def mark(self, identity_hash: str, status: PostingStatus) -> bool:
        """Status transition hook for an external reconciliation process."""
        with self._lock:
            existing = self._rows.get(identity_hash)
            if existing is None:
                return False
            self._rows[identity_hash] = replace(existing, status=status)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


# ── CSV-backed store ────────────────────────────────────────────────────

HEADERS: list[str] = [
    "identity_hash", "title", "company", "location_raw", "city", "country", "remote",
    "description", "url", "source", "posted_at", "first_seen_at", "last_seen_at",
    "status", "categories", "seniority", "work_environment", "languages",
]


def lock_file(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    except (OSError, AttributeError):
        pass


def unlock_file(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def _dt(value: str) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_row(p: Posting) -> dict[str, str]:
    return {
        "identity_hash": p.identity_hash,
        "title": p.title,
        "company": p.company,
        "location_raw": p.location.raw,
        "city": p.location.city or "",
        "country": p.location.country or "",
        "remote": "1" if p.location.remote else "",
        "description": p.description,
        "url": p.url,
        "source": p.source.value,
        "posted_at": p.posted_at.isoformat() if p.posted_at else "",
        "first_seen_at": p.first_seen_at.isoformat() if p.first_seen_at else "",
        "last_seen_at": p.last_seen_at.isoformat() if p.last_seen_at else "",
        "status": p.status.value,
        "categories": "|".join(p.categories),
        "seniority": p.seniority,
        "work_environment": p.work_environment or "",
        "languages": "|".join(p.languages),
    }


def _from_row(r: dict[str, str]) -> Posting:
    return Posting(
        identity_hash=r["identity_hash"],
        title=r["title"],
        company=r["company"],
        location=Location(
            raw=r["location_raw"],
            city=r["city"] or None,
            country=r["country"] or None,
            remote=bool(r["remote"]),
        ),
        description=r["description"],
        url=r["url"],
        source=Source(r["source"]),
        posted_at=_dt(r["posted_at"]),
        first_seen_at=_dt(r["first_seen_at"]),
        last_seen_at=_dt(r["last_seen_at"]),
        status=PostingStatus(r["status"]),
        categories=[c for c in r["categories"].split("|") if c],
        seniority=r["seniority"] or "unknown",
        work_environment=r["work_environment"] or None,
        languages=[c for c in r["languages"].split("|") if c],
    )


class CsvJobStore:
    """Single-file store; each upsert rewrites the file under an exclusive lock."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._ensure()

    def _ensure(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            with open(self.path, "w", newline="", encoding="utf-8") as f:
                lock_file(f)
                csv.writer(f).writerow(HEADERS)
                unlock_file(f)
            log.info("Created job store → %s", self.path.name)

    def _read(self, f) -> dict[str, Posting]:
        f.seek(0)
        return {r["identity_hash"]: _from_row(r) for r in csv.DictReader(f)}

    def upsert(self, postings: list[Posting], conflict_key: str = CONFLICT_KEY) -> UpsertCounts:
        if conflict_key != CONFLICT_KEY:
            raise ValueError(f"unsupported conflict key {conflict_key!r}")
        counts = UpsertCounts()
        with self._lock, open(self.path, "r+", newline="", encoding="utf-8") as f:
            lock_file(f)
            try:
                rows = self._read(f)
                for p in postings:
                    existing = rows.get(p.identity_hash)
                    if existing is None:
                        rows[p.identity_hash] = p
                        counts.inserted += 1
                    else:
                        rows[p.identity_hash] = merge_posting(existing, p)
                        counts.updated += 1
                f.seek(0)
                f.truncate()
                w = csv.DictWriter(f, fieldnames=HEADERS)
                w.writeheader()
                w.writerows(_to_row(p) for p in rows.values())
            finally:
                unlock_file(f)
        log.debug("Upserted %d postings into %s", len(postings), self.path.name)
        return counts

    def query(self, filters: QueryFilters | None = None) -> list[Posting]:
        filters = filters or QueryFilters()
        with open(self.path, "r", newline="", encoding="utf-8") as f:
            lock_file(f, exclusive=False)
            try:
                rows = self._read(f)
            finally:
                unlock_file(f)
        matched = _sorted_by_recency(p for p in rows.values() if filters.accepts(p))
        return matched[: filters.limit] if filters.limit else matched


# ── Profiles ────────────────────────────────────────────────────────────


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def profile_from_dict(data: dict[str, Any]) -> Profile:
    """Build a Profile from a loosely-typed record (YAML entry or DB row)."""
    subscriber_id = str(data.get("subscriber_id") or data.get("id") or data.get("email") or "")
    if not subscriber_id:
        raise ConfigError(f"profile without id or email: {data!r}")
    cities = {canonical_city(c) or c for c in _str_list(data.get("target_cities"))}
    countries = {canonical_country(c) or c for c in _str_list(data.get("target_countries"))}
    tier_value = str(data.get("tier") or ("premium" if data.get("subscription_active") else "free")).lower()
    try:
        tier = Tier(tier_value)
    except ValueError as exc:
        raise ConfigError(f"unknown tier {tier_value!r} for {subscriber_id}") from exc
    work_env = data.get("work_environment")
    return Profile(
        subscriber_id=subscriber_id,
        email=str(data.get("email", "")),
        target_cities=frozenset(cities),
        target_countries=frozenset(countries),
        career_paths=frozenset(fold(c) for c in _str_list(data.get("career_paths") or data.get("career_path"))),
        roles=tuple(fold(r) for r in _str_list(data.get("roles"))),
        seniority=str(data.get("seniority") or "entry").lower(),
        languages=frozenset(fold(lang) for lang in _str_list(data.get("languages"))),
        work_environment=str(work_env).lower() if work_env else None,
        tier=tier,
        allow_remote=bool(data.get("allow_remote", True)),
        excluded_hashes=frozenset(_str_list(data.get("excluded_hashes"))),
    )


class YamlProfileStore:
    """Subscribers listed under ``subscribers:`` in a YAML file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._cache: dict[str, Profile] = {}
        self._mtime: float | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Profile]:
        """Parse the file again only when its mtime changed since the last read."""
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            log.warning("Profiles file %s not found", self.path)
            return {}
        with self._lock:
            if mtime == self._mtime:
                return self._cache
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            entries = data.get("subscribers", []) if isinstance(data, dict) else data
            profiles = [profile_from_dict(e) for e in entries or []]
            self._cache = {p.subscriber_id: p for p in profiles}
            self._mtime = mtime
            return self._cache

    def get(self, subscriber_id: str) -> Profile:
        profiles = self._load()
        if subscriber_id not in profiles:
            raise ProfileNotFound(subscriber_id)
        return profiles[subscriber_id]

    def list(self) -> list[Profile]:
        return list(self._load().values())
