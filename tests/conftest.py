"""Shared fixtures for jobping tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("JOBPING_LOG_FILE", "false")

from jobping.models import Location, Posting, PostingStatus, Profile, RawPosting, Source  # noqa: E402
from jobping.normalize import identity_hash  # noqa: E402

T0 = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock returning a settable datetime."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_raw(**overrides) -> RawPosting:
    values = {
        "source": Source.MOCK,
        "title": "Graduate Data Analyst",
        "company": "Northwind",
        "location": "London, UK",
        "description": "Graduate programme working with SQL and dashboards.",
        "url": "https://example.com/jobs/1",
        "posted_at": "2026-10-15T09:00:00Z",
    }
    values.update(overrides)
    return RawPosting(**values)


def make_posting(
    title: str = "Graduate Data Analyst",
    company: str = "Northwind",
    city: str | None = "London",
    country: str | None = "United Kingdom",
    remote: bool = False,
    url: str | None = None,
    posted_at: datetime | None = T0 - timedelta(days=2),
    **overrides,
) -> Posting:
    url = url or f"https://example.com/jobs/{company}-{title}".replace(" ", "-").lower()
    raw_location = ", ".join(p for p in (city, country) if p) or ("Remote" if remote else "")
    values = {
        "identity_hash": identity_hash("mock", title, company, raw_location, url),
        "title": title,
        "company": company,
        "location": Location(raw=raw_location, city=city, country=country, remote=remote),
        "description": "",
        "url": url,
        "source": Source.MOCK,
        "posted_at": posted_at,
        "first_seen_at": T0 - timedelta(days=1),
        "last_seen_at": T0,
        "status": PostingStatus.ACTIVE,
        "categories": ["data"],
        "seniority": "graduate",
    }
    values.update(overrides)
    return Posting(**values)


def make_profile(**overrides) -> Profile:
    values = {
        "subscriber_id": "sub-1",
        "email": "sub1@example.com",
        "target_cities": frozenset({"London"}),
        "career_paths": frozenset({"data"}),
        "roles": ("data analyst",),
        "seniority": "graduate",
        "languages": frozenset({"english"}),
    }
    values.update(overrides)
    return Profile(**values)


@pytest.fixture
def profile() -> Profile:
    return make_profile()
