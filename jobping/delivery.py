"""Send plans per tier and the sink that hands match results to delivery.

Rendering and sending email happens in a separate component; this module only
decides how many matches a subscriber gets, on which days, and records sends
against the weekly allowance.
"""
from __future__ import annotations

import csv
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Protocol

from jobping.log import get_logger
from jobping.models import MatchResult, Profile, Tier
from jobping.store import lock_file, unlock_file

log = get_logger(__name__)

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


@dataclass(frozen=True)
class DeliveryPlan:
    tier: Tier
    days: tuple[str, ...]
    per_send: int
    pulls_per_week: int


PLANS: dict[Tier, DeliveryPlan] = {
    Tier.FREE: DeliveryPlan(tier=Tier.FREE, days=("Thu",), per_send=5, pulls_per_week=1),
    Tier.PREMIUM: DeliveryPlan(tier=Tier.PREMIUM, days=("Mon", "Wed", "Fri"), per_send=5, pulls_per_week=3),
}


def plan_for(profile_or_tier: Profile | Tier | str | None) -> DeliveryPlan:
    """Plan for a profile or tier; anything unrecognised gets the free plan."""
    tier = getattr(profile_or_tier, "tier", profile_or_tier)
    try:
        return PLANS[Tier(tier)]
    except (ValueError, KeyError):
        return PLANS[Tier.FREE]


def is_send_day(plan: DeliveryPlan, when: date | datetime) -> bool:
    return WEEKDAYS[when.weekday()] in plan.days


def week_start(when: date | datetime) -> date:
    day = when.date() if isinstance(when, datetime) else when
    return day - timedelta(days=day.weekday())


@dataclass
class LedgerEntry:
    subscriber_id: str
    week_start: date
    tier: Tier
    sends_used: int = 0
    postings_sent: int = 0


LEDGER_HEADERS: list[str] = ["subscriber_id", "week_start", "tier", "sends_used", "postings_sent"]


def _entry_from_row(row: dict[str, str]) -> LedgerEntry:
    return LedgerEntry(
        subscriber_id=row["subscriber_id"],
        week_start=date.fromisoformat(row["week_start"]),
        tier=plan_for(row["tier"]).tier,
        sends_used=int(row["sends_used"] or 0),
        postings_sent=int(row["postings_sent"] or 0),
    )


def _entry_to_row(entry: LedgerEntry) -> dict[str, str]:
    return {
        "subscriber_id": entry.subscriber_id,
        "week_start": entry.week_start.isoformat(),
        "tier": entry.tier.value,
        "sends_used": str(entry.sends_used),
        "postings_sent": str(entry.postings_sent),
    }


class SendLedger:
    """Per-subscriber weekly send counts.

    With a ``path`` the counts live in a CSV file shared by every run, so the
    weekly allowance holds across cron invocations. Each ``record`` rereads
    the file under an exclusive lock before writing it back.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else None
        self._entries: dict[tuple[str, date], LedgerEntry] = {}
        self._lock = threading.Lock()
        if self.path is not None:
            self._ensure()
            with open(self.path, "r", newline="", encoding="utf-8") as f:
                lock_file(f, exclusive=False)
                try:
                    self._entries = self._read(f)
                finally:
                    unlock_file(f)

    def _ensure(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            with open(self.path, "w", newline="", encoding="utf-8") as f:
                lock_file(f)
                csv.writer(f).writerow(LEDGER_HEADERS)
                unlock_file(f)
            log.info("Created send ledger → %s", self.path.name)

    def _read(self, f) -> dict[tuple[str, date], LedgerEntry]:
        f.seek(0)
        entries: dict[tuple[str, date], LedgerEntry] = {}
        for row in csv.DictReader(f):
            try:
                entry = _entry_from_row(row)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("Skipping bad ledger row %r: %s", row, exc)
                continue
            entries[(entry.subscriber_id, entry.week_start)] = entry
        return entries

    def sends_used(self, subscriber_id: str, when: date | datetime) -> int:
        entry = self._entries.get((subscriber_id, week_start(when)))
        return entry.sends_used if entry else 0

    def can_send(self, profile: Profile, when: date | datetime) -> bool:
        plan = plan_for(profile)
        return is_send_day(plan, when) and self.sends_used(profile.subscriber_id, when) < plan.pulls_per_week

    def record(self, profile: Profile, when: date | datetime, postings_sent: int) -> LedgerEntry:
        if not profile.subscriber_id:
            raise ValueError("subscriber_id is required")
        key = (profile.subscriber_id, week_start(when))
        with self._lock:
            if self.path is None:
                return self._bump(key, profile, postings_sent)
            with open(self.path, "r+", newline="", encoding="utf-8") as f:
                lock_file(f)
                try:
                    self._entries = self._read(f)
                    entry = self._bump(key, profile, postings_sent)
                    f.seek(0)
                    f.truncate()
                    w = csv.DictWriter(f, fieldnames=LEDGER_HEADERS)
                    w.writeheader()
                    w.writerows(_entry_to_row(e) for e in self._entries.values())
                finally:
                    unlock_file(f)
            return entry

    def _bump(self, key: tuple[str, date], profile: Profile, postings_sent: int) -> LedgerEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = LedgerEntry(subscriber_id=key[0], week_start=key[1], tier=plan_for(profile).tier)
            self._entries[key] = entry
        entry.sends_used += 1
        entry.postings_sent += postings_sent
        return entry


class DeliverySink(Protocol):
    def deliver(self, profile: Profile, result: MatchResult) -> None: ...


class LoggingDeliverySink:
    """Logs what would be sent and keeps the results for inspection."""

    def __init__(self) -> None:
        self.delivered: dict[str, MatchResult] = {}

    def deliver(self, profile: Profile, result: MatchResult) -> None:
        self.delivered[profile.subscriber_id] = result
        log.info(
            "Delivery for %s (%s): %d match(es) via %s",
            profile.subscriber_id, plan_for(profile).tier.value, len(result), result.scorer,
        )
        for m in result:
            log.debug("  %.2f %s %s", m.score, m.identity_hash[:12], m.reason)
