"""Unit tests for the JobPingService façade, delivery plans and the pipeline."""

from datetime import date, datetime, timezone

import pytest

from conftest import FakeClock, make_posting, make_profile
from jobping.config import RateLimitSettings, ScorerSettings, Settings
from jobping.delivery import PLANS, LoggingDeliverySink, SendLedger, is_send_day, plan_for
from jobping.errors import (
    ConfigError,
    NoSourcesConfigured,
    ProfileNotFound,
    RateLimited,
    ScorerTimeout,
    SourceUnavailable,
    status_for,
)
from jobping.models import MatchResult, Source, SourceConfig, Tier
from jobping.pipeline import run
from jobping.store import InMemoryJobStore, YamlProfileStore

PROFILES = """
subscribers:
  - id: free-1
    tier: free
    target_cities: [London]
    career_paths: [data]
    roles: [data analyst]
    seniority: graduate
  - id: premium-1
    tier: premium
    target_cities: [Dublin]
    career_paths: [tech]
    seniority: junior
"""

MOCK = SourceConfig(name="mock", source=Source.MOCK, company="Sample")


@pytest.fixture
def profile_store(tmp_path):
    path = tmp_path / "profiles.yaml"
    path.write_text(PROFILES, encoding="utf-8")
    return YamlProfileStore(path)


def _service(profile_store, clock, ledger_path=None, **limits):
    from jobping.service import JobPingService

    settings = Settings(
        scorer=ScorerSettings(api_key=""),
        rate_limits=RateLimitSettings(**limits),
        sources=(MOCK,),
        ledger_path=ledger_path,
    )
    return JobPingService(settings, job_store=InMemoryJobStore(), profile_store=profile_store, clock=clock)


class TestJobPingService:
    """Tests for rate-limit gating and the subscriber flow."""

    def test_ingest_then_match_subscriber(self, profile_store, clock):
        service = _service(profile_store, clock)
        summary = service.ingest_once()
        assert summary.total_postings == 3

        result = service.match_subscriber("free-1")
        assert result.scorer == "fallback"
        assert 0 < len(result) <= PLANS[Tier.FREE].per_send
        assert result.candidate_count == 2  # London posting plus the remote one

    def test_match_gated_per_caller(self, profile_store, clock):
        service = _service(profile_store, clock, match_limit=2)
        profile = make_profile()
        pool = [make_posting()]
        service.perform_matching(pool, profile, caller="a")
        service.perform_matching(pool, profile, caller="a")
        with pytest.raises(RateLimited) as exc_info:
            service.perform_matching(pool, profile, caller="a")
        assert exc_info.value.key == "match:a"
        assert exc_info.value.decision.allowed is False
        assert status_for(exc_info.value) == 429
        assert len(service.perform_matching(pool, profile, caller="b")) == 1

    def test_ingest_gated(self, profile_store, clock):
        service = _service(profile_store, clock, ingest_limit=1)
        service.ingest_once(caller="cron")
        with pytest.raises(RateLimited):
            service.ingest_once(caller="cron")

    def test_unknown_subscriber(self, profile_store, clock):
        with pytest.raises(ProfileNotFound) as exc_info:
            _service(profile_store, clock).match_subscriber("ghost")
        assert status_for(exc_info.value) == 404

    def test_no_sources(self, profile_store, clock):
        with pytest.raises(NoSourcesConfigured):
            _service(profile_store, clock).ingest_once([])

    def test_check_limit_passthrough(self, profile_store, clock):
        service = _service(profile_store, clock)
        assert service.check_limit("custom", 1, 60).allowed
        assert not service.check_limit("custom", 1, 60).allowed


class TestDelivery:
    """Tests for send plans and the weekly ledger."""

    def test_plans(self):
        assert plan_for(make_profile(tier=Tier.FREE)).days == ("Thu",)
        assert plan_for(make_profile(tier=Tier.PREMIUM)).days == ("Mon", "Wed", "Fri")
        assert plan_for(Tier.PREMIUM).pulls_per_week == 3
        assert plan_for("unknown") == PLANS[Tier.FREE]
        assert plan_for(None) == PLANS[Tier.FREE]

    def test_send_days(self):
        thursday, monday = date(2024, 1, 4), date(2024, 1, 1)
        assert is_send_day(PLANS[Tier.FREE], thursday)
        assert not is_send_day(PLANS[Tier.FREE], monday)
        assert is_send_day(PLANS[Tier.PREMIUM], monday)
        assert not is_send_day(PLANS[Tier.PREMIUM], date(2024, 1, 2))

    def test_ledger_enforces_weekly_pulls(self):
        ledger = SendLedger()
        free = make_profile(tier=Tier.FREE)
        thursday = date(2024, 1, 4)
        assert ledger.can_send(free, thursday)
        entry = ledger.record(free, thursday, 5)
        assert (entry.sends_used, entry.postings_sent) == (1, 5)
        assert not ledger.can_send(free, thursday)
        assert ledger.can_send(free, date(2024, 1, 11))

    def test_ledger_file_shared_between_instances(self, tmp_path):
        path = tmp_path / "data" / "ledger.csv"
        premium = make_profile(tier=Tier.PREMIUM)
        monday = date(2024, 1, 1)
        SendLedger(path).record(premium, monday, 5)
        SendLedger(path).record(premium, date(2024, 1, 3), 4)

        reloaded = SendLedger(path)
        assert reloaded.sends_used("sub-1", monday) == 2
        assert reloaded.can_send(premium, date(2024, 1, 5))
        reloaded.record(premium, date(2024, 1, 5), 5)
        assert not SendLedger(path).can_send(premium, date(2024, 1, 5))
        assert "week_start" in path.read_text(encoding="utf-8").splitlines()[0]

    def test_ledger_skips_bad_rows(self, tmp_path):
        path = tmp_path / "ledger.csv"
        path.write_text(
            "subscriber_id,week_start,tier,sends_used,postings_sent\n"
            "sub-1,not-a-date,free,1,5\n"
            "sub-2,2024-01-01,free,1,5\n",
            encoding="utf-8",
        )
        ledger = SendLedger(path)
        assert ledger.sends_used("sub-1", date(2024, 1, 4)) == 0
        assert ledger.sends_used("sub-2", date(2024, 1, 4)) == 1

    def test_ledger_requires_subscriber(self):
        with pytest.raises(ValueError):
            SendLedger().record(make_profile(subscriber_id=""), date(2024, 1, 4), 5)

    def test_logging_sink_keeps_results(self):
        sink = LoggingDeliverySink()
        sink.deliver(make_profile(), MatchResult(scorer="fallback"))
        assert sink.delivered["sub-1"].scorer == "fallback"


class TestPipeline:
    """Tests for pipeline.run with injected collaborators."""

    def test_run_delivers_to_every_subscriber(self, profile_store, clock):
        service = _service(profile_store, clock)
        sink = LoggingDeliverySink()
        result = run(settings=service.settings, service=service, sink=sink)
        assert result["ingestion"]["inserted"] == 3
        assert result["delivered"] == 2
        assert set(sink.delivered) == {"free-1", "premium-1"}
        assert result["errors"] == {}

    def test_rate_limited_subscriber_recorded_as_error(self, profile_store, clock):
        service = _service(profile_store, clock, match_limit=1)
        service.perform_matching([], make_profile(subscriber_id="free-1"), caller="free-1")
        result = run(settings=service.settings, service=service, sink=LoggingDeliverySink())
        assert result["errors"] == {"free-1": 429}
        assert result["delivered"] == 1

    def test_weekly_allowance_holds_across_runs(self, profile_store, tmp_path):
        thursday = FakeClock(datetime(2026, 10, 15, 9, 0, tzinfo=timezone.utc))
        ledger_path = tmp_path / "send_ledger.csv"

        service = _service(profile_store, thursday, ledger_path)
        first = run(settings=service.settings, service=service, respect_schedule=True)
        assert first["delivered"] == 1  # free-1 on Thursday; premium-1 has no Thursday send
        assert first["skipped"] == 1

        # each run reloads the ledger file the previous run wrote
        service = _service(profile_store, thursday, ledger_path)
        second = run(settings=service.settings, service=service, respect_schedule=True)
        assert second["delivered"] == 0
        assert second["skipped"] == 2


@pytest.mark.parametrize(
    "exc, status",
    [
        (None, 200),
        (ConfigError("bad"), 400),
        (NoSourcesConfigured("none"), 400),
        (TypeError("bad input"), 400),
        (ProfileNotFound("x"), 404),
        (SourceUnavailable("gh", "down"), 503),
        (ScorerTimeout("slow"), 503),
    ],
)
def test_status_for(exc, status):
    assert status_for(exc) == status
