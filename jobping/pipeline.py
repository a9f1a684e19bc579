"""
Scheduled job-matching run.

Runs: load settings → ingest once → match every subscriber → hand results to delivery.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

from jobping.config import Settings, ensure_dirs, load_settings
from jobping.delivery import DeliverySink, LoggingDeliverySink, SendLedger, plan_for
from jobping.errors import JobPingError, status_for
from jobping.log import get_logger
from jobping.models import Source, SourceConfig
from jobping.service import JobPingService
from jobping.store import CsvJobStore, InMemoryJobStore, JobStore

log = get_logger(__name__)

MOCK_SOURCE = SourceConfig(name="mock", source=Source.MOCK, company="Sample")


def build_store(settings: Settings) -> JobStore:
    if settings.store_path:
        return CsvJobStore(settings.store_path)
    log.info("No store_path configured, postings are kept in memory for this run")
    return InMemoryJobStore()


def run(
    *,
    settings_path: Path | str | None = None,
    settings: Settings | None = None,
    service: JobPingService | None = None,
    sink: DeliverySink | None = None,
    ledger: SendLedger | None = None,
    respect_schedule: bool = False,
    use_mock: bool = False,
) -> dict[str, Any]:
    settings = settings or load_settings(settings_path)
    ensure_dirs()
    service = service or JobPingService(settings, job_store=build_store(settings))
    sink = sink or LoggingDeliverySink()
    ledger = ledger or SendLedger(settings.ledger_path)

    # 1. Ingest
    sources = list(settings.sources)
    if not sources and use_mock:
        log.warning("No sources configured, falling back to the mock source")
        sources = [MOCK_SOURCE]
    summary = service.ingest_once(sources)

    # 2. Match and deliver per subscriber
    today = service.now()
    delivered = 0
    skipped = 0
    errors: dict[str, int] = {}
    profiles = service.profile_store.list()
    log.info("Matching %d subscriber(s)...", len(profiles))
    for profile in profiles:
        if respect_schedule and not ledger.can_send(profile, today):
            skipped += 1
            continue
        try:
            result = service.match_subscriber(profile.subscriber_id)
        except JobPingError as exc:
            log.error("Matching failed for %s: %s", profile.subscriber_id, exc)
            errors[profile.subscriber_id] = status_for(exc)
            continue
        sink.deliver(profile, result)
        ledger.record(profile, today, len(result))
        delivered += 1
        log.debug("%s on the %s plan", profile.subscriber_id, plan_for(profile).tier.value)

    log.info(
        "Run complete: postings=%d subscribers=%d delivered=%d skipped=%d errors=%d",
        summary.total_postings, len(profiles), delivered, skipped, len(errors),
    )
    return {
        "ingestion": summary.as_dict(),
        "subscribers": len(profiles),
        "delivered": delivered,
        "skipped": skipped,
        "errors": errors,
    }


if __name__ == "__main__":
    result = run(use_mock=True)
    log.info(
        "Postings: %d, Delivered: %d, Skipped: %d",
        sum(s["count"] for s in result["ingestion"]["sources"].values()),
        result["delivered"], result["skipped"],
    )
