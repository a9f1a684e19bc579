"""
Ingestion orchestrator.

Runs: fetch (per source, bounded pool) → normalize → dedup gateway → summary.

Retry, backoff and timeouts live here and nowhere else; adapters make a
single attempt. A source that keeps failing degrades to zero postings for the
run instead of aborting its siblings.
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed
from typing import Callable, Iterable, Mapping

from jobping.config import IngestionSettings
from jobping.errors import NoSourcesConfigured, SourceUnavailable
from jobping.gateway import DedupGateway
from jobping.log import for_source, get_logger
from jobping.models import IngestionSummary, RawPosting, Source, SourceConfig, SourceOutcome, SourceReport
from jobping.normalize import Normalizer
from jobping.retry import RetryPolicy, call_with_retry
from jobping.sources import SourceAdapter, build_adapter, enabled_sources

log = get_logger(__name__)


class AdapterTimeout(Exception):
    """Wall-clock budget for one attempt ran out; the call is abandoned."""


def _call_with_timeout(fn: Callable[[], list[RawPosting]], timeout: float) -> list[RawPosting]:
    # A dedicated thread per attempt so a hung socket cannot pin a pool worker
    # past its budget; the abandoned thread finishes on its own.
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="jobping-fetch")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        raise AdapterTimeout(f"no response within {timeout:.1f}s") from None
    finally:
        executor.shutdown(wait=False)


class IngestionOrchestrator:
    def __init__(
        self,
        gateway: DedupGateway,
        normalizer: Normalizer | None = None,
        settings: IngestionSettings | None = None,
        adapters: Mapping[Source, SourceAdapter] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway
        self.normalizer = normalizer or Normalizer()
        self.settings = settings or IngestionSettings()
        self._adapters = dict(adapters or {})
        self._sleep = sleep
        self.policy = RetryPolicy(
            max_attempts=self.settings.max_attempts,
            base_delay=self.settings.base_delay,
            max_delay=self.settings.max_delay,
        )

    def _adapter_for(self, source: Source) -> SourceAdapter:
        if source not in self._adapters:
            self._adapters[source] = build_adapter(source)
        return self._adapters[source]

    def fetch_source(self, config: SourceConfig) -> SourceOutcome:
        """Run one adapter under the retry/timeout policy; never raises."""
        slog = for_source(log, config.name)
        adapter = self._adapter_for(config.source)
        timeout = config.timeout or self.settings.default_timeout
        try:
            raw, attempts = call_with_retry(
                lambda: _call_with_timeout(lambda: adapter.fetch(config), timeout),
                self.policy,
                retryable=(SourceUnavailable,),
                label=f"[{config.name}] fetch",
                sleep=self._sleep,
            )
        except SourceUnavailable as exc:
            return SourceOutcome.degraded(config.name, str(exc), getattr(exc, "attempts", self.policy.max_attempts))
        except AdapterTimeout as exc:
            slog.warning("Abandoned: %s", exc)
            return SourceOutcome.degraded(config.name, f"timeout: {exc}")
        except Exception as exc:
            slog.exception("Adapter crashed")
            return SourceOutcome.degraded(config.name, f"unexpected error: {exc!r}")
        slog.info("Returned %d raw postings (attempts=%d)", len(raw), attempts)
        return SourceOutcome.ok(config.name, raw, attempts)

    def run(self, source_configs: Iterable[SourceConfig]) -> IngestionSummary:
        configs = enabled_sources(source_configs)
        if not configs:
            raise NoSourcesConfigured("ingestion requires at least one enabled source")

        started = time.monotonic()
        summary = IngestionSummary()
        workers = max(1, min(self.settings.max_workers, len(configs)))
        log.info("Ingesting from %d source(s) with %d worker(s)...", len(configs), workers)

        if workers == 1:
            for cfg in configs:
                self._absorb(self.fetch_source(cfg), summary)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jobping-source") as pool:
                futures = [pool.submit(self.fetch_source, cfg) for cfg in configs]
                for future in as_completed(futures):
                    self._absorb(future.result(), summary)

        summary.duration_s = time.monotonic() - started
        if summary.failed:
            log.error("Ingestion failed: no postings and %d source error(s)", len(summary.errored))
        elif summary.errored:
            log.warning(
                "Ingestion degraded: %d/%d source(s) errored (%s)",
                len(summary.errored), len(configs), ", ".join(summary.errored),
            )
        log.info(
            "Ingestion complete: postings=%d rejected=%d inserted=%d updated=%d failed=%d in %.1fs",
            summary.total_postings, summary.rejected, summary.store.inserted,
            summary.store.updated, summary.store.failed, summary.duration_s,
        )
        return summary

    def _absorb(self, outcome: SourceOutcome, summary: IngestionSummary) -> None:
        report = SourceReport(attempts=outcome.attempts, error=outcome.error)
        summary.sources[outcome.name] = report
        if not outcome.is_ok:
            for_source(log, outcome.name).error("Degraded to zero postings: %s", outcome.error)
            return
        postings, rejections = self.normalizer.normalize_many(outcome.raw)
        report.count = len(postings)
        report.rejected = len(rejections)
        if rejections:
            for_source(log, outcome.name).info("Rejected %d posting(s)", len(rejections))
        if postings:
            summary.store = summary.store + self.gateway.upsert_batch(postings)


def ingest_once(
    source_configs: Iterable[SourceConfig],
    gateway: DedupGateway,
    *,
    normalizer: Normalizer | None = None,
    settings: IngestionSettings | None = None,
    adapters: Mapping[Source, SourceAdapter] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> IngestionSummary:
    return IngestionOrchestrator(gateway, normalizer, settings, adapters, sleep).run(source_configs)
