"""Error taxonomy for ingestion and matching.

Most of these never reach a caller: adapters, batches and scorer calls are
isolated and turned into degraded results by the orchestrator and the
matching engine. Only configuration problems, rate-limit denials, unknown
subscribers and malformed matching input are raised outward.
"""
from __future__ import annotations

from typing import Any


class JobPingError(Exception):
    """Base class for every error raised by jobping."""


class ConfigError(JobPingError):
    """Settings file or environment holds an invalid value."""


class NoSourcesConfigured(JobPingError):
    """An ingestion run was requested without any enabled source."""


class SourceUnavailable(JobPingError):
    """Transport-level failure talking to a source (retried by the orchestrator)."""

    def __init__(self, source: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class NormalizationRejected(JobPingError):
    """A raw posting could not become a canonical Posting."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceBatchFailed(JobPingError):
    """One upsert batch failed; earlier and later batches are unaffected."""

    def __init__(self, batch_index: int, size: int, cause: BaseException) -> None:
        super().__init__(f"batch {batch_index} ({size} postings) failed: {cause}")
        self.batch_index = batch_index
        self.size = size
        self.cause = cause


class ScorerError(JobPingError):
    """Primary scorer could not produce scores; the engine falls back."""

    reason = "scorer_error"


class ScorerTimeout(ScorerError):
    reason = "timeout"


class ScorerQuotaExceeded(ScorerError):
    reason = "quota"


class ScorerHardFailure(ScorerError):
    reason = "hard_failure"


class ProfileNotFound(JobPingError):
    def __init__(self, subscriber_id: str) -> None:
        super().__init__(f"no profile for subscriber {subscriber_id!r}")
        self.subscriber_id = subscriber_id


class RateLimited(JobPingError):
    """Inbound call denied by the rate limiter."""

    def __init__(self, key: str, decision: Any) -> None:
        super().__init__(f"rate limit exceeded for {key!r}")
        self.key = key
        self.decision = decision


def status_for(exc: BaseException | None) -> int:
    """HTTP-style status an outer wrapper should return.

    ``None`` means the operation completed (possibly with zero results).
    """
    if exc is None:
        return 200
    if isinstance(exc, RateLimited):
        return 429
    if isinstance(exc, ProfileNotFound):
        return 404
    if isinstance(exc, (ConfigError, NoSourcesConfigured, TypeError)):
        return 400
    return 503
