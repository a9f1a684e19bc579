"""Adapter contract and the shared HTTP boundary for every source.

Adapters are single-attempt: transport failures surface as
``SourceUnavailable`` for the orchestrator to retry, while empty or malformed
payloads come back as an empty list.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import requests

from jobping.errors import SourceUnavailable
from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig

log = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; JobPingBot/1.0; +https://getjobping.com/bot)"
_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


class SourceAdapter(ABC):
    source: Source

    @abstractmethod
    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        """Return the source's postings in source order."""

    def _get(self, config: SourceConfig, url: str, *, accept: str, params: dict | None = None) -> requests.Response | None:
        """GET *url*; ``None`` for "nothing here" answers (404, 403, 410)."""
        slog = for_source(log, config.name)
        try:
            r = requests.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT, "Accept": accept},
                timeout=config.timeout,
            )
        except requests.Timeout as exc:
            raise SourceUnavailable(config.name, f"timed out after {config.timeout}s") from exc
        except (requests.ConnectionError, requests.RequestException, OSError) as exc:
            raise SourceUnavailable(config.name, f"transport error: {exc}") from exc

        if r.status_code in (403, 404, 410):
            slog.warning("HTTP %d for %s, treating as no listings", r.status_code, url)
            return None
        if r.status_code in _RETRYABLE_STATUS or r.status_code >= 500:
            raise SourceUnavailable(config.name, f"HTTP {r.status_code}", status_code=r.status_code)
        if r.status_code >= 400:
            slog.warning("HTTP %d for %s", r.status_code, url)
            return None
        return r

    def _get_json(self, config: SourceConfig, url: str, params: dict | None = None) -> Any:
        r = self._get(config, url, accept="application/json", params=params)
        if r is None:
            return None
        try:
            return r.json()
        except ValueError:
            for_source(log, config.name).warning("Response from %s is not valid JSON", url)
            return None

    def _get_html(self, config: SourceConfig, url: str) -> str:
        r = self._get(config, url, accept="text/html,application/xhtml+xml")
        return r.text if r is not None else ""
