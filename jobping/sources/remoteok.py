"""RemoteOK public API (remote jobs only, no key required).

The first element of the response array is a legal notice, not a job.
"""
from __future__ import annotations

from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig
from jobping.sources.base import SourceAdapter

log = get_logger(__name__)

API_URL = "https://remoteok.com/api"


class RemoteOKAdapter(SourceAdapter):
    source = Source.REMOTEOK

    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        slog = for_source(log, config.name)
        params = {"tag": config.options["tag"]} if config.options.get("tag") else None
        data = self._get_json(config, config.url or API_URL, params=params)
        if not isinstance(data, list):
            if data is not None:
                slog.warning("Unexpected payload shape, expected a list")
            return []

        postings: list[RawPosting] = []
        for hit in data:
            # legal notice entry carries no position
            if not isinstance(hit, dict) or not hit.get("position"):
                continue
            location = hit.get("location") or "Remote"
            if "remote" not in location.lower():
                location = f"Remote, {location}"
            postings.append(
                RawPosting(
                    source=self.source,
                    title=hit.get("position"),
                    company=hit.get("company"),
                    location=location,
                    description=hit.get("description"),
                    url=hit.get("url") or (f"https://remoteok.com/remote-jobs/{hit['id']}" if hit.get("id") else None),
                    external_id=str(hit.get("id") or "") or None,
                    posted_at=hit.get("epoch") or hit.get("date"),
                    extra={"labels": list(hit.get("tags") or [])},
                )
            )
        slog.info("Fetched %d postings", len(postings))
        return postings
