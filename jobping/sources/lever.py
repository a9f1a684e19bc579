"""Lever hosted job sites via the public postings API."""
from __future__ import annotations

import re

from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig
from jobping.sources.base import SourceAdapter

log = get_logger(__name__)

API_URL = "https://api.lever.co/v0/postings"
_SITE_RE = re.compile(r"lever\.co/([^/?#]+)")


def site_id(config: SourceConfig) -> str:
    if config.options.get("site"):
        return str(config.options["site"])
    m = _SITE_RE.search(config.url or "")
    return m.group(1) if m else ""


class LeverAdapter(SourceAdapter):
    source = Source.LEVER

    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        slog = for_source(log, config.name)
        site = site_id(config)
        if not site:
            slog.warning("Cannot derive Lever site id from %r", config.url)
            return []

        data = self._get_json(config, f"{API_URL}/{site}", params={"mode": "json"})
        if not isinstance(data, list):
            if data is not None:
                slog.warning("Unexpected payload shape, expected a list")
            return []

        postings: list[RawPosting] = []
        for hit in data:
            if not isinstance(hit, dict):
                continue
            categories = hit.get("categories") or {}
            location = categories.get("location") or ", ".join(categories.get("allLocations") or [])
            if hit.get("workplaceType") == "remote" and "remote" not in (location or "").lower():
                location = f"{location}, Remote" if location else "Remote"
            labels = [v for v in (categories.get("team"), categories.get("department")) if v]
            postings.append(
                RawPosting(
                    source=self.source,
                    title=hit.get("text"),
                    company=config.company or site,
                    location=location,
                    description=hit.get("descriptionPlain") or hit.get("description"),
                    url=hit.get("hostedUrl") or hit.get("applyUrl"),
                    external_id=hit.get("id"),
                    posted_at=hit.get("createdAt"),
                    extra={"site": site, "labels": labels, "commitment": categories.get("commitment")},
                )
            )
        slog.info("Fetched %d postings", len(postings))
        return postings
