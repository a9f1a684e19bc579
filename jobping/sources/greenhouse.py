"""Greenhouse job boards (public boards API, no key required).

Docs: https://developers.greenhouse.io/job-board.html
"""
from __future__ import annotations

from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig
from jobping.sources.base import SourceAdapter

log = get_logger(__name__)

BASE_URL = "https://boards-api.greenhouse.io/v1/boards"


def board_slug(config: SourceConfig) -> str:
    """``board`` option, or the last path segment of a boards.greenhouse.io URL."""
    slug = str(config.options.get("board") or "")
    if not slug and config.url:
        slug = config.url.rstrip("/").rsplit("/", 1)[-1]
    return slug


class GreenhouseAdapter(SourceAdapter):
    source = Source.GREENHOUSE

    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        slog = for_source(log, config.name)
        board = board_slug(config)
        if not board:
            slog.warning("No board slug configured")
            return []

        data = self._get_json(config, f"{BASE_URL}/{board}/jobs", params={"content": "true"})
        if not isinstance(data, dict) or not isinstance(data.get("jobs"), list):
            if data is not None:
                slog.warning("Unexpected payload shape, no 'jobs' list")
            return []

        postings: list[RawPosting] = []
        for hit in data["jobs"]:
            if not isinstance(hit, dict):
                continue
            departments = [d.get("name", "") for d in hit.get("departments") or [] if isinstance(d, dict)]
            offices = [o.get("name", "") for o in hit.get("offices") or [] if isinstance(o, dict)]
            location = (hit.get("location") or {}).get("name") or ", ".join(o for o in offices if o)
            postings.append(
                RawPosting(
                    source=self.source,
                    title=hit.get("title"),
                    company=config.company or board,
                    location=location,
                    description=hit.get("content"),
                    url=hit.get("absolute_url"),
                    external_id=str(hit["id"]) if hit.get("id") is not None else None,
                    posted_at=hit.get("updated_at"),
                    extra={"board": board, "labels": departments, "offices": offices},
                )
            )
        slog.info("Fetched %d postings", len(postings))
        return postings
