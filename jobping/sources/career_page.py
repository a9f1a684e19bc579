"""Company career pages scraped from HTML.

Selectors cover the common ATS-hosted and hand-built layouts; a source can
pin its own with ``selector`` / ``title_selector`` / ``location_selector``
options. A page with no recognizable listings yields nothing.
"""
from __future__ import annotations

from bs4 import BeautifulSoup

from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig
from jobping.sources.base import SourceAdapter

log = get_logger(__name__)

LISTING_SELECTORS: tuple[str, ...] = (
    ".opening",
    ".posting",
    ".job-posting",
    ".job-post",
    "[data-job-id]",
    "[data-posting-id]",
    "li.job",
    "div.job",
    "tr.job",
    ".careers-job",
    ".position",
)
TITLE_SELECTORS: tuple[str, ...] = ("a.posting-btn", "h5", "h3", "h2", ".title", "a")
LOCATION_SELECTORS: tuple[str, ...] = (".location", ".posting-categories .sort-by-location", "[data-location]", ".job-location")


def _first(node, selectors):
    for sel in selectors:
        found = node.select_one(sel)
        if found is not None:
            return found
    return None


class CareerPageAdapter(SourceAdapter):
    source = Source.CAREER_PAGE

    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        slog = for_source(log, config.name)
        if not config.url:
            slog.warning("No career page URL configured")
            return []
        page = self._get_html(config, config.url)
        postings = self.parse(page, config)
        slog.info("Fetched %d postings", len(postings))
        return postings

    def parse(self, page: str, config: SourceConfig) -> list[RawPosting]:
        if not page or "<" not in page:
            return []
        soup = BeautifulSoup(page, "html.parser")

        pinned = config.options.get("selector")
        selectors = (pinned,) if pinned else LISTING_SELECTORS
        cards = []
        for sel in selectors:
            cards = soup.select(sel)
            if cards:
                break
        if not cards:
            for_source(log, config.name).warning("No listings matched on %s", config.url)
            return []

        title_sels = (config.options["title_selector"],) if config.options.get("title_selector") else TITLE_SELECTORS
        loc_sels = (config.options["location_selector"],) if config.options.get("location_selector") else LOCATION_SELECTORS

        postings: list[RawPosting] = []
        for card in cards:
            title_tag = _first(card, title_sels)
            link = card if card.name == "a" else (card.select_one("a[href]") or title_tag)
            loc_tag = _first(card, loc_sels)
            href = link.get("href") if link is not None and link.has_attr("href") else None
            location = None
            if loc_tag is not None:
                location = loc_tag.get("data-location") or loc_tag.get_text(" ", strip=True)
            dept = card.select_one(".department")
            postings.append(
                RawPosting(
                    source=self.source,
                    title=title_tag.get_text(" ", strip=True) if title_tag is not None else None,
                    company=config.company,
                    location=location,
                    description=card.get_text(" ", strip=True),
                    url=href,
                    base_url=config.url,
                    external_id=card.get("data-job-id") or card.get("data-posting-id"),
                    extra={"labels": [dept.get_text(strip=True)] if dept is not None else []},
                )
            )
        return postings
