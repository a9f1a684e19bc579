"""Offline source for local runs and tests; no network access.

Postings come from the ``postings`` option when given, otherwise from a
fixed sample set. The samples are stable so repeated runs exercise the
upsert path rather than inserting new rows.
"""
from __future__ import annotations

from jobping.log import for_source, get_logger
from jobping.models import RawPosting, Source, SourceConfig
from jobping.sources.base import SourceAdapter

log = get_logger(__name__)

SAMPLE_POSTINGS: tuple[dict, ...] = (
    {
        "title": "Graduate Data Analyst",
        "company": "Northwind Analytics",
        "location": "London, UK",
        "url": "https://example.com/jobs/graduate-data-analyst",
        "description": "Join our graduate programme. SQL, Python, dashboards. Fluent English required.",
        "posted_at": "2026-10-10T09:00:00Z",
    },
    {
        "title": "Junior Software Engineer",
        "company": "Contoso Cloud",
        "location": "Dublin, Ireland",
        "url": "https://example.com/jobs/junior-software-engineer",
        "description": "Backend services in Python and Go. Hybrid, two days in office.",
        "posted_at": "2026-10-12T09:00:00Z",
    },
    {
        "title": "Marketing Intern",
        "company": "Fabrikam",
        "location": "Remote - Europe",
        "url": "https://example.com/jobs/marketing-intern",
        "description": "Six month internship supporting growth campaigns. Fully remote.",
        "posted_at": "2026-10-14T09:00:00Z",
    },
)


class MockAdapter(SourceAdapter):
    source = Source.MOCK

    def fetch(self, config: SourceConfig) -> list[RawPosting]:
        entries = config.options.get("postings") or SAMPLE_POSTINGS
        postings = [
            RawPosting(
                source=self.source,
                title=e.get("title"),
                company=e.get("company") or config.company,
                location=e.get("location"),
                description=e.get("description"),
                url=e.get("url"),
                external_id=e.get("id"),
                posted_at=e.get("posted_at"),
                extra={"labels": list(e.get("labels") or [])},
            )
            for e in entries
        ]
        for_source(log, config.name).info("Generated %d sample postings", len(postings))
        return postings
