"""Turn source-specific raw postings into canonical Postings.

Everything here is deterministic: the same logical listing scraped on two
different days yields the same ``identity_hash``, which is what lets the
gateway upsert instead of insert.
"""
from __future__ import annotations

import hashlib
import html
import re
import warnings
from datetime import datetime, timezone
from typing import Any, Callable, Iterable
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from jobping.config import NormalizerSettings
from jobping.errors import NormalizationRejected
from jobping.locations import fold, has_remote_marker, resolve_location
from jobping.log import get_logger
from jobping.models import Posting, PostingStatus, RawPosting, Rejection, NormalizeResult

log = get_logger(__name__)

PostingFilter = Callable[[RawPosting, str, str], bool]

CAREER_PATHS: dict[str, tuple[str, ...]] = {
    "strategy": ("consulting", "strategy", "business design", "transformation analyst",
                 "corporate development", "business analyst"),
    "data": ("data analyst", "data scientist", "data engineer", "business intelligence",
             "analytics", "insights", "machine learning"),
    "sales": ("sales", "client success", "account manager", "business development",
              "customer success", "account executive"),
    "marketing": ("marketing", "brand", "content", "growth", "social media", "seo"),
    "finance": ("finance", "investment", "banking", "financial analyst", "private equity",
                "venture capital", "accounting", "audit"),
    "operations": ("operations", "supply chain", "logistics", "procurement"),
    "product": ("product manager", "product management", "product owner", "product analyst",
                "innovation"),
    "tech": ("software", "developer", "engineer", "devops", "frontend", "backend",
             "full stack", "fullstack", "it analyst", "cloud"),
    "sustainability": ("sustainability", "esg", "environmental", "climate", "impact"),
}

SENIORITY_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"\b(?:intern|internship|praktikum|stagiaire|werkstudent|working student)\b", "internship"),
    (r"\b(?:graduate|new grad|graduate programme|graduate program|trainee|apprentice)\b", "graduate"),
    (r"\b(?:senior|sr\.?|lead|principal|staff|head of|director)\b", "senior"),
    (r"\b(?:mid[- ]level|intermediate|3-5 years)\b", "mid"),
    (r"\b(?:junior|jr\.?|associate)\b", "junior"),
    (r"\b(?:entry[- ]level|early[- ]career|0-2 years|no experience)\b", "entry"),
)

KNOWN_LANGUAGES: tuple[str, ...] = (
    "english", "french", "german", "spanish", "italian", "portuguese", "dutch",
    "swedish", "danish", "polish",
)

_LANGUAGE_RE = re.compile(
    r"\b(" + "|".join(KNOWN_LANGUAGES) + r")\b(?=[^.]{0,40}\b(?:speaking|speaker|fluent|fluency|required|native|proficien))"
    r"|\b(?:fluent|fluency|native|proficient|proficiency)\b[^.]{0,30}?\b(" + "|".join(KNOWN_LANGUAGES) + r")\b"
)


def clean_text(value: str | None) -> str:
    """Strip markup, unescape entities and collapse whitespace."""
    if not value:
        return ""
    text = html.unescape(str(value))
    if "<" in text and ">" in text:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
            text = BeautifulSoup(text, "html.parser").get_text(" ")
    return " ".join(text.split())


def canonical_url(url: str | None, base_url: str | None = None) -> str | None:
    """Absolute http(s) URL without query, fragment or trailing slash."""
    if not url:
        return None
    url = url.strip()
    if base_url and not urlsplit(url).scheme:
        url = urljoin(base_url, url)
    parts = urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def identity_hash(source: str, title: str, company: str, location: str, url: str) -> str:
    key = "|".join(fold(part) for part in (source, title, company, location, url))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def parse_posted_at(value: Any) -> datetime | None:
    """ISO-8601 strings, epoch seconds or epoch milliseconds; anything else is None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        ts = float(value)
        if ts > 1e11:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def detect_seniority(title: str, description: str = "") -> str:
    # title wins over description: "Junior Analyst" with "report to a senior manager"
    for text in (title, description):
        low = text.lower()
        for pattern, level in SENIORITY_PATTERNS:
            if re.search(pattern, low):
                return level
    return "unknown"


def detect_work_environment(*texts: str) -> str | None:
    low = " ".join(t.lower() for t in texts if t)
    if "hybrid" in low:
        return "hybrid"
    if has_remote_marker(low):
        return "remote"
    if re.search(r"\bon[- ]?site\b|\bin[- ]office\b", low):
        return "on-site"
    return None


def detect_languages(text: str) -> list[str]:
    found: list[str] = []
    for m in _LANGUAGE_RE.finditer(text.lower()):
        lang = m.group(1) or m.group(2)
        if lang and lang not in found:
            found.append(lang)
    return found


def detect_categories(title: str, description: str = "", extra_labels: Iterable[str] = ()) -> list[str]:
    hay_title = " ".join([title, *extra_labels]).lower()
    hay_desc = description.lower()[:2000]
    cats: list[str] = []
    for path, keywords in CAREER_PATHS.items():
        if any(re.search(rf"\b{re.escape(k)}\b", hay_title) for k in keywords):
            cats.append(path)
    if not cats:
        for path, keywords in CAREER_PATHS.items():
            if any(re.search(rf"\b{re.escape(k)}\b", hay_desc) for k in keywords):
                cats.append(path)
    return cats


class EntryLevelFilter:
    """Default posting filter: drops clearly senior titles.

    With ``require_keywords`` set, a posting must also mention one of them in
    its title or description.
    """

    def __init__(self, exclude_title_keywords: Iterable[str] = (), require_keywords: Iterable[str] = ()) -> None:
        self.exclude = tuple(k.lower() for k in exclude_title_keywords)
        self.require = tuple(k.lower() for k in require_keywords)

    @classmethod
    def from_settings(cls, settings: NormalizerSettings) -> "EntryLevelFilter":
        return cls(settings.exclude_title_keywords, settings.require_keywords)

    def __call__(self, raw: RawPosting, title: str, description: str) -> bool:
        low_title = f" {title.lower()} "
        for keyword in self.exclude:
            if keyword.endswith(" ") or keyword.endswith("."):
                if keyword in low_title:
                    return False
            elif re.search(rf"\b{re.escape(keyword)}\b", low_title):
                return False
        if self.require:
            hay = f"{title} {description}".lower()
            return any(k in hay for k in self.require)
        return True


class Normalizer:
    def __init__(self, posting_filter: PostingFilter | None = None, clock: Callable[[], datetime] | None = None) -> None:
        self.posting_filter: PostingFilter = posting_filter or EntryLevelFilter.from_settings(NormalizerSettings())
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def normalize(self, raw: RawPosting) -> NormalizeResult:
        try:
            return self._normalize(raw)
        except NormalizationRejected as exc:
            return Rejection(reason=exc.reason, source=raw.source, title=raw.title)

    def normalize_many(self, raws: Iterable[RawPosting]) -> tuple[list[Posting], list[Rejection]]:
        postings: list[Posting] = []
        rejections: list[Rejection] = []
        for raw in raws:
            result = self.normalize(raw)
            if isinstance(result, Rejection):
                log.debug("Rejected %r from %s: %s", result.title, result.source.value, result.reason)
                rejections.append(result)
            else:
                postings.append(result)
        return postings, rejections

    def _normalize(self, raw: RawPosting) -> Posting:
        title = clean_text(raw.title)
        if not title:
            raise NormalizationRejected("missing title")
        company = clean_text(raw.company)
        if not company:
            raise NormalizationRejected("missing company")
        url = canonical_url(raw.url, raw.base_url)
        if not url:
            raise NormalizationRejected(f"missing or invalid url {raw.url!r}")

        description = clean_text(raw.description)
        location_text = clean_text(raw.location)
        location = resolve_location(location_text)
        if not location_text:
            if not (has_remote_marker(title) or has_remote_marker(description[:500])):
                raise NormalizationRejected("missing location")
            location = resolve_location("Remote")
            location_text = location.raw

        if not self.posting_filter(raw, title, description):
            raise NormalizationRejected("filtered: not entry-level")

        labels = [str(v) for v in raw.extra.get("labels", [])]
        now = self._clock()
        return Posting(
            identity_hash=identity_hash(raw.source.value, title, company, location_text, url),
            title=title,
            company=company,
            location=location,
            description=description,
            url=url,
            source=raw.source,
            posted_at=parse_posted_at(raw.posted_at),
            first_seen_at=now,
            last_seen_at=now,
            status=PostingStatus.ACTIVE,
            categories=detect_categories(title, description, labels),
            seniority=detect_seniority(title, description),
            work_environment=detect_work_environment(location_text, title, description[:1000]),
            languages=detect_languages(description),
        )
