"""LLM-backed scorer over an OpenAI-compatible chat endpoint (Groq by default).

The model sees the profile and an indexed list of candidates and answers with
a JSON array of ``{"index", "score", "reason"}`` objects. Every failure is
raised as a ``ScorerError`` subclass so the engine can fall back.
"""
from __future__ import annotations

import json
import re
from typing import Any

import openai
from openai import OpenAI

from jobping.config import RateLimitSettings, ScorerSettings
from jobping.errors import ScorerHardFailure, ScorerQuotaExceeded, ScorerTimeout
from jobping.log import get_logger
from jobping.matching.base import ScoredPosting
from jobping.models import Posting, Profile
from jobping.ratelimit import RateLimiter

log = get_logger(__name__)

LIMITER_KEY = "scorer:primary"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

PROMPT = """You match early-career job postings to a graduate's profile.

Profile:
{profile}

Postings (index: title | company | location | seniority | excerpt):
{postings}

Pick up to {top_n} postings that best fit the profile. Reply with ONLY a JSON
array, best first, no prose:
[{{"index": <posting index>, "score": <1-10>, "reason": "<one short sentence>"}}]"""


def _describe_profile(profile: Profile) -> str:
    lines = [
        f"Target cities: {', '.join(sorted(profile.target_cities)) or 'any'}",
        f"Target countries: {', '.join(sorted(profile.target_countries)) or 'any'}",
        f"Career paths: {', '.join(sorted(profile.career_paths)) or 'open'}",
        f"Roles: {', '.join(profile.roles) or 'open'}",
        f"Level: {profile.seniority}",
        f"Languages: {', '.join(sorted(profile.languages)) or 'not stated'}",
        f"Work environment: {profile.work_environment or 'no preference'}",
        f"Open to remote: {'yes' if profile.allow_remote else 'no'}",
    ]
    return "\n".join(lines)


def _describe_posting(index: int, p: Posting) -> str:
    excerpt = " ".join(p.description.split())[:240]
    return f"{index}: {p.title} | {p.company} | {p.location.label()} | {p.seniority} | {excerpt}"


def build_prompt(candidates: list[Posting], profile: Profile, top_n: int) -> str:
    return PROMPT.format(
        profile=_describe_profile(profile),
        postings="\n".join(_describe_posting(i, p) for i, p in enumerate(candidates)),
        top_n=top_n,
    )


def _normalize_score(value: Any) -> float:
    """Map the 1-10 scale the prompt asks for onto [0, 1]."""
    return min(max(float(value) / 10.0, 0.0), 1.0)


def parse_response(text: str, candidates: list[Posting]) -> list[ScoredPosting]:
    """Turn the model's reply into scored postings; raise ScorerHardFailure if unusable."""
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    start, end = cleaned.find("["), cleaned.rfind("]")
    if start == -1 or end <= start:
        raise ScorerHardFailure("scorer reply contained no JSON array")
    try:
        items = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ScorerHardFailure(f"scorer reply was not valid JSON: {exc}") from exc

    scored: list[ScoredPosting] = []
    seen: set[int] = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        idx = item.get("index", item.get("job_index"))
        raw_score = item.get("score", item.get("match_score"))
        if not isinstance(idx, int) or not 0 <= idx < len(candidates) or idx in seen:
            continue
        try:
            score = _normalize_score(raw_score)
        except (TypeError, ValueError):
            continue
        seen.add(idx)
        reason = str(item.get("reason") or item.get("match_reason") or "").strip()
        scored.append(ScoredPosting(posting=candidates[idx], score=score, reason=reason or "Strong fit"))
    if items and not scored:
        raise ScorerHardFailure("scorer reply referenced no valid postings")
    return scored


class PrimaryScorer:
    name = "primary"

    def __init__(
        self,
        settings: ScorerSettings | None = None,
        limiter: RateLimiter | None = None,
        limits: RateLimitSettings | None = None,
        client: Any = None,
        top_n: int = 5,
    ) -> None:
        self.settings = settings or ScorerSettings()
        self.limiter = limiter or RateLimiter()
        self.limits = limits or RateLimitSettings()
        self.top_n = top_n
        self._client = client

    @property
    def available(self) -> bool:
        return self.settings.enabled and bool(self._client or self.settings.api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.settings.api_key:
                raise ScorerHardFailure("no scorer API key configured")
            self._client = OpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
                max_retries=0,
            )
        return self._client

    def _complete(self, prompt: str) -> str:
        client = self._get_client()
        try:
            r = client.chat.completions.create(
                model=self.settings.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                timeout=self.settings.timeout,
            )
        except openai.APITimeoutError as exc:
            raise ScorerTimeout(f"scorer timed out after {self.settings.timeout:.0f}s") from exc
        except openai.RateLimitError as exc:
            raise ScorerQuotaExceeded("scorer backend rate limit or quota exceeded") from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 429:
                raise ScorerQuotaExceeded("scorer backend returned 429") from exc
            raise ScorerHardFailure(f"scorer backend returned {exc.status_code}") from exc
        except openai.APIError as exc:
            raise ScorerHardFailure(f"scorer call failed: {type(exc).__name__}") from exc
        return (r.choices[0].message.content or "").strip()

    def score(self, candidates: list[Posting], profile: Profile) -> list[ScoredPosting]:
        if not self.settings.enabled:
            raise ScorerHardFailure("primary scorer disabled")
        if not candidates:
            return []
        decision = self.limiter.check_limit(LIMITER_KEY, self.limits.scorer_limit, self.limits.scorer_window)
        if not decision.allowed:
            raise ScorerQuotaExceeded("local scorer budget exhausted")

        shortlist = candidates[: self.settings.max_candidates]
        prompt = build_prompt(shortlist, profile, self.top_n)
        text = self._complete(prompt)
        scored = parse_response(text, shortlist)
        log.debug("Primary scorer ranked %d of %d candidates", len(scored), len(shortlist))
        return scored
