"""Unit tests for the LLM-backed primary scorer with a mocked OpenAI client."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from conftest import make_posting
from jobping.config import RateLimitSettings, ScorerSettings
from jobping.errors import ScorerHardFailure, ScorerQuotaExceeded, ScorerTimeout
from jobping.matching.primary import PrimaryScorer, build_prompt, parse_response
from jobping.ratelimit import RateLimiter

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _client(content=None, error=None):
    client = MagicMock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        message = MagicMock()
        message.content = content
        choice = MagicMock()
        choice.message = message
        client.chat.completions.create.return_value = MagicMock(choices=[choice])
    return client


def _scorer(client, limit=30):
    return PrimaryScorer(
        ScorerSettings(api_key="test-key"),
        limiter=RateLimiter(rng=lambda: 1.0),
        limits=RateLimitSettings(scorer_limit=limit),
        client=client,
    )


@pytest.fixture
def candidates():
    return [
        make_posting(title="Graduate Data Analyst", company="Northwind"),
        make_posting(title="Junior Data Engineer", company="Contoso"),
        make_posting(title="Marketing Intern", company="Fabrikam"),
    ]


class TestParseResponse:
    """Tests for parse_response."""

    def test_fenced_json(self, candidates):
        text = '```json\n[{"index": 1, "score": 8, "reason": "Strong SQL fit"}, {"index": 0, "score": 6, "reason": ""}]\n```'
        scored = parse_response(text, candidates)
        assert [s.posting.title for s in scored] == ["Junior Data Engineer", "Graduate Data Analyst"]
        assert scored[0].score == pytest.approx(0.8)
        assert scored[1].score == pytest.approx(0.6)
        assert scored[0].reason == "Strong SQL fit"
        assert scored[1].reason == "Strong fit"

    def test_lowest_score_ranks_below_high_score(self, candidates):
        scored = parse_response('[{"index": 1, "score": 9}, {"index": 0, "score": 1}]', candidates)
        by_title = {s.posting.title: s.score for s in scored}
        assert by_title["Graduate Data Analyst"] == pytest.approx(0.1)
        assert by_title["Junior Data Engineer"] == pytest.approx(0.9)

    def test_out_of_range_scores_clamped(self, candidates):
        scored = parse_response('[{"index": 0, "score": 14}, {"index": 1, "score": -2}]', candidates)
        assert [s.score for s in scored] == [1.0, 0.0]

    def test_legacy_field_names(self, candidates):
        text = '[{"job_index": 2, "match_score": 9, "match_reason": "Marketing interest"}]'
        scored = parse_response(text, candidates)
        assert scored[0].posting.title == "Marketing Intern"
        assert scored[0].score == pytest.approx(0.9)

    def test_prose_around_array(self, candidates):
        scored = parse_response('Here you go:\n[{"index": 0, "score": 7, "reason": "ok"}]\nThanks!', candidates)
        assert len(scored) == 1

    def test_bad_indexes_skipped(self, candidates):
        text = '[{"index": 7, "score": 9}, {"index": 0, "score": 9}, {"index": 0, "score": 5}, {"index": "1", "score": 5}]'
        scored = parse_response(text, candidates)
        assert len(scored) == 1
        assert scored[0].score == pytest.approx(0.9)

    @pytest.mark.parametrize("text", ["", "I cannot help with that.", "[{'index': 0}", '[{"index": 99, "score": 5}]'])
    def test_unusable_reply_is_hard_failure(self, candidates, text):
        with pytest.raises(ScorerHardFailure):
            parse_response(text, candidates)

    def test_empty_array_is_valid(self, candidates):
        assert parse_response("[]", candidates) == []


class TestPrimaryScorer:
    """Tests for PrimaryScorer.score and error classification."""

    def test_success(self, candidates, profile):
        client = _client('[{"index": 0, "score": 9, "reason": "Data graduate scheme"}]')
        scored = _scorer(client).score(candidates, profile)
        assert len(scored) == 1
        assert scored[0].posting is candidates[0]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert "Graduate Data Analyst" in kwargs["messages"][0]["content"]

    def test_timeout(self, candidates, profile):
        client = _client(error=openai.APITimeoutError(request=REQUEST))
        with pytest.raises(ScorerTimeout):
            _scorer(client).score(candidates, profile)

    def test_rate_limit_error_is_quota(self, candidates, profile):
        error = openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)
        with pytest.raises(ScorerQuotaExceeded):
            _scorer(_client(error=error)).score(candidates, profile)

    def test_server_error_is_hard_failure(self, candidates, profile):
        error = openai.InternalServerError("oops", response=httpx.Response(500, request=REQUEST), body=None)
        with pytest.raises(ScorerHardFailure):
            _scorer(_client(error=error)).score(candidates, profile)

    def test_connection_error_is_hard_failure(self, candidates, profile):
        error = openai.APIConnectionError(request=REQUEST)
        with pytest.raises(ScorerHardFailure):
            _scorer(_client(error=error)).score(candidates, profile)

    def test_local_budget_exhausted(self, candidates, profile):
        client = _client('[{"index": 0, "score": 9, "reason": "x"}]')
        scorer = _scorer(client, limit=1)
        scorer.score(candidates, profile)
        with pytest.raises(ScorerQuotaExceeded):
            scorer.score(candidates, profile)
        assert client.chat.completions.create.call_count == 1

    def test_missing_api_key(self, candidates, profile):
        scorer = PrimaryScorer(ScorerSettings(api_key=""), limiter=RateLimiter(rng=lambda: 1.0))
        assert scorer.available is False
        with pytest.raises(ScorerHardFailure):
            scorer.score(candidates, profile)

    def test_disabled(self, candidates, profile):
        scorer = PrimaryScorer(ScorerSettings(enabled=False, api_key="k"), client=_client("[]"))
        assert scorer.available is False
        with pytest.raises(ScorerHardFailure):
            scorer.score(candidates, profile)

    def test_candidate_list_truncated(self, profile):
        pool = [make_posting(title=f"Graduate Analyst {i}", company=f"C{i}") for i in range(40)]
        client = _client("[]")
        PrimaryScorer(ScorerSettings(api_key="k", max_candidates=30), client=client).score(pool, profile)
        prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "29: Graduate Analyst 29" in prompt
        assert "30: Graduate Analyst 30" not in prompt


def test_build_prompt_lists_profile_and_postings(candidates, profile):
    prompt = build_prompt(candidates, profile, top_n=5)
    assert "Target cities: London" in prompt
    assert "0: Graduate Data Analyst | Northwind" in prompt
    assert "up to 5 postings" in prompt
