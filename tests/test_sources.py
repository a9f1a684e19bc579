"""Unit tests for source adapters with the HTTP layer patched out."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from jobping.errors import ConfigError, SourceUnavailable
from jobping.models import Source, SourceConfig
from jobping.sources import (
    CareerPageAdapter,
    GreenhouseAdapter,
    LeverAdapter,
    MockAdapter,
    RemoteOKAdapter,
    build_adapter,
    enabled_sources,
)
from jobping.sources.greenhouse import board_slug
from jobping.sources.lever import site_id

GET = "jobping.sources.base.requests.get"


def _response(status=200, payload=None, text=""):
    r = MagicMock()
    r.status_code = status
    r.text = text
    if isinstance(payload, Exception):
        r.json.side_effect = payload
    else:
        r.json.return_value = payload
    return r


def _config(source, **kwargs):
    kwargs.setdefault("name", source.value)
    kwargs.setdefault("company", "Acme")
    return SourceConfig(source=source, **kwargs)


class TestHttpBoundary:
    """Status and transport handling shared by every adapter."""

    def test_server_error_raises_source_unavailable(self):
        with patch(GET, return_value=_response(503)):
            with pytest.raises(SourceUnavailable) as exc_info:
                GreenhouseAdapter().fetch(_config(Source.GREENHOUSE, options={"board": "acme"}))
        assert exc_info.value.status_code == 503

    def test_rate_limited_raises_source_unavailable(self):
        with patch(GET, return_value=_response(429)):
            with pytest.raises(SourceUnavailable):
                LeverAdapter().fetch(_config(Source.LEVER, options={"site": "acme"}))

    def test_timeout_raises_source_unavailable(self):
        with patch(GET, side_effect=requests.Timeout("read timed out")):
            with pytest.raises(SourceUnavailable, match="timed out"):
                RemoteOKAdapter().fetch(_config(Source.REMOTEOK))

    def test_not_found_is_empty(self):
        with patch(GET, return_value=_response(404)):
            assert GreenhouseAdapter().fetch(_config(Source.GREENHOUSE, options={"board": "gone"})) == []

    def test_invalid_json_is_empty(self):
        with patch(GET, return_value=_response(200, ValueError("bad json"))):
            assert LeverAdapter().fetch(_config(Source.LEVER, options={"site": "acme"})) == []

    def test_timeout_passed_to_requests(self):
        with patch(GET, return_value=_response(200, [])) as m:
            RemoteOKAdapter().fetch(_config(Source.REMOTEOK, timeout=7.5))
        assert m.call_args.kwargs["timeout"] == 7.5


class TestGreenhouse:
    """Tests for GreenhouseAdapter."""

    def test_parses_jobs(self):
        payload = {
            "jobs": [
                {
                    "id": 123,
                    "title": "Graduate Analyst",
                    "absolute_url": "https://boards.greenhouse.io/acme/jobs/123",
                    "location": {"name": "London, UK"},
                    "content": "&lt;p&gt;Join us&lt;/p&gt;",
                    "updated_at": "2026-10-10T10:00:00-04:00",
                    "departments": [{"name": "Finance"}],
                    "offices": [{"name": "London"}],
                },
                "not a dict",
            ]
        }
        with patch(GET, return_value=_response(200, payload)) as m:
            raws = GreenhouseAdapter().fetch(_config(Source.GREENHOUSE, options={"board": "acme"}))
        assert m.call_args.args[0] == "https://boards-api.greenhouse.io/v1/boards/acme/jobs"
        assert m.call_args.kwargs["params"] == {"content": "true"}
        assert len(raws) == 1
        raw = raws[0]
        assert raw.source is Source.GREENHOUSE
        assert raw.title == "Graduate Analyst"
        assert raw.company == "Acme"
        assert raw.location == "London, UK"
        assert raw.external_id == "123"
        assert raw.extra["labels"] == ["Finance"]

    def test_unexpected_shape_is_empty(self):
        with patch(GET, return_value=_response(200, {"error": "nope"})):
            assert GreenhouseAdapter().fetch(_config(Source.GREENHOUSE, options={"board": "acme"})) == []

    def test_board_slug_from_url(self):
        cfg = _config(Source.GREENHOUSE, url="https://boards.greenhouse.io/stripe/")
        assert board_slug(cfg) == "stripe"

    def test_missing_board_skips_request(self):
        with patch(GET) as m:
            assert GreenhouseAdapter().fetch(_config(Source.GREENHOUSE)) == []
        m.assert_not_called()


class TestLever:
    """Tests for LeverAdapter."""

    def test_parses_postings_and_remote_workplace(self):
        payload = [
            {
                "id": "abc",
                "text": "Junior Product Analyst",
                "hostedUrl": "https://jobs.lever.co/acme/abc",
                "descriptionPlain": "Work on product analytics.",
                "createdAt": 1760000000000,
                "workplaceType": "remote",
                "categories": {"location": "Berlin", "team": "Product", "commitment": "Full-time"},
            }
        ]
        with patch(GET, return_value=_response(200, payload)) as m:
            raws = LeverAdapter().fetch(_config(Source.LEVER, url="https://jobs.lever.co/acme"))
        assert m.call_args.args[0] == "https://api.lever.co/v0/postings/acme"
        assert len(raws) == 1
        assert raws[0].location == "Berlin, Remote"
        assert raws[0].posted_at == 1760000000000
        assert raws[0].extra["labels"] == ["Product"]

    def test_site_id_option_wins(self):
        assert site_id(_config(Source.LEVER, url="https://jobs.lever.co/other", options={"site": "acme"})) == "acme"


class TestRemoteOK:
    """Tests for RemoteOKAdapter."""

    def test_skips_legal_notice_and_prefixes_remote(self):
        payload = [
            {"legal": "API terms of service"},
            {
                "id": "9",
                "position": "Junior Data Engineer",
                "company": "Globex",
                "location": "Europe",
                "url": "https://remoteok.com/remote-jobs/9",
                "epoch": 1760000000,
                "tags": ["data", "python"],
            },
        ]
        with patch(GET, return_value=_response(200, payload)):
            raws = RemoteOKAdapter().fetch(_config(Source.REMOTEOK))
        assert len(raws) == 1
        assert raws[0].company == "Globex"
        assert raws[0].location == "Remote, Europe"
        assert raws[0].extra["labels"] == ["data", "python"]


class TestCareerPage:
    """Tests for CareerPageAdapter."""

    PAGE = """
    <html><body>
      <div class="opening"><a href="/jobs/1">Graduate Consultant</a><span class="location">Dublin</span></div>
      <div class="opening"><a href="https://acme.example/jobs/2">Marketing Intern</a>
        <span class="location" data-location="Remote">Anywhere</span></div>
    </body></html>
    """

    def test_parses_listings(self):
        cfg = _config(Source.CAREER_PAGE, url="https://acme.example/careers")
        raws = CareerPageAdapter().parse(self.PAGE, cfg)
        assert [r.title for r in raws] == ["Graduate Consultant", "Marketing Intern"]
        assert raws[0].url == "/jobs/1"
        assert raws[0].base_url == "https://acme.example/careers"
        assert raws[0].location == "Dublin"
        assert raws[1].location == "Remote"

    @pytest.mark.parametrize("page", ["", "not html at all", "<html><body><p>We are hiring soon</p>", "<ul><li>unclosed"])
    def test_malformed_or_empty_html_yields_nothing(self, page):
        cfg = _config(Source.CAREER_PAGE, url="https://acme.example/careers")
        assert CareerPageAdapter().parse(page, cfg) == []

    def test_pinned_selector(self):
        page = '<ul><li class="role"><h4><a href="/r/1">Junior Analyst</a></h4><em class="where">Paris</em></li></ul>'
        cfg = _config(
            Source.CAREER_PAGE,
            url="https://acme.example/careers",
            options={"selector": "li.role", "title_selector": "h4", "location_selector": "em.where"},
        )
        raws = CareerPageAdapter().parse(page, cfg)
        assert len(raws) == 1
        assert (raws[0].title, raws[0].location, raws[0].url) == ("Junior Analyst", "Paris", "/r/1")

    def test_fetch_uses_page_url(self):
        cfg = _config(Source.CAREER_PAGE, url="https://acme.example/careers")
        with patch(GET, return_value=_response(200, text=self.PAGE)):
            assert len(CareerPageAdapter().fetch(cfg)) == 2


class TestRegistry:
    """Tests for the adapter registry helpers."""

    def test_build_adapter(self):
        assert isinstance(build_adapter(Source.MOCK), MockAdapter)

    def test_build_adapter_unknown(self):
        with pytest.raises(ConfigError):
            build_adapter("carrier-pigeon")

    def test_enabled_sources_accepts_generator(self):
        configs = (_config(Source.MOCK, name=str(i), enabled=i % 2 == 0) for i in range(4))
        assert [c.name for c in enabled_sources(configs)] == ["0", "2"]

    def test_mock_uses_option_postings(self):
        cfg = _config(Source.MOCK, options={"postings": [{"title": "Trainee", "url": "https://x.example/1"}]})
        raws = MockAdapter().fetch(cfg)
        assert len(raws) == 1
        assert raws[0].company == "Acme"
