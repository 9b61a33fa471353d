from __future__ import annotations

import json
from dataclasses import replace

import pytest
import requests

from vsight.clients.serp_client import (
    BraveProvider,
    DataForSeoProvider,
    RankProvider,
    build_rank_provider,
)
from vsight.config import AppConfig
from vsight.errors import ProviderNotConfigured, UpstreamError
from vsight.models import Region


def _response(status_code: int, payload: object) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.url = "https://api.search.brave.com/res/v1/web/search"
    return response


class StaticProvider(RankProvider):
    name = "static"

    def __init__(self, results: dict[str, list[dict[str, str]]]) -> None:
        super().__init__()
        self.results = results

    def search(self, keyword: str, region: Region, top_n: int) -> list[dict[str, str]]:
        if keyword not in self.results:
            raise UpstreamError(429, f"quota exhausted for {keyword}")
        return self.results[keyword]


def test_brave_search_params_and_domain_match(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_get(url: str, **kwargs: object) -> requests.Response:
        captured.update(kwargs)
        return _response(
            200,
            {
                "web": {
                    "results": [
                        {"url": "https://www.Example.com/shoes", "title": "Shoes"},
                        {"url": "https://other.com/", "title": "Other"},
                    ]
                }
            },
        )

    monkeypatch.setattr(requests, "get", fake_get)

    result = BraveProvider("brave_key").rank_keyword(
        "running shoes", Region(country="USA", state="Texas"), top_n=50, domain="example.com"
    )

    assert captured["params"] == {"q": "running shoes", "count": 20, "country": "us"}
    assert captured["headers"]["X-Subscription-Token"] == "brave_key"
    assert [(row.rank, row.domain_match) for row in result.rows] == [(1, True), (2, False)]
    assert result.to_dict()["region"] == {"country": "USA", "state": "Texas"}
    assert result.rows[0].provider == "brave"


def test_brave_reads_mixed_web_blocks(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"mixed": {"results": [{"type": "web", "results": [{"link": "https://a.com", "meta": {"title": "A"}}]}]}}
    monkeypatch.setattr(requests, "get", lambda url, **_: _response(200, payload))

    items = BraveProvider("brave_key").search("a", Region(country="US"), 10)

    assert items == [{"url": "https://a.com", "title": "A"}]


def test_dataforseo_keeps_organic_items(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_post(url: str, **kwargs: object) -> requests.Response:
        captured.update(kwargs)
        return _response(
            200,
            {
                "tasks": [
                    {
                        "status_code": 20000,
                        "result": [
                            {
                                "items": [
                                    {"type": "paid", "url": "https://ads.com"},
                                    {"type": "organic", "url": "https://example.com/a", "title": "A"},
                                    {"type": "organic", "url": "https://b.com", "title": "B"},
                                ]
                            }
                        ],
                    }
                ]
            },
        )

    monkeypatch.setattr(requests, "post", fake_post)

    result = DataForSeoProvider("login", "pass").rank_keyword(
        "widgets", Region(country="IN", state="Goa"), top_n=10, domain="https://www.example.com"
    )

    assert [(row.rank, row.url, row.domain_match) for row in result.rows] == [
        (1, "https://example.com/a", True),
        (2, "https://b.com", False),
    ]
    assert captured["auth"] == ("login", "pass")
    assert captured["json"][0]["location_name"] == "Goa, India"
    assert captured["json"][0]["depth"] == 10


def test_dataforseo_task_error_is_raised(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"tasks": [{"status_code": 40501, "status_message": "Invalid Field: 'location_name'."}]}
    monkeypatch.setattr(requests, "post", lambda url, **_: _response(200, payload))

    with pytest.raises(UpstreamError) as error:
        DataForSeoProvider("login", "pass").search("x", Region(country="ZZ"), 10)

    assert "Invalid Field" in error.value.message


def test_malformed_result_url_is_not_a_match() -> None:
    provider = StaticProvider(
        {
            "kw": [
                {"url": "http://[broken", "title": "Broken"},
                {"url": "https://www.example.com/", "title": "E"},
            ]
        }
    )

    result = provider.rank_keyword("kw", Region(country="US"), domain="example.com")

    assert [row.domain_match for row in result.rows] == [False, True]


def test_no_domain_means_no_match() -> None:
    provider = StaticProvider({"kw": [{"url": "https://example.com", "title": "E"}]})
    result = provider.rank_keyword("kw", Region(country="US"))
    assert result.rows[0].domain_match is False


def test_check_ranks_returns_one_result_per_keyword() -> None:
    provider = StaticProvider(
        {
            "a": [{"url": "https://a.com", "title": "A"}],
            "b": [{"url": "https://b.com", "title": "B"}, {"url": "https://c.com", "title": "C"}],
        }
    )

    results = provider.check_ranks(["a", " b ", ""], Region(country="US"), top_n=1)

    assert [(result.keyword, len(result.rows)) for result in results] == [("a", 1), ("b", 1)]


def test_check_ranks_fails_fast() -> None:
    provider = StaticProvider({"a": []})

    with pytest.raises(UpstreamError) as error:
        provider.check_ranks(["a", "missing"], Region(country="US"))

    assert error.value.status_code == 429


def test_top_url() -> None:
    provider = StaticProvider({"a": [{"url": "https://a.com", "title": "A"}], "none": []})
    assert provider.top_url("a", Region(country="US")) == "https://a.com"
    assert provider.top_url("none", Region(country="US")) == ""


def test_build_rank_provider_selection() -> None:
    base = AppConfig.from_env()

    with pytest.raises(ProviderNotConfigured) as error:
        build_rank_provider(replace(base, serp_provider=""))
    assert "SERP_PROVIDER not set" in error.value.message

    with pytest.raises(ProviderNotConfigured):
        build_rank_provider(replace(base, serp_provider="google"))

    with pytest.raises(ProviderNotConfigured) as error:
        build_rank_provider(replace(base, serp_provider="brave", brave_api_key=""))
    assert error.value.message == "BRAVE_API_KEY missing"

    provider = build_rank_provider(
        replace(base, serp_provider="dataforseo", dataforseo_login="l", dataforseo_password="p")
    )
    assert isinstance(provider, DataForSeoProvider)
