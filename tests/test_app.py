from __future__ import annotations

from dataclasses import replace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from vsight import app as app_module
from vsight.auth import SESSION_COOKIE, UserSession, require_session, signer_for
from vsight.clients.serp_client import RankProvider
from vsight.config import AppConfig
from vsight.errors import UpstreamError
from vsight.models import DateRange, DateSeriesPoint, QueryRow, Region


SESSION = UserSession(access_token="tok_123", email="ann@example.com")


def _config(**overrides: object) -> AppConfig:
    base = replace(
        AppConfig.from_env(),
        session_secret="test-secret",
        serp_provider="",
        llm_endpoint="",
        encryption_key="vault-secret",
    )
    return replace(base, **overrides)


def _client(config: AppConfig | None = None, signed_in: bool = True) -> TestClient:
    application = app_module.create_app(config or _config())
    if signed_in:
        application.dependency_overrides[require_session] = lambda: SESSION
    return TestClient(application, raise_server_exceptions=False)


class FakeGA4:
    def __init__(self, access_token: str, timeout_sec: int | None = None) -> None:
        assert access_token == "tok_123"

    def daily_sessions(self, property_id: str, date_range: DateRange) -> list[DateSeriesPoint]:
        assert property_id == "123"
        return [
            DateSeriesPoint(date="2024-01-02", sessions=8),
            DateSeriesPoint(date="2024-01-01", sessions=10),
        ]


class FakeGSC:
    def __init__(self, access_token: str, timeout_sec: int | None = None) -> None:
        pass

    def daily_series(self, site_url: str, date_range: DateRange) -> list[DateSeriesPoint]:
        return [DateSeriesPoint(date="2024-01-01", clicks=4, impressions=20, ctr=0.2, position=2.5)]

    def list_sites(self) -> list:
        raise UpstreamError(403, "User does not have sufficient permission for site.")

    def top_queries(self, site_url: str, date_range: DateRange, **kwargs: Any) -> list[QueryRow]:
        return [QueryRow(query="shoes", page="https://example.com/", clicks=3, impressions=9, position=1.0)]


class FakeProvider(RankProvider):
    name = "fake"

    def search(self, keyword: str, region: Region, top_n: int) -> list[dict[str, str]]:
        return [
            {"url": "https://other.com/", "title": "Other"},
            {"url": "https://www.example.com/p", "title": "Mine"},
        ]


def test_health() -> None:
    response = _client(signed_in=False).get("/api/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_protected_endpoint_without_session_is_401() -> None:
    response = _client(signed_in=False).get("/api/gsc/sites")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_signed_cookie_authenticates() -> None:
    config = _config()
    client = _client(config, signed_in=False)
    client.cookies.set(SESSION_COOKIE, signer_for(config).dumps_session(SESSION))

    response = client.get("/api/auth/status")

    assert response.json() == {"connected": True, "email": "ann@example.com"}


def test_tampered_cookie_is_rejected() -> None:
    client = _client(signed_in=False)
    client.cookies.set(SESSION_COOKIE, "not-a-signed-value")

    assert client.get("/api/auth/status").json() == {"connected": False, "email": ""}
    assert client.get("/api/ga/properties").status_code == 401


def test_aggregation_names_missing_params() -> None:
    response = _client().get("/api/aggregations/default", params={"propertyId": "123"})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing siteUrl/startDate/endDate"}


def test_aggregation_merges_both_series(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "GA4Client", FakeGA4)
    monkeypatch.setattr(app_module, "GSCClient", FakeGSC)

    response = _client().get(
        "/api/aggregations/default",
        params={
            "propertyId": "123",
            "siteUrl": "https://example.com/",
            "startDate": "2024-01-01",
            "endDate": "2024-01-02",
        },
    )

    assert response.status_code == 200
    assert response.json()["series"] == [
        {"date": "2024-01-01", "sessions": 10.0, "clicks": 4.0, "impressions": 20.0, "ctr": 20.0, "position": 2.5, "sessionsMa7": 10},
        {"date": "2024-01-02", "sessions": 8.0, "clicks": 0.0, "impressions": 0.0, "ctr": 0.0, "position": 0.0, "sessionsMa7": 9},
    ]


def test_aggregation_rejects_unknown_preset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "GA4Client", FakeGA4)
    monkeypatch.setattr(app_module, "GSCClient", FakeGSC)

    response = _client().get(
        "/api/aggregations/default",
        params={"propertyId": "123", "siteUrl": "https://example.com/", "preset": "last7d"},
    )

    assert response.status_code == 400
    assert "Unknown date preset" in response.json()["error"]


def test_upstream_status_is_passed_through(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "GSCClient", FakeGSC)

    response = _client().get("/api/gsc/sites")

    assert response.status_code == 403
    assert response.json() == {"error": "User does not have sufficient permission for site."}


def test_unexpected_error_is_500_with_message(monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenGA4(FakeGA4):
        def list_properties(self, max_pages: int | None = None) -> None:
            raise KeyError("accountSummaries")

    monkeypatch.setattr(app_module, "GA4Client", BrokenGA4)

    response = _client().get("/api/ga/properties")

    assert response.status_code == 500
    assert "accountSummaries" in response.json()["error"]


def test_rank_requires_keywords() -> None:
    response = _client().post("/api/serp/rank", json={"region": {"country": "US"}})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing keywords"}


def test_rank_without_provider_is_misconfiguration() -> None:
    response = _client().post("/api/serp/rank", json={"keywords": ["shoes"], "region": {"country": "US"}})
    assert response.status_code == 400
    assert response.json() == {"error": "SERP_PROVIDER not set. Use 'brave' or 'dataforseo'."}


def test_rank_rejects_malformed_body() -> None:
    response = _client().post("/api/serp/rank", json={"keywords": ["shoes"], "topN": "many"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid topN"}


def test_rank_returns_rows_per_keyword(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "rank_provider_for", lambda config: FakeProvider())

    response = _client().post(
        "/api/serp/rank",
        json={"keywords": ["shoes", "boots"], "region": {"country": "US", "state": "Texas"}, "topN": 2, "domain": "example.com"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["ok"] is True
    assert [item["keyword"] for item in body["data"]] == ["shoes", "boots"]
    assert body["data"][0]["region"] == {"country": "US", "state": "Texas"}
    assert [row["domain_match"] for row in body["data"][0]["rows"]] == [False, True]


def test_serp_check_reports_first_matching_rank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "rank_provider_for", lambda config: FakeProvider())

    response = _client().get("/api/serp/check", params={"keyword": "shoes", "domain": "example.com"})

    assert response.json()["rank"] == 2
    assert len(response.json()["rows"]) == 2


def test_insight_summary_endpoint() -> None:
    client = _client(signed_in=False)
    assert client.post("/api/insights/summary", json={"rows": []}).json() == {"summary": ""}

    rows = [{"date": f"2024-01-{day:02d}", "sessions": 10, "clicks": 1, "ctr": 2.0} for day in range(1, 8)]
    summary = client.post("/api/insights/summary", json={"rows": rows}).json()["summary"]
    assert summary.startswith("In the last 7 days the site had 70 sessions")


def test_export_csv() -> None:
    response = _client(signed_in=False).post(
        "/api/export/csv",
        json={"rows": [{"query": "a,b", "clicks": 3}], "columns": ["query", "clicks"]},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text == 'query,clicks\n"a,b",3'


def test_ai_ask_placeholder() -> None:
    response = _client(signed_in=False).post("/api/ai/ask", json={"prompt": ""})
    assert response.json()["text"].startswith("Ask me about drops/spikes")


def test_geo_tables() -> None:
    client = _client(signed_in=False)
    assert client.get("/api/geo/countries").json()["countries"][0] == {"code": "ALL", "name": "All countries"}
    assert "England" in client.get("/api/geo/regions", params={"country": "gb"}).json()["regions"]


def test_login_without_oauth_config_is_400() -> None:
    response = _client(_config(google_client_id=""), signed_in=False).get(
        "/api/auth/login", follow_redirects=False
    )
    assert response.status_code == 400
    assert "OAuth not configured" in response.json()["error"]


def test_tracker_run_validates_and_appends(monkeypatch: pytest.MonkeyPatch) -> None:
    appended: list[tuple[str, str, list]] = []

    class FakeSheets:
        def __init__(self, access_token: str, timeout_sec: int | None = None) -> None:
            pass

        def find_or_create_spreadsheet(self, name: str) -> tuple[str, str]:
            assert name == "VSight_ann@example.com"
            return "sheet-1", name

        def ensure_sheet(self, spreadsheet_id: str, title: str) -> None:
            pass

        def append_values(self, spreadsheet_id: str, cell_range: str, values: list) -> dict:
            appended.append((spreadsheet_id, cell_range, values))
            return {}

    monkeypatch.setattr(app_module, "GSCClient", FakeGSC)
    monkeypatch.setattr(app_module, "SheetsClient", FakeSheets)
    client = _client()

    missing = client.post("/api/tracker/run", json={"siteUrl": "https://example.com/"})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing siteUrl/range"}

    response = client.post(
        "/api/tracker/run",
        json={
            "siteUrl": "https://example.com/",
            "range": {"startDate": "2024-01-01", "endDate": "2024-01-28"},
            "keywords": ["shoe"],
        },
    )

    assert response.json() == {
        "ok": True,
        "appended": 1,
        "message": "Tracker: appended 1 row(s) for https://example.com/ (2024-01-01..2024-01-28)",
    }
    row = appended[0][2][0]
    assert row[0] == "2024-01-28"
    assert row[8] == ""
    assert row[9].endswith("|shoe||100")


def test_settings_round_trip(monkeypatch: pytest.MonkeyPatch) -> None:
    stored: list[list[Any]] = []

    class FakeSheets:
        def __init__(self, access_token: str, timeout_sec: int | None = None) -> None:
            pass

        def find_or_create_spreadsheet(self, name: str) -> tuple[str, str]:
            return "sheet-1", name

        def ensure_sheet(self, spreadsheet_id: str, title: str) -> None:
            pass

        def append_values(self, spreadsheet_id: str, cell_range: str, values: list) -> dict:
            stored.extend(values)
            return {}

        def get_values(self, spreadsheet_id: str, cell_range: str) -> list[list[Any]]:
            return stored

    monkeypatch.setattr(app_module, "SheetsClient", FakeSheets)
    client = _client()

    assert client.post("/api/settings/save", json={"key": "brave"}).status_code == 400
    saved = client.post("/api/settings/save", json={"key": "brave", "value": "k-1"})
    assert saved.json() == {"ok": True, "spreadsheetId": "sheet-1"}
    assert stored[0][1] != "k-1"

    loaded = client.get("/api/settings/get").json()
    assert loaded == {"values": {"brave": "k-1"}, "spreadsheetId": "sheet-1"}
