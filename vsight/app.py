from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from vsight import __version__
from vsight.auth import (
    OAUTH_STATE_COOKIE,
    UserSession,
    authorization_url,
    clear_session_cookie,
    exchange_code,
    require_session,
    session_from_request,
    set_session_cookie,
    signer_for,
)
from vsight.clients.ga4_client import GA4Client
from vsight.clients.gbp_client import GBPClient
from vsight.clients.gsc_client import GSCClient
from vsight.clients.serp_client import DEFAULT_TOP_N, RankProvider, build_rank_provider
from vsight.clients.sheets_client import SheetsClient, spreadsheet_name_for
from vsight.config import AppConfig
from vsight.errors import DashboardError, InvalidParameter, MissingParameters, require_params
from vsight.geo import COUNTRIES, regions_for
from vsight.insights import summarize
from vsight.llm import answer_question
from vsight.models import DateRange, Region
from vsight.series import merge_daily
from vsight.time_windows import parse_day, resolve_preset
from vsight.tracker import recent_rows, run_tracker
from vsight.utils import to_csv
from vsight.vault import SettingsVault


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

CHECK_TOP_N = 20
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


@lru_cache(maxsize=8)
def rank_provider_for(config: AppConfig) -> RankProvider:
    """One provider per configuration; misconfiguration is not cached."""
    return build_rank_provider(config)


def _date_range(start: str | None, end: str | None, start_field: str, end_field: str) -> DateRange:
    start_day = parse_day(start, start_field)
    end_day = parse_day(end, end_field)
    if end_day < start_day:
        raise InvalidParameter(f"{end_field} must not be before {start_field}")
    return DateRange(start=start_day, end=end_day)


def _month(raw: str, field: str) -> str:
    value = raw.strip()
    if not _MONTH_RE.match(value):
        raise InvalidParameter(f"Invalid {field}: {value!r} (expected YYYY-MM)")
    return value


def _sheets(session: UserSession, config: AppConfig) -> SheetsClient:
    return SheetsClient(session.access_token, timeout_sec=config.http_timeout_sec)


class RegionIn(BaseModel):
    country: str = "US"
    state: str | None = None


class RankRequest(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    region: RegionIn = Field(default_factory=RegionIn)
    topN: int = DEFAULT_TOP_N
    domain: str | None = None


class TopQueriesRequest(BaseModel):
    siteUrl: str | None = None
    startDate: str | None = None
    endDate: str | None = None
    country: str = "ALL"
    rowLimit: int = 100


class RowsRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(default_factory=list)


class ExportRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] | None = None
    filename: str = "vsight-export.csv"


class VaultSaveRequest(BaseModel):
    key: str | None = None
    value: str | None = None


class TrackerRangeIn(BaseModel):
    startDate: str | None = None
    endDate: str | None = None


class TrackerRequest(BaseModel):
    siteUrl: str | None = None
    range: TrackerRangeIn | None = None
    startDate: str | None = None
    endDate: str | None = None
    keywords: list[str] = Field(default_factory=list)
    location: str = ""
    topN: int | None = None
    region: RegionIn | None = None


class AskRequest(BaseModel):
    prompt: str = ""
    rows: list[dict[str, Any]] | None = None


@router.get("/health")
def health() -> dict[str, Any]:
    return {"ok": True, "version": __version__}


# Auth


@router.get("/auth/login")
def auth_login(config: AppConfig = Depends(get_config)) -> Response:
    url, state, code_verifier = authorization_url(config)
    response = RedirectResponse(url, status_code=302)
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        signer_for(config).dumps_state(state, code_verifier),
        max_age=600,
        httponly=True,
        secure=config.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/auth/callback")
def auth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    config: AppConfig = Depends(get_config),
) -> Response:
    if error:
        raise InvalidParameter(f"Google sign-in failed: {error}")
    require_params(code=code, state=state)
    stored = signer_for(config).loads_state(request.cookies.get(OAUTH_STATE_COOKIE, ""))
    if stored.get("state") != state:
        raise InvalidParameter("OAuth state mismatch; sign in again.")

    session = exchange_code(config, code, state, stored.get("code_verifier", ""))
    response = RedirectResponse("/", status_code=302)
    response.delete_cookie(OAUTH_STATE_COOKIE)
    set_session_cookie(response, config, session)
    return response


@router.get("/auth/status")
def auth_status(request: Request, config: AppConfig = Depends(get_config)) -> dict[str, Any]:
    session = session_from_request(request, config)
    return {"connected": session is not None, "email": session.email if session else ""}


@router.post("/auth/logout")
def auth_logout() -> Response:
    response = JSONResponse({"ok": True})
    clear_session_cookie(response)
    return response


# Geo tables


@router.get("/geo/countries")
def geo_countries() -> dict[str, Any]:
    return {"countries": [{"code": code, "name": name} for code, name in COUNTRIES]}


@router.get("/geo/regions")
def geo_regions(country: str = "ALL") -> dict[str, Any]:
    return {"country": country.upper(), "regions": regions_for(country)}


# Analytics and Search Console


@router.get("/aggregations/default")
def aggregations_default(
    propertyId: str | None = None,
    siteUrl: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    preset: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    if preset:
        require_params(propertyId=propertyId, siteUrl=siteUrl)
        date_range = resolve_preset(preset, startDate, endDate)
    else:
        require_params(propertyId=propertyId, siteUrl=siteUrl, startDate=startDate, endDate=endDate)
        date_range = _date_range(startDate, endDate, "startDate", "endDate")

    ga = GA4Client(session.access_token, timeout_sec=config.http_timeout_sec)
    gsc = GSCClient(session.access_token, timeout_sec=config.http_timeout_sec)
    sessions_points = ga.daily_sessions(propertyId, date_range)
    search_points = gsc.daily_series(siteUrl, date_range)
    rows = merge_daily(sessions_points, search_points)
    return {"series": [row.to_dict() for row in rows]}


@router.get("/ga/properties")
def ga_properties(
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    ga = GA4Client(session.access_token, timeout_sec=config.http_timeout_sec)
    listing = ga.list_properties(max_pages=config.max_pages)
    if listing.truncated:
        logger.warning("GA4 property listing truncated after %s page(s).", config.max_pages)
    return {
        "properties": [prop.to_dict() for prop in listing.properties],
        "truncated": listing.truncated,
    }


@router.get("/ga/sessions")
def ga_sessions(
    propertyId: str | None = None,
    start: str | None = None,
    end: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(propertyId=propertyId, start=start, end=end)
    date_range = _date_range(start, end, "start", "end")
    ga = GA4Client(session.access_token, timeout_sec=config.http_timeout_sec)
    points = ga.daily_sessions(propertyId, date_range)
    return {"rows": [{"date": point.date, "sessions": point.sessions} for point in points]}


@router.get("/gsc/sites")
def gsc_sites(
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    gsc = GSCClient(session.access_token, timeout_sec=config.http_timeout_sec)
    return {"sites": [site.to_dict() for site in gsc.list_sites()]}


@router.get("/gsc/timeseries")
def gsc_timeseries(
    siteUrl: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(siteUrl=siteUrl, startDate=startDate, endDate=endDate)
    date_range = _date_range(startDate, endDate, "startDate", "endDate")
    gsc = GSCClient(session.access_token, timeout_sec=config.http_timeout_sec)
    data = [
        {
            "date": point.date,
            "clicks": point.clicks,
            "impressions": point.impressions,
            "ctr": point.ctr,
            "position": point.position,
        }
        for point in gsc.daily_series(siteUrl, date_range)
    ]
    return {"data": data}


@router.post("/gsc/top-queries")
def gsc_top_queries(
    payload: TopQueriesRequest,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(siteUrl=payload.siteUrl, startDate=payload.startDate, endDate=payload.endDate)
    date_range = _date_range(payload.startDate, payload.endDate, "startDate", "endDate")
    gsc = GSCClient(session.access_token, timeout_sec=config.http_timeout_sec)
    rows = gsc.top_queries(
        payload.siteUrl,
        date_range,
        row_limit=payload.rowLimit,
        country=payload.country,
    )
    return {"rows": [row.to_dict() for row in rows]}


@router.get("/gsc/top10")
def gsc_top10(
    siteUrl: str | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int = 1000,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(siteUrl=siteUrl, start=start, end=end)
    date_range = _date_range(start, end, "start", "end")
    gsc = GSCClient(session.access_token, timeout_sec=config.http_timeout_sec)
    return {"rows": [row.to_dict() for row in gsc.top10(siteUrl, date_range, row_limit=limit)]}


# Business Profile


@router.get("/gbp/locations")
def gbp_locations(
    accountId: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    gbp = GBPClient(session.access_token, timeout_sec=config.http_timeout_sec)
    return {"locations": [location.to_dict() for location in gbp.list_locations(accountId)]}


@router.get("/gbp/daily")
def gbp_daily(
    location: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    metrics: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(location=location, startDate=startDate, endDate=endDate, metrics=metrics)
    date_range = _date_range(startDate, endDate, "startDate", "endDate")
    metric_names = [part.strip() for part in metrics.split(",") if part.strip()]
    gbp = GBPClient(session.access_token, timeout_sec=config.http_timeout_sec)
    values = gbp.daily_metrics(location, date_range, metric_names)
    return {"values": [value.to_dict() for value in values]}


@router.get("/gbp/keywords-monthly")
def gbp_keywords_monthly(
    location: str | None = None,
    startMonth: str | None = None,
    endMonth: str | None = None,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(location=location, startMonth=startMonth, endMonth=endMonth)
    gbp = GBPClient(session.access_token, timeout_sec=config.http_timeout_sec)
    keywords = gbp.keywords_monthly(
        location,
        _month(startMonth, "startMonth"),
        _month(endMonth, "endMonth"),
        max_pages=config.max_pages,
    )
    return {"keywords": [keyword.to_dict() for keyword in keywords]}


# Rank check


@router.post("/serp/rank")
def serp_rank(payload: RankRequest, config: AppConfig = Depends(get_config)) -> dict[str, Any]:
    keywords = [keyword for keyword in payload.keywords if keyword and keyword.strip()]
    if not keywords:
        raise MissingParameters(["keywords"])
    provider = rank_provider_for(config)
    region = Region(country=payload.region.country, state=payload.region.state or "")
    results = provider.check_ranks(keywords, region, top_n=payload.topN, domain=payload.domain)
    return {"ok": True, "data": [result.to_dict() for result in results]}


@router.get("/serp/check")
def serp_check(
    keyword: str | None = None,
    domain: str | None = None,
    country: str = "US",
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    require_params(keyword=keyword, domain=domain)
    provider = rank_provider_for(config)
    result = provider.rank_keyword(keyword, Region(country=country), top_n=CHECK_TOP_N, domain=domain)
    rank = next((row.rank for row in result.rows if row.domain_match), None)
    return {
        "keyword": keyword,
        "domain": domain,
        "rank": rank,
        "rows": [row.to_dict() for row in result.rows],
    }


# Insights, export, assistant


@router.post("/insights/summary")
def insights_summary(payload: RowsRequest) -> dict[str, str]:
    return {"summary": summarize(payload.rows)}


@router.post("/export/csv")
def export_csv(payload: ExportRequest) -> Response:
    columns = payload.columns or (list(payload.rows[0].keys()) if payload.rows else [])
    if not columns:
        raise MissingParameters(["columns"])
    filename = re.sub(r"[^A-Za-z0-9._-]", "_", payload.filename) or "vsight-export.csv"
    return Response(
        content=to_csv(payload.rows, columns),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/ai/ask")
def ai_ask(payload: AskRequest, config: AppConfig = Depends(get_config)) -> dict[str, str]:
    return {"text": answer_question(payload.prompt, payload.rows, config)}


# Spreadsheet-backed settings and tracker


@router.get("/settings/get")
def settings_get(
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    vault = SettingsVault(
        _sheets(session, config),
        spreadsheet_name_for(session.email, config.spreadsheet_prefix),
        config.encryption_key,
    )
    values = vault.load()
    return {"values": values, "spreadsheetId": vault.spreadsheet_id}


@router.post("/settings/save")
def settings_save(
    payload: VaultSaveRequest,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    if not payload.key or payload.value is None:
        raise MissingParameters(["key", "value"])
    vault = SettingsVault(
        _sheets(session, config),
        spreadsheet_name_for(session.email, config.spreadsheet_prefix),
        config.encryption_key,
    )
    spreadsheet_id = vault.save(payload.key, payload.value)
    return {"ok": True, "spreadsheetId": spreadsheet_id}


@router.post("/tracker/run")
def tracker_run(
    payload: TrackerRequest,
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    start = payload.range.startDate if payload.range else payload.startDate
    end = payload.range.endDate if payload.range else payload.endDate
    if not payload.siteUrl or not start or not end:
        raise MissingParameters(["siteUrl", "range"])
    date_range = _date_range(start, end, "startDate", "endDate")

    rank_provider = rank_provider_for(config) if config.serp_provider_enabled else None
    region = (
        Region(country=payload.region.country, state=payload.region.state or "")
        if payload.region
        else None
    )
    result = run_tracker(
        GSCClient(session.access_token, timeout_sec=config.http_timeout_sec),
        _sheets(session, config),
        spreadsheet_name_for(session.email, config.spreadsheet_prefix),
        email=session.email,
        site_url=payload.siteUrl,
        date_range=date_range,
        keywords=payload.keywords,
        location=payload.location,
        top_n=payload.topN or config.tracker_default_top_n,
        rank_provider=rank_provider,
        region=region,
        max_rows=config.tracker_max_rows,
    )
    return {"ok": True, "appended": result.appended, "message": result.message}


@router.get("/tracker/recent")
def tracker_recent(
    session: UserSession = Depends(require_session),
    config: AppConfig = Depends(get_config),
) -> dict[str, Any]:
    sheets = _sheets(session, config)
    spreadsheet_id, _ = sheets.find_or_create_spreadsheet(
        spreadsheet_name_for(session.email, config.spreadsheet_prefix)
    )
    headers, rows = recent_rows(sheets, spreadsheet_id)
    return {"headers": headers, "rows": [row.to_dict() for row in rows]}


# Error mapping


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(exc: RequestValidationError) -> str:
    missing: list[str] = []
    invalid: list[str] = []
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ()) if part not in ("body", "query")]
        name = ".".join(loc) or "body"
        (missing if item.get("type") == "missing" else invalid).append(name)
    if missing:
        return f"Missing {'/'.join(missing)}"
    return f"Invalid {'/'.join(invalid) or 'request'}"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s failed (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail or "HTTP error"))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, str(exc) or "Unexpected error")


def create_app(config: AppConfig | None = None) -> FastAPI:
    app = FastAPI(title="VSight", version=__version__)
    app.state.config = config or AppConfig.from_env()
    app.include_router(router)
    register_error_handlers(app)
    return app


app = create_app()
