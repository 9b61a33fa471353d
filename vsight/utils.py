from __future__ import annotations

import csv
import io
import re
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import urlparse

import requests

from vsight.errors import UpstreamError
from vsight.models import DateRange


DEFAULT_TIMEOUT_SEC = 40
_CSV_NEEDS_QUOTES = re.compile(r'[",\r\n]')


def iso(day: date) -> str:
    return day.isoformat()


def last_n_days(n: int, today: date | None = None) -> DateRange:
    """Inclusive range of ``n`` days ending today."""
    today = today or date.today()
    span = max(1, int(n))
    return DateRange(start=today - timedelta(days=span - 1), end=today)


def _csv_field(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    if _CSV_NEEDS_QUOTES.search(text):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(rows: Iterable[Mapping[str, Any]], columns: Sequence[str]) -> str:
    header = ",".join(columns)
    body = "\n".join(
        ",".join(_csv_field(row.get(column)) for column in columns) for row in rows
    )
    return f"{header}\n{body}"


def parse_csv(text: str) -> list[dict[str, str]]:
    reader = csv.DictReader(io.StringIO(text))
    return [dict(row) for row in reader]


def pct_change(current: float, previous: float) -> float:
    if not previous:
        return 100.0 if current else 0.0
    return (current - previous) / previous * 100.0


def normalize_host(raw: str) -> str:
    value = (raw or "").strip().lower()
    if not value:
        return ""
    if "://" not in value:
        value = f"//{value}"
    try:
        host = urlparse(value).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def error_message(response: requests.Response, default: str = "") -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]).strip()
        if isinstance(error, str) and error.strip():
            return error.strip()
        if isinstance(payload.get("message"), str) and payload["message"].strip():
            return payload["message"].strip()

    detail = (response.text or "").strip()
    if len(detail) > 400:
        detail = detail[:397] + "..."
    return detail or default or f"HTTP {response.status_code}"


def _json_or_raise(response: requests.Response, service: str) -> Any:
    if not response.ok:
        raise UpstreamError(
            response.status_code,
            error_message(response, f"HTTP {response.status_code}"),
            service=service,
        )
    return response.json()


def get_json(
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    auth: tuple[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SEC,
    service: str = "",
) -> Any:
    response = requests.get(
        url,
        params=params,
        headers=dict(headers or {}),
        auth=auth,
        timeout=timeout,
    )
    return _json_or_raise(response, service)


def post_json(
    url: str,
    body: Any,
    *,
    headers: Mapping[str, str] | None = None,
    auth: tuple[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SEC,
    service: str = "",
) -> Any:
    response = requests.post(
        url,
        json=body,
        headers=dict(headers or {}),
        auth=auth,
        timeout=timeout,
    )
    return _json_or_raise(response, service)
