from __future__ import annotations

import logging
from typing import Any, Callable, Sequence
from urllib.parse import quote

from vsight.clients.google_api import GoogleApiClient
from vsight.errors import UpstreamError
from vsight.models import BusinessLocation, DailyMetricValue, DateRange, KeywordImpression


logger = logging.getLogger(__name__)


class GBPClient(GoogleApiClient):
    """Business Profile locations (v1 with legacy v4 fallback) and performance metrics."""

    SERVICE = "Business Profile"
    ACCOUNTS_V1 = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
    LOCATIONS_V1 = "https://mybusinessbusinessinformation.googleapis.com/v1/accounts/{account}/locations"
    ACCOUNTS_V4 = "https://mybusiness.googleapis.com/v4/accounts"
    LOCATIONS_V4 = "https://mybusiness.googleapis.com/v4/accounts/{account}/locations"
    PERFORMANCE_BASE = "https://businessprofileperformance.googleapis.com/v1"
    MAX_PAGES = 10

    @staticmethod
    def _strip_account_prefix(raw: str) -> str:
        value = (raw or "").strip()
        if value.startswith("accounts/"):
            value = value[len("accounts/"):]
        return value

    def _list_accounts_v1(self) -> list[str]:
        payload = self._get(self.ACCOUNTS_V1)
        names = [str(item.get("name") or "") for item in payload.get("accounts", []) or []]
        return [self._strip_account_prefix(name) for name in names if name.startswith("accounts/")]

    def _list_accounts_v4(self) -> list[str]:
        payload = self._get(self.ACCOUNTS_V4)
        names = [str(item.get("name") or "") for item in payload.get("accounts", []) or []]
        return [self._strip_account_prefix(name) for name in names if name]

    def _list_locations_v1(self, account_id: str) -> list[BusinessLocation]:
        url = self.LOCATIONS_V1.format(account=quote(account_id, safe=""))
        payload = self._get(url, params={"readMask": "name,title"})
        return [
            BusinessLocation(name=str(item.get("name") or ""), title=str(item.get("title") or ""))
            for item in payload.get("locations", []) or []
        ]

    def _list_locations_v4(self, account_id: str) -> list[BusinessLocation]:
        url = self.LOCATIONS_V4.format(account=quote(account_id, safe=""))
        payload = self._get(url, params={"readMask": "locationName,name"})
        return [
            BusinessLocation(
                name=str(item.get("name") or ""),
                title=str(item.get("locationName") or item.get("storeName") or ""),
            )
            for item in payload.get("locations", []) or []
        ]

    @staticmethod
    def _first_non_empty(attempts: Sequence[Callable[[], list[Any]]]) -> list[Any]:
        """Run attempts in order until one yields rows.

        An empty answer after at least one failure re-raises the last failure.
        """
        last_error: UpstreamError | None = None
        for attempt in attempts:
            try:
                result = attempt()
            except UpstreamError as exc:
                logger.info("Business Profile fallback after error: %s", exc)
                last_error = exc
                continue
            if result:
                return result
        if last_error is not None:
            raise last_error
        return []

    def _locations_for(self, account_id: str) -> list[BusinessLocation]:
        return self._first_non_empty(
            [
                lambda: self._list_locations_v1(account_id),
                lambda: self._list_locations_v4(account_id),
            ]
        )

    def list_locations(self, account_id: str | None = None) -> list[BusinessLocation]:
        if account_id:
            accounts = [self._strip_account_prefix(account_id)]
        else:
            accounts = self._first_non_empty([self._list_accounts_v1, self._list_accounts_v4])

        seen: set[str] = set()
        out: list[BusinessLocation] = []
        for account in accounts:
            for location in self._locations_for(account):
                if not location.name or location.name in seen:
                    continue
                seen.add(location.name)
                out.append(location)
        return out

    @staticmethod
    def _date_params(prefix: str, iso_day: str) -> dict[str, int]:
        year, month, day = iso_day.split("-")
        return {
            f"{prefix}.year": int(year),
            f"{prefix}.month": int(month),
            f"{prefix}.day": int(day),
        }

    @staticmethod
    def _format_date(raw: dict[str, Any]) -> str:
        try:
            return f"{int(raw['year']):04d}-{int(raw['month']):02d}-{int(raw['day']):02d}"
        except (KeyError, TypeError, ValueError):
            return ""

    def daily_metrics(
        self,
        location: str,
        date_range: DateRange,
        metrics: Sequence[str],
    ) -> list[DailyMetricValue]:
        params: list[tuple[str, Any]] = []
        params.extend(self._date_params("dailyRange.startDate", date_range.start_iso).items())
        params.extend(self._date_params("dailyRange.endDate", date_range.end_iso).items())
        params.extend(("dailyMetrics", metric) for metric in metrics if metric)

        url = f"{self.PERFORMANCE_BASE}/{location.strip('/')}:fetchMultiDailyMetricsTimeSeries"
        payload = self._request_json("GET", url, params=params)

        values: list[DailyMetricValue] = []
        for group in payload.get("multiDailyMetricTimeSeries", []) or []:
            for series in group.get("dailyMetricTimeSeries", []) or []:
                metric = str(series.get("dailyMetric") or "")
                dated = (series.get("timeSeries") or {}).get("datedValues", []) or []
                for item in dated:
                    values.append(
                        DailyMetricValue(
                            metric=metric,
                            date=self._format_date(item.get("date") or {}),
                            value=float(item.get("value") or 0),
                        )
                    )
        return values

    @staticmethod
    def _month(raw: str) -> dict[str, int]:
        return {"year": int(raw[:4]), "month": int(raw[5:7])}

    def keywords_monthly(
        self,
        location: str,
        start_month: str,
        end_month: str,
        max_pages: int | None = None,
    ) -> list[KeywordImpression]:
        url = f"{self.PERFORMANCE_BASE}/{location.strip('/')}/searchkeywords/impressions/monthly"
        start = self._month(start_month)
        end = self._month(end_month)
        base_params: dict[str, Any] = {
            "monthlyRange.startMonth.year": start["year"],
            "monthlyRange.startMonth.month": start["month"],
            "monthlyRange.endMonth.year": end["year"],
            "monthlyRange.endMonth.month": end["month"],
        }

        out: list[KeywordImpression] = []
        page_token = ""
        for _ in range(max(1, int(max_pages or self.MAX_PAGES))):
            params = dict(base_params)
            if page_token:
                params["pageToken"] = page_token
            payload = self._get(url, params=params)
            for item in payload.get("searchKeywordsCounts", []) or []:
                insights = item.get("insightsValue") or {}
                value = insights.get("value")
                threshold = insights.get("threshold")
                out.append(
                    KeywordImpression(
                        keyword=str(item.get("searchKeyword") or ""),
                        value=int(value) if value is not None else None,
                        threshold=int(threshold) if threshold is not None else None,
                    )
                )
            page_token = str(payload.get("nextPageToken") or "")
            if not page_token:
                break
        return out
