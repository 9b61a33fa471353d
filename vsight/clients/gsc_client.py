from __future__ import annotations

from typing import Any, Sequence
from urllib.parse import quote

from vsight.clients.google_api import GoogleApiClient
from vsight.geo import alpha3_for
from vsight.models import DateRange, DateSeriesPoint, QueryRow, SiteEntry


class GSCClient(GoogleApiClient):
    """Thin wrapper for Search Console sites and Search Analytics."""

    SERVICE = "Search Console"
    API_BASE = "https://www.googleapis.com/webmasters/v3"
    DAILY_ROW_LIMIT = 25000
    TOP_N = 10

    @staticmethod
    def _country_filter_groups(country: str | None) -> list[dict] | None:
        value = (country or "").strip()
        if not value or value.upper() == "ALL":
            return None
        return [
            {
                "groupType": "and",
                "filters": [
                    {
                        "dimension": "country",
                        "operator": "equals",
                        "expression": alpha3_for(value),
                    }
                ],
            }
        ]

    @staticmethod
    def _metric(row: dict[str, Any], name: str) -> float:
        try:
            return float(row.get(name) or 0)
        except (TypeError, ValueError):
            return 0.0

    def list_sites(self) -> list[SiteEntry]:
        payload = self._get(f"{self.API_BASE}/sites")
        sites: list[SiteEntry] = []
        for entry in payload.get("siteEntry", []) or []:
            permission = str(entry.get("permissionLevel", ""))
            if permission == "siteUnverifiedUser":
                continue
            sites.append(SiteEntry(site_url=str(entry.get("siteUrl", "")), permission=permission))
        return sites

    def query(self, site_url: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.API_BASE}/sites/{quote(site_url, safe='')}/searchAnalytics/query"
        return self._post(url, body)

    def daily_series(self, site_url: str, date_range: DateRange) -> list[DateSeriesPoint]:
        body = {
            "startDate": date_range.start_iso,
            "endDate": date_range.end_iso,
            "dimensions": ["date"],
            "rowLimit": self.DAILY_ROW_LIMIT,
            "type": "web",
        }
        payload = self.query(site_url, body)
        points: list[DateSeriesPoint] = []
        for row in payload.get("rows", []) or []:
            keys = row.get("keys") or [""]
            points.append(
                DateSeriesPoint(
                    date=str(keys[0] or ""),
                    clicks=self._metric(row, "clicks"),
                    impressions=self._metric(row, "impressions"),
                    ctr=self._metric(row, "ctr"),
                    position=self._metric(row, "position"),
                )
            )
        return points

    def top_queries(
        self,
        site_url: str,
        date_range: DateRange,
        row_limit: int = 1000,
        country: str | None = None,
        dimensions: Sequence[str] = ("query",),
    ) -> list[QueryRow]:
        body: dict[str, Any] = {
            "startDate": date_range.start_iso,
            "endDate": date_range.end_iso,
            "dimensions": list(dimensions),
            "rowLimit": max(1, int(row_limit)),
            "type": "web",
        }
        filter_groups = self._country_filter_groups(country)
        if filter_groups:
            body["dimensionFilterGroups"] = filter_groups

        payload = self.query(site_url, body)
        page_index = list(dimensions).index("page") if "page" in dimensions else -1
        rows: list[QueryRow] = []
        for row in payload.get("rows", []) or []:
            keys = row.get("keys") or []
            rows.append(
                QueryRow(
                    query=str(keys[0]) if keys else "",
                    page=str(keys[page_index]) if 0 <= page_index < len(keys) else "",
                    clicks=self._metric(row, "clicks"),
                    impressions=self._metric(row, "impressions"),
                    ctr=self._metric(row, "ctr"),
                    position=self._metric(row, "position"),
                )
            )
        return rows

    def top10(self, site_url: str, date_range: DateRange, row_limit: int = 1000) -> list[QueryRow]:
        rows = self.top_queries(site_url, date_range, row_limit=row_limit)
        rows.sort(key=lambda row: row.clicks, reverse=True)
        return rows[: self.TOP_N]
