from __future__ import annotations

from typing import Any

from vsight.clients.google_api import GoogleApiClient
from vsight.models import DateRange, DateSeriesPoint, PropertyListing, PropertySummary


class GA4Client(GoogleApiClient):
    """GA4 Data API reports and Admin API property listing."""

    SERVICE = "GA4"
    DATA_API_BASE = "https://analyticsdata.googleapis.com/v1beta"
    ADMIN_API_BASE = "https://analyticsadmin.googleapis.com/v1beta"
    PAGE_SIZE = 200
    MAX_PAGES = 10

    @staticmethod
    def normalize_property_id(raw: str) -> str:
        value = (raw or "").strip()
        if value.startswith("properties/"):
            value = value.split("/", 1)[1]
        return value

    @staticmethod
    def normalize_ga_date(raw: str) -> str:
        # GA4 returns YYYYMMDD; Search Console uses YYYY-MM-DD.
        value = (raw or "").strip()
        if len(value) == 8 and value.isdigit():
            return f"{value[:4]}-{value[4:6]}-{value[6:]}"
        return value

    @staticmethod
    def _metric_value(row: dict[str, Any], index: int) -> float:
        values = row.get("metricValues", [])
        if not isinstance(values, list) or index >= len(values):
            return 0.0
        raw = values[index]
        if not isinstance(raw, dict):
            return 0.0
        try:
            return float(raw.get("value") or 0)
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _dimension_value(row: dict[str, Any], index: int) -> str:
        dims = row.get("dimensionValues", [])
        if isinstance(dims, list) and index < len(dims) and isinstance(dims[index], dict):
            return str(dims[index].get("value", "")).strip()
        return ""

    def run_report(self, property_id: str, body: dict[str, Any]) -> dict[str, Any]:
        pid = self.normalize_property_id(property_id)
        url = f"{self.DATA_API_BASE}/properties/{pid}:runReport"
        return self._post(url, body)

    def daily_sessions(self, property_id: str, date_range: DateRange) -> list[DateSeriesPoint]:
        body = {
            "dateRanges": [{"startDate": date_range.start_iso, "endDate": date_range.end_iso}],
            "dimensions": [{"name": "date"}],
            "metrics": [{"name": "sessions"}],
        }
        payload = self.run_report(property_id, body)
        rows = payload.get("rows", [])
        if not isinstance(rows, list):
            return []
        points: list[DateSeriesPoint] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            points.append(
                DateSeriesPoint(
                    date=self.normalize_ga_date(self._dimension_value(row, 0)),
                    sessions=self._metric_value(row, 0),
                )
            )
        return points

    def list_properties(self, max_pages: int | None = None) -> PropertyListing:
        page_cap = max(1, int(max_pages or self.MAX_PAGES))
        url = f"{self.ADMIN_API_BASE}/accountSummaries"
        listing = PropertyListing()
        page_token = ""

        for _ in range(page_cap):
            params: dict[str, Any] = {"pageSize": self.PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            payload = self._get(url, params=params)

            for account in payload.get("accountSummaries", []) or []:
                account_name = str(account.get("name", ""))
                for prop in account.get("propertySummaries", []) or []:
                    pid = self.normalize_property_id(str(prop.get("property", "")))
                    listing.properties.append(
                        PropertySummary(
                            id=pid,
                            display_name=str(prop.get("displayName") or pid),
                            account=account_name,
                        )
                    )

            page_token = str(payload.get("nextPageToken") or "")
            if not page_token:
                break
        else:
            listing.truncated = bool(page_token)

        return listing
