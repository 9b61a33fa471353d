from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


@dataclass
class DateSeriesPoint:
    date: str
    sessions: float = 0.0
    clicks: float = 0.0
    impressions: float = 0.0
    ctr: float = 0.0
    position: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "sessions": self.sessions,
            "clicks": self.clicks,
            "impressions": self.impressions,
            "ctr": self.ctr,
            "position": self.position,
        }


@dataclass
class MergedRow:
    date: str
    sessions: float = 0.0
    clicks: float = 0.0
    impressions: float = 0.0
    # Percentage, two decimals.
    ctr: float = 0.0
    position: float = 0.0
    sessions_ma7: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "sessions": self.sessions,
            "clicks": self.clicks,
            "impressions": self.impressions,
            "ctr": self.ctr,
            "position": self.position,
            "sessionsMa7": self.sessions_ma7,
        }


@dataclass
class QueryRow:
    query: str
    page: str = ""
    clicks: float = 0.0
    impressions: float = 0.0
    ctr: float = 0.0
    position: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "page": self.page,
            "clicks": self.clicks,
            "impressions": self.impressions,
            "ctr": self.ctr,
            "position": self.position,
        }


@dataclass(frozen=True)
class Region:
    country: str
    state: str = ""

    def to_dict(self) -> dict[str, str]:
        payload = {"country": self.country}
        if self.state:
            payload["state"] = self.state
        return payload


@dataclass
class RankRow:
    keyword: str
    rank: int
    url: str
    title: str
    provider: str
    domain_match: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "rank": self.rank,
            "url": self.url,
            "title": self.title,
            "provider": self.provider,
            "domain_match": self.domain_match,
        }


@dataclass
class RankResult:
    keyword: str
    region: Region
    rows: list[RankRow] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "region": self.region.to_dict(),
            "rows": [row.to_dict() for row in self.rows],
        }


@dataclass(frozen=True)
class PropertySummary:
    id: str
    display_name: str
    account: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "displayName": self.display_name, "account": self.account}


@dataclass
class PropertyListing:
    properties: list[PropertySummary] = field(default_factory=list)
    # Set when the page cap was reached with a continuation token outstanding.
    truncated: bool = False


@dataclass(frozen=True)
class SiteEntry:
    site_url: str
    permission: str

    def to_dict(self) -> dict[str, str]:
        return {"siteUrl": self.site_url, "permission": self.permission}


@dataclass(frozen=True)
class BusinessLocation:
    name: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "title": self.title}


@dataclass(frozen=True)
class DailyMetricValue:
    metric: str
    date: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"metric": self.metric, "date": self.date, "value": self.value}


@dataclass(frozen=True)
class KeywordImpression:
    keyword: str
    value: int | None
    threshold: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"keyword": self.keyword, "value": self.value, "threshold": self.threshold}


@dataclass(frozen=True)
class VaultEntry:
    key: str
    value: str
    timestamp: str


TRACKER_COLUMNS = (
    "runDate",
    "siteUrl",
    "query",
    "page",
    "position",
    "clicks",
    "impressions",
    "location",
    "serpTopUrl",
    "key",
)


def _as_float(raw: Any) -> float:
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class TrackerRow:
    run_date: str
    site_url: str
    query: str
    page: str
    position: float
    clicks: float
    impressions: float
    location: str
    serp_top_url: str
    key: str

    def to_values(self) -> list[Any]:
        return [
            self.run_date,
            self.site_url,
            self.query,
            self.page,
            self.position,
            self.clicks,
            self.impressions,
            self.location,
            self.serp_top_url,
            self.key,
        ]

    @classmethod
    def from_values(cls, values: list[Any]) -> "TrackerRow":
        padded = [*values, *([""] * (len(TRACKER_COLUMNS) - len(values)))]
        return cls(
            run_date=str(padded[0] or ""),
            site_url=str(padded[1] or ""),
            query=str(padded[2] or ""),
            page=str(padded[3] or ""),
            position=_as_float(padded[4]),
            clicks=_as_float(padded[5]),
            impressions=_as_float(padded[6]),
            location=str(padded[7] or ""),
            serp_top_url=str(padded[8] or ""),
            key=str(padded[9] or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return dict(zip(TRACKER_COLUMNS, self.to_values()))
