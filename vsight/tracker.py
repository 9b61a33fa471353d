from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from vsight.clients.gsc_client import GSCClient
from vsight.clients.serp_client import RankProvider
from vsight.clients.sheets_client import SheetsClient
from vsight.models import TRACKER_COLUMNS, DateRange, QueryRow, Region, TrackerRow


logger = logging.getLogger(__name__)

TRACKER_SHEET = "Tracker"
TRACKER_RANGE = "Tracker!A:J"
MAX_TRACKER_ROWS = 1000
RECENT_LIMIT = 100
DEFAULT_TRACKER_REGION = Region(country="US")


@dataclass(frozen=True)
class TrackerRunResult:
    appended: int
    message: str


def dedup_key(
    email: str,
    site_url: str,
    date_range: DateRange,
    keywords: Sequence[str],
    location: str,
    top_n: int,
) -> str:
    parts = [
        email,
        site_url,
        date_range.start_iso,
        date_range.end_iso,
        *[str(keyword) for keyword in keywords],
        location,
        str(top_n),
    ]
    return "|".join(parts)


def filter_queries(rows: Sequence[QueryRow], keywords: Sequence[str]) -> list[QueryRow]:
    needles = [str(keyword).lower() for keyword in keywords if str(keyword).strip()]
    if not needles:
        return list(rows)
    return [row for row in rows if any(needle in row.query.lower() for needle in needles)]


def run_tracker(
    gsc: GSCClient,
    sheets: SheetsClient,
    spreadsheet_name: str,
    *,
    email: str,
    site_url: str,
    date_range: DateRange,
    keywords: Sequence[str] = (),
    location: str = "",
    top_n: int = 100,
    rank_provider: RankProvider | None = None,
    region: Region | None = None,
    max_rows: int = MAX_TRACKER_ROWS,
) -> TrackerRunResult:
    """Snapshot the site's top queries into the ``Tracker`` tab.

    Each row is stamped with the range end date and a key describing the run
    parameters; the SERP top URL is only looked up when a rank provider is given.
    """
    queries = gsc.top_queries(
        site_url,
        date_range,
        row_limit=top_n,
        dimensions=("query", "page"),
    )
    selected = filter_queries(queries, keywords)[: max(0, int(max_rows))]
    key = dedup_key(email, site_url, date_range, keywords, location, top_n)
    lookup_region = region or DEFAULT_TRACKER_REGION

    rows: list[TrackerRow] = []
    for query in selected:
        top_url = rank_provider.top_url(query.query, lookup_region) if rank_provider else ""
        rows.append(
            TrackerRow(
                run_date=date_range.end_iso,
                site_url=site_url,
                query=query.query,
                page=query.page,
                position=query.position,
                clicks=query.clicks,
                impressions=query.impressions,
                location=location,
                serp_top_url=top_url,
                key=key,
            )
        )

    if rows:
        spreadsheet_id, _ = sheets.find_or_create_spreadsheet(spreadsheet_name)
        sheets.ensure_sheet(spreadsheet_id, TRACKER_SHEET)
        sheets.append_values(spreadsheet_id, TRACKER_SHEET, [row.to_values() for row in rows])
    logger.info("Tracker appended %s row(s) for %s", len(rows), site_url)

    return TrackerRunResult(
        appended=len(rows),
        message=(
            f"Tracker: appended {len(rows)} row(s) for {site_url} "
            f"({date_range.start_iso}..{date_range.end_iso})"
        ),
    )


def recent_rows(
    sheets: SheetsClient,
    spreadsheet_id: str,
    limit: int = RECENT_LIMIT,
) -> tuple[list[str], list[TrackerRow]]:
    values = sheets.get_values(spreadsheet_id, TRACKER_RANGE)
    tail = values[-limit:] if limit > 0 else []
    return list(TRACKER_COLUMNS), [TrackerRow.from_values(list(row)) for row in tail]
