from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from vsight.models import MergedRow
from vsight.utils import pct_change


logger = logging.getLogger(__name__)

WINDOW_DAYS = 7


@dataclass(frozen=True)
class WindowStats:
    sessions: float = 0.0
    clicks: float = 0.0
    # Mean of the per-day CTR percentages.
    avg_ctr: float = 0.0


def _field(row: MergedRow | Mapping[str, Any], name: str) -> float:
    if isinstance(row, Mapping):
        raw = row.get(name)
    else:
        raw = getattr(row, name, 0)
    return float(raw or 0)


def window_stats(rows: Sequence[MergedRow | Mapping[str, Any]]) -> WindowStats:
    if not rows:
        return WindowStats()
    return WindowStats(
        sessions=sum(_field(row, "sessions") for row in rows),
        clicks=sum(_field(row, "clicks") for row in rows),
        avg_ctr=sum(_field(row, "ctr") for row in rows) / len(rows),
    )


def _signed(value: float) -> str:
    return f"{value:+.1f}%"


def _build_summary(rows: Sequence[MergedRow | Mapping[str, Any]]) -> str:
    current_rows = list(rows[-WINDOW_DAYS:])
    prior_rows = list(rows[-2 * WINDOW_DAYS : -WINDOW_DAYS]) if len(rows) > WINDOW_DAYS else []

    current = window_stats(current_rows)
    prior = window_stats(prior_rows)

    sessions_delta = pct_change(current.sessions, prior.sessions)
    clicks_delta = pct_change(current.clicks, prior.clicks)
    ctr_delta = pct_change(current.avg_ctr, prior.avg_ctr)

    return (
        f"In the last {len(current_rows)} days the site had {current.sessions:,.0f} sessions "
        f"({_signed(sessions_delta)}) and {current.clicks:,.0f} search clicks "
        f"({_signed(clicks_delta)}) with an average CTR of {current.avg_ctr:.2f}% "
        f"({_signed(ctr_delta)}). "
        f"The prior {len(prior_rows)} days had {prior.sessions:,.0f} sessions, "
        f"{prior.clicks:,.0f} clicks and an average CTR of {prior.avg_ctr:.2f}%."
    )


def summarize(rows: Sequence[MergedRow | Mapping[str, Any]] | None) -> str:
    """Two-sentence comparison of the trailing week against the week before.

    Advisory only: any failure yields an empty string.
    """
    if not rows:
        return ""
    try:
        return _build_summary(list(rows))
    except Exception:  # noqa: BLE001
        logger.warning("Insight summary failed; returning empty summary.", exc_info=True)
        return ""
