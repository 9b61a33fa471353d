from __future__ import annotations

import math
from typing import Iterable, Sequence

from vsight.models import DateSeriesPoint, MergedRow


MOVING_AVERAGE_WINDOW = 7


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def moving_average(values: Sequence[float], window: int = MOVING_AVERAGE_WINDOW) -> list[int]:
    """Trailing mean of the current point and up to ``window - 1`` predecessors."""
    span = max(1, int(window))
    out: list[int] = []
    for index in range(len(values)):
        window_values = [float(value) for value in values[max(0, index - span + 1) : index + 1]]
        out.append(_round_half_up(sum(window_values) / len(window_values)))
    return out


def merge_daily(
    sessions_points: Iterable[DateSeriesPoint] | None,
    search_points: Iterable[DateSeriesPoint] | None,
) -> list[MergedRow]:
    """Union the analytics and search-console series on their date key.

    Sessions come from ``sessions_points``; clicks, impressions, CTR and
    position from ``search_points``. A repeated date within one input keeps
    the last value seen.
    """
    merged: dict[str, MergedRow] = {}

    for point in sessions_points or ():
        key = point.date or ""
        row = merged.get(key) or MergedRow(date=key)
        row.sessions = float(point.sessions or 0)
        merged[key] = row

    for point in search_points or ():
        key = point.date or ""
        row = merged.get(key) or MergedRow(date=key)
        row.clicks = float(point.clicks or 0)
        row.impressions = float(point.impressions or 0)
        row.ctr = round(float(point.ctr or 0) * 100, 2)
        row.position = float(point.position or 0)
        merged[key] = row

    rows = sorted(merged.values(), key=lambda row: row.date)
    for row, average in zip(rows, moving_average([row.sessions for row in rows])):
        row.sessions_ma7 = average
    return rows
