from __future__ import annotations

from datetime import date

from vsight.errors import InvalidParameter, MissingParameters
from vsight.models import DateRange
from vsight.utils import last_n_days


PRESET_DAYS: dict[str, int] = {
    "last28d": 28,
    "last60d": 60,
    "last90d": 90,
}
CUSTOM_PRESET = "custom"
DATE_PRESETS = (*PRESET_DAYS, CUSTOM_PRESET)


def parse_day(raw: str | date | None, field: str) -> date:
    if isinstance(raw, date):
        return raw
    value = str(raw or "").strip()
    if not value:
        raise MissingParameters([field])
    try:
        # Accept full timestamps as well, only the day part matters.
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise InvalidParameter(f"Invalid {field}: {value!r} (expected YYYY-MM-DD)") from exc


def resolve_preset(
    preset: str,
    start: str | date | None = None,
    end: str | date | None = None,
    today: date | None = None,
) -> DateRange:
    """Resolve a dashboard date preset into a concrete inclusive range.

    ``custom`` uses the explicit ``start``/``end`` days; the ``lastNd`` presets
    end today.
    """
    key = (preset or "").strip()
    if key in PRESET_DAYS:
        return last_n_days(PRESET_DAYS[key], today=today)
    if key != CUSTOM_PRESET:
        raise InvalidParameter(
            f"Unknown date preset {preset!r}. Use one of: {', '.join(DATE_PRESETS)}."
        )

    missing = [name for name, value in (("startDate", start), ("endDate", end)) if not value]
    if missing:
        raise MissingParameters(missing)
    start_day = parse_day(start, "startDate")
    end_day = parse_day(end, "endDate")
    if end_day < start_day:
        raise InvalidParameter("endDate must not be before startDate")
    return DateRange(start=start_day, end=end_day)
