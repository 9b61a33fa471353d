from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from pathlib import Path
from typing import Any

from vsight.errors import InvalidParameter
from vsight.models import DateRange
from vsight.time_windows import DATE_PRESETS, resolve_preset


logger = logging.getLogger(__name__)

STORAGE_KEY = "vsight.preferences"


@dataclass(frozen=True)
class UserPreferences:
    """Dashboard selections; replaced wholesale on every change."""

    property_id: str = ""
    site_url: str = ""
    location_name: str = ""
    date_preset: str = "last28d"
    start_date: str = ""
    end_date: str = ""
    country: str = "ALL"
    region: str = ""

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserPreferences":
        known = set(cls.field_names())
        values = {
            key: str(value) if value is not None else ""
            for key, value in payload.items()
            if key in known
        }
        merged = replace(DEFAULT_PREFERENCES, **values)
        if merged.date_preset not in DATE_PRESETS:
            merged = replace(merged, date_preset=DEFAULT_PREFERENCES.date_preset)
        return merged

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    def updated(self, **changes: Any) -> "UserPreferences":
        unknown = sorted(set(changes) - set(self.field_names()))
        if unknown:
            raise InvalidParameter(f"Unknown preference field(s): {', '.join(unknown)}")
        preset = changes.get("date_preset")
        if preset is not None and preset not in DATE_PRESETS:
            raise InvalidParameter(
                f"Unknown date preset {preset!r}. Use one of: {', '.join(DATE_PRESETS)}."
            )
        values = {key: "" if value is None else str(value) for key, value in changes.items()}
        # A region only makes sense inside the country it was picked for.
        if "country" in values and values["country"] != self.country and "region" not in values:
            values["region"] = ""
        return replace(self, **values)

    def date_range(self, today: date | None = None) -> DateRange:
        return resolve_preset(self.date_preset, self.start_date, self.end_date, today=today)


DEFAULT_PREFERENCES = UserPreferences()


class PreferenceStore:
    """JSON blob on disk holding the preferences under a fixed key."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_blob(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Preferences file %s is not valid JSON; using defaults.", self.path)
            return {}
        return payload if isinstance(payload, dict) else {}

    def load(self) -> UserPreferences:
        stored = self._read_blob().get(STORAGE_KEY)
        if not isinstance(stored, dict):
            return DEFAULT_PREFERENCES
        return UserPreferences.from_dict(stored)

    def save(self, preferences: UserPreferences) -> None:
        blob = self._read_blob()
        blob[STORAGE_KEY] = preferences.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(blob, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)
