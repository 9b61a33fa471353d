from __future__ import annotations

from dataclasses import dataclass


COUNTRIES: tuple[tuple[str, str], ...] = (
    ("ALL", "All countries"),
    ("US", "USA"),
    ("IN", "India"),
    ("GB", "United Kingdom"),
    ("AU", "Australia"),
)

REGIONS_BY_COUNTRY: dict[str, tuple[str, ...]] = {
    "US": (
        "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado",
        "Connecticut", "Delaware", "Florida", "Georgia", "Hawaii", "Idaho",
        "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine",
        "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
        "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
        "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
        "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
        "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
        "Washington", "West Virginia", "Wisconsin", "Wyoming",
    ),
    "IN": (
        "Andhra Pradesh", "Assam", "Bihar", "Chhattisgarh", "Delhi", "Goa",
        "Gujarat", "Haryana", "Himachal Pradesh", "Jammu & Kashmir", "Jharkhand",
        "Karnataka", "Kerala", "Madhya Pradesh", "Maharashtra", "Manipur",
        "Meghalaya", "Mizoram", "Nagaland", "Odisha", "Punjab", "Rajasthan",
        "Sikkim", "Tamil Nadu", "Telangana", "Tripura", "Uttar Pradesh",
        "Uttarakhand", "West Bengal",
    ),
    "GB": ("England", "Scotland", "Wales", "Northern Ireland"),
    "AU": (
        "New South Wales", "Victoria", "Queensland", "Western Australia",
        "South Australia", "Tasmania", "Australian Capital Territory",
        "Northern Territory",
    ),
}

# Rank providers accept alpha-3 codes from older clients and alpha-2 from the pickers.
COUNTRY_MAP: dict[str, tuple[str, str]] = {
    "USA": ("United States", "US"),
    "IND": ("India", "IN"),
    "GBR": ("United Kingdom", "GB"),
    "AUS": ("Australia", "AU"),
    "CAN": ("Canada", "CA"),
    "US": ("United States", "US"),
    "IN": ("India", "IN"),
    "GB": ("United Kingdom", "GB"),
    "AU": ("Australia", "AU"),
    "CA": ("Canada", "CA"),
}


@dataclass(frozen=True)
class NormalizedRegion:
    country_name: str
    location_name: str
    iso2: str


def normalize_region(country: str, state: str | None = None) -> NormalizedRegion:
    code = (country or "").strip().upper()
    name, iso2 = COUNTRY_MAP.get(code, (code, code[:2]))
    state_value = (state or "").strip()
    location_name = f"{state_value}, {name}" if state_value else name
    return NormalizedRegion(country_name=name, location_name=location_name, iso2=iso2.lower())


def regions_for(country: str) -> list[str]:
    return list(REGIONS_BY_COUNTRY.get((country or "").strip().upper(), ()))


def alpha3_for(country: str) -> str:
    """Search Console filters on lower-case ISO alpha-3 codes."""
    code = (country or "").strip().upper()
    if len(code) == 3:
        return code.lower()
    for key, (_, iso2) in COUNTRY_MAP.items():
        if len(key) == 3 and iso2 == code:
            return key.lower()
    return code.lower()
