from __future__ import annotations

from typing import Dict, List, Tuple

BOROUGHS: Tuple[str, ...] = (
    "BRONX",
    "BROOKLYN",
    "MANHATTAN",
    "QUEENS",
    "STATEN ISLAND",
)

WEEKDAYS: Tuple[str, ...] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

HOURS: Tuple[int, ...] = tuple(range(24))

PERP_AGE_GROUPS: Tuple[str, ...] = ("<18", "18-24", "25-44", "45-64", "65+", "UNKNOWN")
PERP_SEXES: Tuple[str, ...] = ("F", "M", "U")
PERP_RACES: Tuple[str, ...] = (
    "AMERICAN INDIAN/ALASKAN NATIVE",
    "ASIAN / PACIFIC ISLANDER",
    "BLACK",
    "BLACK HISPANIC",
    "UNKNOWN",
    "WHITE",
    "WHITE HISPANIC",
)

# Age-group codes that appear in the raw export but are not valid groups
MALFORMED_AGE_CODES: Dict[str, str] = {
    "1020": "UNKNOWN",
    "224": "UNKNOWN",
    "940": "UNKNOWN",
}


def weekday_order(start: str = "Sunday") -> List[str]:
    if start not in WEEKDAYS:
        raise ValueError(f"Unknown weekday '{start}'. Expected one of {', '.join(WEEKDAYS)}.")
    offset = WEEKDAYS.index(start)
    return list(WEEKDAYS[offset:] + WEEKDAYS[:offset])
