"""US state, city and region lookup tables used by geographic matching."""

import re

from services.extraction.schema import DeliveryLocation

STATE_NAMES = {
    "AL": "Alabama",
    "CA": "California",
    "CT": "Connecticut",
    "DC": "District of Columbia",
    "DE": "Delaware",
    "FL": "Florida",
    "GA": "Georgia",
    "IL": "Illinois",
    "IN": "Indiana",
    "KY": "Kentucky",
    "MA": "Massachusetts",
    "MD": "Maryland",
    "MO": "Missouri",
    "MS": "Mississippi",
    "NC": "North Carolina",
    "NJ": "New Jersey",
    "NY": "New York",
    "OH": "Ohio",
    "PA": "Pennsylvania",
    "SC": "South Carolina",
    "TN": "Tennessee",
    "TX": "Texas",
    "VA": "Virginia",
    "VT": "Vermont",
    "WV": "West Virginia",
}

NEIGHBORING_STATES = {
    "WV": {"VA", "MD", "PA", "KY", "OH"},
    "VA": {"WV", "MD", "NC", "KY", "TN", "DC"},
    "MD": {"VA", "WV", "PA", "DE", "DC"},
    "DC": {"MD", "VA"},
    "NJ": {"PA", "NY", "DE"},
    "PA": {"WV", "MD", "NJ", "NY", "OH", "DE"},
    "DE": {"MD", "PA", "NJ"},
    "NY": {"NJ", "PA", "CT", "MA", "VT"},
    "KY": {"WV", "VA", "TN", "OH", "IN", "IL", "MO"},
    "OH": {"WV", "PA", "KY", "IN"},
    "AL": {"MS", "TN", "GA", "FL"},
    "FL": {"AL", "GA"},
    "MS": {"AL", "TN"},
    "TX": set(),
    "CA": set(),
}

# Regions a delivery state belongs to, matched against supplier-declared regions
STATE_REGIONS = {
    "WV": ["Mid-Atlantic", "Southeast"],
    "VA": ["Mid-Atlantic", "Southeast"],
    "MD": ["Mid-Atlantic", "Northeast"],
    "DC": ["Mid-Atlantic"],
    "NJ": ["Mid-Atlantic", "Northeast"],
    "PA": ["Mid-Atlantic", "Northeast"],
    "DE": ["Mid-Atlantic", "Northeast"],
    "NY": ["Northeast"],
    "CT": ["Northeast"],
    "MA": ["Northeast"],
    "VT": ["Northeast"],
    "KY": ["Southeast", "Midwest"],
    "TN": ["Southeast"],
    "NC": ["Southeast"],
    "SC": ["Southeast"],
    "GA": ["Southeast"],
    "FL": ["Southeast"],
    "AL": ["Southeast"],
    "MS": ["Southeast"],
    "OH": ["Midwest"],
    "IN": ["Midwest"],
    "IL": ["Midwest"],
    "MO": ["Midwest"],
    "TX": ["Southwest"],
    "CA": ["West"],
}

# Macro regions used for proximity between two states
MACRO_REGIONS = {
    "Mid-Atlantic": {"WV", "VA", "MD", "NJ", "PA", "DE", "DC"},
    "Southeast": {"WV", "VA", "KY", "TN", "NC", "SC", "GA", "FL", "AL", "MS"},
    "Northeast": {"MD", "NJ", "PA", "DE", "NY", "CT", "MA", "VT"},
    "Midwest": {"OH", "IN", "IL", "MO", "KY"},
}

CITY_STATES = {
    "kearneysville": "WV",
    "martinsburg": "WV",
    "charleston": "WV",
    "fairmont": "WV",
    "trenton": "NJ",
    "greenbelt": "MD",
    "huntsville": "AL",
    "houston": "TX",
    "hampton": "VA",
    "wallops island": "VA",
    "cleveland": "OH",
    "cape canaveral": "FL",
    "stennis space center": "MS",
    "moffett field": "CA",
    "pasadena": "CA",
    "washington": "DC",
}

# Two-letter codes that are also ordinary uppercase words
AMBIGUOUS_CODES = {"IN", "DE", "MS"}

_STATE_NAME_PATTERN = re.compile(
    r"\b("
    + "|".join(
        re.escape(name.lower()) for name in sorted(STATE_NAMES.values(), key=len, reverse=True)
    )
    + r")\b"
)
_STATE_CODE_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(set(STATE_NAMES) - AMBIGUOUS_CODES)) + r")\b"
)
_CITY_PATTERN = re.compile(
    r"\b("
    + "|".join(re.escape(city) for city in sorted(CITY_STATES, key=len, reverse=True))
    + r")\b"
)
_CODE_BY_NAME = {name.lower(): code for code, name in STATE_NAMES.items()}


def state_name(code: str) -> str:
    """Full state name for a postal code (the code itself if unknown)."""
    return STATE_NAMES.get(code.upper(), code)


def state_code(value: str) -> str | None:
    """Postal code for a state name or code (None if unknown)."""
    stripped = value.strip()
    if stripped.upper() in STATE_NAMES:
        return stripped.upper()
    return _CODE_BY_NAME.get(stripped.lower())


def are_neighbors(first: str, second: str) -> bool:
    return second in NEIGHBORING_STATES.get(first, set()) or first in NEIGHBORING_STATES.get(
        second, set()
    )


def same_macro_region(first: str, second: str) -> bool:
    return any(first in states and second in states for states in MACRO_REGIONS.values())


def find_location(text: str) -> DeliveryLocation | None:
    """Locate a delivery destination in free text.

    Known cities are tried first, then full state names, then unambiguous
    uppercase state codes.
    """
    lowered = text.lower()
    city = _CITY_PATTERN.search(lowered)
    if city:
        name = city.group(1)
        return DeliveryLocation(city=name.title(), state=CITY_STATES[name])

    name_match = _STATE_NAME_PATTERN.search(lowered)
    if name_match:
        return DeliveryLocation(state=_CODE_BY_NAME[name_match.group(1)])

    code_match = _STATE_CODE_PATTERN.search(text)
    if code_match:
        return DeliveryLocation(state=code_match.group(1))
    return None
