"""US address parsing helpers.

Partner automations frequently send a whole address in the street field,
e.g. ``"201 ELBRIDGE AVE, APT F, Cloverdale, California, 95425"`` or
``"2900 W Dallas St, 130, HO Texas"``. ``parse_address_string`` splits such
strings into components by working backwards from the ZIP code.
"""

import re

from billing.models import ParsedAddress

STATE_NAME_TO_CODE: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
    "puerto rico": "PR", "virgin islands": "VI", "guam": "GU",
}  # fmt: skip

VALID_STATE_CODES = frozenset(STATE_NAME_TO_CODE.values())

# Longest names first so "west virginia" wins over "virginia"
_STATE_KEYS_BY_LENGTH = sorted(
    [*STATE_NAME_TO_CODE, *(code.lower() for code in VALID_STATE_CODES)],
    key=len,
    reverse=True,
)

APARTMENT_PATTERNS = [
    re.compile(r"^APT\.?\s*", re.IGNORECASE),
    re.compile(r"^APARTMENT\s*", re.IGNORECASE),
    re.compile(r"^UNIT\s*", re.IGNORECASE),
    re.compile(r"^STE\.?\s*", re.IGNORECASE),
    re.compile(r"^SUITE\s*", re.IGNORECASE),
    re.compile(r"^#\s*"),
    re.compile(r"^BLDG\.?\s*", re.IGNORECASE),
    re.compile(r"^BUILDING\s*", re.IGNORECASE),
    re.compile(r"^FLOOR\s*", re.IGNORECASE),
    re.compile(r"^FL\.?\s*", re.IGNORECASE),
    re.compile(r"^RM\.?\s*", re.IGNORECASE),
    re.compile(r"^ROOM\s*", re.IGNORECASE),
]

_BARE_UNIT = re.compile(r"^\d{1,5}[A-Za-z]?$")
_ZIP = re.compile(r"^\d{5}(-\d{4})?$")
_STATE_ZIP = re.compile(r"^(.+?)\s+(\d{5}(?:-\d{4})?)$")


def _state_code(value: str) -> str | None:
    key = value.strip().lower()
    if key in STATE_NAME_TO_CODE:
        return STATE_NAME_TO_CODE[key]
    if key.upper() in VALID_STATE_CODES:
        return key.upper()
    return None


def is_apartment(value: str) -> bool:
    """True for "APT 4B", "Suite 200", "#12" and bare unit numbers like "130"."""
    trimmed = value.strip()
    if any(pattern.match(trimmed) for pattern in APARTMENT_PATTERNS):
        return True
    return bool(_BARE_UNIT.match(trimmed))


def is_state(value: str) -> bool:
    return _state_code(value) is not None


def is_zip_code(value: str) -> bool:
    return bool(_ZIP.match(value.strip()))


def normalize_state(state: str | None) -> str:
    """Map a state name or code to its 2-letter code.

    Unknown values are upper-cased and truncated to two characters.
    """
    if not state or not state.strip():
        return ""
    return _state_code(state) or state.strip().upper()[:2]


def extract_city_state(value: str) -> tuple[str, str] | None:
    """Split "Houston TX" or "HO Texas" into (city, state code)."""
    trimmed = value.strip()
    lowered = trimmed.lower()
    for key in _STATE_KEYS_BY_LENGTH:
        if lowered.endswith(" " + key):
            city = trimmed[: -len(key)].strip()
            if city:
                return city, _state_code(key) or ""
    return None


def parse_address_string(address: str | None) -> ParsedAddress:
    """Parse a comma-separated address into components.

    Handles a trailing ZIP, a "STATE ZIP" pair, a standalone state, a
    "City State" pair, and apartment tokens anywhere after the street.
    """
    result = ParsedAddress()
    if not address or not isinstance(address, str):
        return result

    parts = [p.strip() for p in address.split(",") if p.strip()]
    if not parts:
        return result
    if len(parts) == 1:
        result.address1 = parts[0]
        return result

    remaining = list(parts)

    # ZIP, or "STATE ZIP"
    last = remaining[-1]
    if is_zip_code(last):
        result.zip = last
        remaining.pop()
    else:
        match = _STATE_ZIP.match(last)
        if match and is_state(match.group(1)):
            result.state = normalize_state(match.group(1))
            result.zip = match.group(2)
            remaining.pop()

    # Standalone state, or "City State"
    if not result.state and remaining:
        last = remaining[-1]
        if is_state(last):
            result.state = normalize_state(last)
            remaining.pop()
        else:
            city_state = extract_city_state(last)
            if city_state:
                result.city, result.state = city_state
                remaining.pop()

    if len(remaining) == 1:
        result.address1 = remaining[0]
    elif len(remaining) == 2:
        result.address1, second = remaining
        if is_apartment(second) or result.city:
            result.address2 = second
        else:
            result.city = second
    elif len(remaining) > 2:
        result.address1 = remaining[0]
        apt_index = next(
            (i for i in range(1, len(remaining)) if is_apartment(remaining[i])),
            None,
        )
        if apt_index is not None:
            result.address2 = remaining[apt_index]
            if not result.city:
                after = remaining[apt_index + 1 :]
                before = remaining[1:apt_index]
                result.city = ", ".join(after) or ", ".join(before)
        else:
            if not result.city:
                result.city = remaining[-1]
            result.address1 = ", ".join(remaining[:-1])

    return result


def needs_combined_parse(
    address1: str, address2: str, city: str, state: str, zip_code: str
) -> bool:
    """Decide whether ``address1`` should be parsed as a combined string.

    True when address1 holds commas and the discrete components are either
    all absent or clearly misplaced (a comma-bearing component, an apartment
    token where the city should be, a non-state or a non-ZIP).
    """
    if "," not in address1:
        return False
    components = [address2, city, state, zip_code]
    if not any(components):
        return True
    if any("," in c for c in components):
        return True
    if city and is_apartment(city):
        return True
    if state and not is_state(state):
        return True
    if zip_code and not is_zip_code(zip_code):
        return True
    return False
