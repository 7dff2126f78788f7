"""Normalization functions for club directory consolidation.

All text helpers accept str | None.  The identity-bearing normalizers
(normalize_name, normalize_city, normalize_state) always return a string so
that callers can compare results directly; blank input yields "" (or the
UNRECOGNIZED_STATE sentinel for states).
"""

from __future__ import annotations

import re
import unicodedata

# Sentinel returned by normalize_state for anything outside the lookup table.
UNRECOGNIZED_STATE = "??"


# ---------------------------------------------------------------------------
# State lookup table (50 states + DC)
# ---------------------------------------------------------------------------

STATE_NAMES: dict[str, str] = {
    "al": "Alabama", "ak": "Alaska", "az": "Arizona", "ar": "Arkansas",
    "ca": "California", "co": "Colorado", "ct": "Connecticut", "de": "Delaware",
    "fl": "Florida", "ga": "Georgia", "hi": "Hawaii", "id": "Idaho",
    "il": "Illinois", "in": "Indiana", "ia": "Iowa", "ks": "Kansas",
    "ky": "Kentucky", "la": "Louisiana", "me": "Maine", "md": "Maryland",
    "ma": "Massachusetts", "mi": "Michigan", "mn": "Minnesota", "ms": "Mississippi",
    "mo": "Missouri", "mt": "Montana", "ne": "Nebraska", "nv": "Nevada",
    "nh": "New Hampshire", "nj": "New Jersey", "nm": "New Mexico", "ny": "New York",
    "nc": "North Carolina", "nd": "North Dakota", "oh": "Ohio", "ok": "Oklahoma",
    "or": "Oregon", "pa": "Pennsylvania", "ri": "Rhode Island", "sc": "South Carolina",
    "sd": "South Dakota", "tn": "Tennessee", "tx": "Texas", "ut": "Utah",
    "vt": "Vermont", "va": "Virginia", "wa": "Washington", "wv": "West Virginia",
    "wi": "Wisconsin", "wy": "Wyoming", "dc": "District of Columbia",
}

_STATE_CODES_BY_NAME: dict[str, str] = {
    name.lower(): code for code, name in STATE_NAMES.items()
}
_STATE_CODES_BY_NAME["washington dc"] = "dc"
_STATE_CODES_BY_NAME["washington d c"] = "dc"
_STATE_CODES_BY_NAME["d c"] = "dc"


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = str(value).strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


def _fold_accents(value: str) -> str:
    v = unicodedata.normalize("NFKD", value)
    return "".join(c for c in v if not unicodedata.combining(c))


# ---------------------------------------------------------------------------
# Rule 3: normalize_name  (matching only, never displayed)
# ---------------------------------------------------------------------------

# Whole-word club suffixes.  Longer phrases come first so "motorcycle club"
# is removed as a unit rather than leaving "motorcycle" behind.
_CLUB_SUFFIX_RE = re.compile(
    r"(?<![a-z0-9])"
    r"(motorcycle club|riding club|riders club|chapter|m\.c\.|mc|#\d+)"
    r"(?![a-z0-9])",
)


def normalize_name(value: str | None) -> str:
    """Canonical comparison form of a club name.

    Lower-cases, removes club-suffix tokens ("MC", "M.C.", "Motorcycle Club",
    "Riding Club", "Riders Club", "Chapter", "#12"), drops everything outside
    [a-z0-9 ] and collapses whitespace.

    >>> normalize_name("Iron Horsemen M.C. #12")
    'iron horsemen'
    """
    v = normalize_space(value)
    if v is None:
        return ""
    v = _fold_accents(v).lower()
    v = _CLUB_SUFFIX_RE.sub(" ", v)
    v = re.sub(r"[^a-z0-9 ]", "", v)
    return re.sub(r"\s+", " ", v).strip()


# ---------------------------------------------------------------------------
# Rule 4: normalize_city
# ---------------------------------------------------------------------------

def normalize_city(value: str | None) -> str:
    """Lower-case city with only [a-z0-9 -] kept.

    Runs of separators collapse to the first separator of the run; leading
    and trailing separators are removed.  "St. Paul" → "st paul".
    """
    v = trim(value)
    if v is None:
        return ""
    v = _fold_accents(v).lower()
    v = re.sub(r"[^a-z0-9 -]", "", v)
    v = re.sub(r"([ -])[ -]*", r"\1", v)
    return v.strip(" -")


# ---------------------------------------------------------------------------
# Rule 5: normalize_state
# ---------------------------------------------------------------------------

def normalize_state(value: str | None) -> str:
    """Map a state name or code to its lowercase 2-letter code.

    Returns UNRECOGNIZED_STATE for anything not in the 50 states + DC table;
    never guesses.
    """
    v = normalize_space(value)
    if v is None:
        return UNRECOGNIZED_STATE
    key = re.sub(r"[^a-z ]", " ", v.lower())
    key = re.sub(r"\s+", " ", key).strip()
    if key in STATE_NAMES:
        return key
    return _STATE_CODES_BY_NAME.get(key, UNRECOGNIZED_STATE)


def state_display_name(code: str) -> str | None:
    """Canonical display name for a state code, or None when unknown."""
    return STATE_NAMES.get(code)


# ---------------------------------------------------------------------------
# Rule 6: slugs
# ---------------------------------------------------------------------------

def slug_text(value: str | None) -> str | None:
    """Lowercase alnum with '-' separators; None when nothing survives."""
    v = trim(value)
    if v is None:
        return None
    v = _fold_accents(v).lower()
    v = re.sub(r"[^a-z0-9]+", "-", v)
    v = v.strip("-")
    return v if v else None


def city_slug(city: str | None) -> str:
    return slug_text(normalize_city(city)) or ""


def build_base_slug(name: str, city: str, state_code: str) -> str:
    """Base slug for a new club: name-city-state, URL-safe."""
    return slug_text(f"{name} {city} {state_code}") or ""


# ---------------------------------------------------------------------------
# Helper: split_location
# ---------------------------------------------------------------------------

_NOMAD_RE = re.compile(r"\(\s*nomads?\s*\)", re.IGNORECASE)


def split_location(location: str | None) -> tuple[str | None, str | None]:
    """Split a free-form location into (city, state).

    Supports:
    - "Austin, Texas" / "Austin, TX" → ("Austin", "Texas"/"TX")
    - "Dallas, Texas, USA"           → ("Dallas", "Texas")
    - "Texas (Nomad)"                → ("Nomad", "Texas")
    - "Texas"                        → (None, "Texas")
    Returns (None, None) when no part of the location is a state.
    """
    v = normalize_space(location)
    if not v:
        return None, None

    if _NOMAD_RE.search(v):
        state = normalize_space(_NOMAD_RE.sub("", v))
        if normalize_state(state) != UNRECOGNIZED_STATE:
            return "Nomad", state
        return None, None

    parts = [p.strip() for p in v.split(",") if p.strip()]
    if parts and parts[-1].lower() in ("usa", "us", "united states"):
        parts = parts[:-1]
    if len(parts) >= 2 and normalize_state(parts[-1]) != UNRECOGNIZED_STATE:
        return parts[0], parts[-1]
    if len(parts) == 1 and normalize_state(parts[0]) != UNRECOGNIZED_STATE:
        return None, parts[0]
    return None, None


# ---------------------------------------------------------------------------
# Helper: infer_category
# ---------------------------------------------------------------------------

DEFAULT_CATEGORY = "Motorcycle club"

# First matching rule wins.
_CATEGORY_RULES: list[tuple[tuple[str, ...], str]] = [
    (("hog", "harley"), "Harley Owners Group"),
    (("bmw",), "BMW Motorcycle club"),
    (("ducati",), "Ducati Owners club"),
    (("victory",), "Victory Riders club"),
    (("indian",), "Indian Motorcycle club"),
    (("women", "lady", "ladies"), "Women's Motorcycle club"),
    (("veteran", "military", "combat"), "Veterans Motorcycle club"),
    (("law enforcement", "police", "blue knight"), "Law Enforcement Motorcycle club"),
    (("christian", "faith", "ministry"), "Christian Motorcycle club"),
]


def infer_category(name: str | None) -> str:
    """Guess a display category from keywords in the club name."""
    lowered = (name or "").lower()
    for keywords, category in _CATEGORY_RULES:
        if any(k in lowered for k in keywords):
            return category
    return DEFAULT_CATEGORY
