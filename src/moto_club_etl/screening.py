"""moto_club_etl.screening

Heuristics that catch scraped records which are not usable directory
entries: a "city" that is really a state or a club name, and places whose
category shows they are not motorcycle clubs (bars, dealers, schools, ...).

Two entry points:
  screen  intake, applied during validation when screening is enabled.
          Rejects only a city on the known-bad list or an excluded category.
  audit   --mode audit over canonical records.  Adds the broad city
          heuristics (state name, club-like words, overlong value), which
          also match real towns such as New York, NY or Washington, DC, so
          findings are reported for review and nothing is removed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from moto_club_etl.models import ClubRecord
from moto_club_etl.normalize import STATE_NAMES

INVALID_CITY = "invalid_city"
EXCLUDED_CATEGORY = "excluded_category"

_STATE_NAMES_LOWER = frozenset(name.lower() for name in STATE_NAMES.values())

CLUB_NAME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"motorcycle", r"\bmc\b", r"\bm/c\b", r"\bfmc\b", r"\bclub\b",
        r"riders", r"riding\b", r"association", r"chapter", r"trials",
        r"cruisers", r"knights", r"wheels", r"enduro", r"competition",
        r"cycle\b", r"bikers", r"disciples", r"rebels", r"warriors",
        r"angels", r"brotherhood", r"redeemed", r"savages", r"gypsies",
        r"pirates", r"outlaws", r"veterans?\b", r"elks\b",
    )
]

DEFAULT_KNOWN_BAD_CITIES = frozenset({
    "perry mountain", "sand dollar", "loners", "mayhem fmc", "bjmc",
    "off camber", "southern", "blackhawk", "gator", "menehunes",
    "the lost ones", "lost souls",
})

DEFAULT_EXCLUDED_CATEGORIES = frozenset({
    # Bars & nightlife
    "Bar", "Bar & grill", "Nightclub", "Night club", "Dance club", "Gay bar",
    "Lounge", "Cocktail bar", "Sports bar", "Dive bar", "Wine bar", "Pub",
    "Irish pub", "Biker bar",
    # Food & beverage
    "Restaurant", "Cafe", "Coffee shop", "American restaurant",
    "Hamburger restaurant", "Pizza restaurant", "Fast food restaurant",
    # Schools & training
    "Driving school", "Motorcycle driving school", "Training centre",
    "Motorcycle training school",
    # Bicycles and fitness
    "Bicycle club", "Fitness center", "Gym", "Cycling club",
    "Indoor cycling", "Spinning",
    # Entertainment
    "Adult entertainment club", "Amusement center", "Entertainment center",
    # Venues
    "Racecourse", "Off-road racing venue", "Off roading area", "Race track",
    "Motorsports venue",
    # Retail & services
    "Motorcycle dealer", "Motorcycle shop", "Motorcycle repair shop",
    "Auto repair shop", "Garage", "Store", "Clothing store", "Car dealer",
    "Auto parts store",
    # Religious
    "Church", "Place of worship",
})


@dataclass
class Screener:
    max_city_length: int = 25
    known_bad_cities: frozenset[str] = DEFAULT_KNOWN_BAD_CITIES
    excluded_categories: frozenset[str] = DEFAULT_EXCLUDED_CATEGORIES

    def is_known_bad_city(self, club: ClubRecord) -> bool:
        return club.city.lower().strip() in self.known_bad_cities

    def is_suspect_city(self, club: ClubRecord) -> bool:
        """Known-bad city, or one the broad heuristics flag (audit only)."""
        city = club.city.lower().strip()
        if not city:
            return False
        if city == club.state_name.lower().strip():
            return True
        if city in _STATE_NAMES_LOWER:
            return True
        if city in self.known_bad_cities:
            return True
        if len(city) > self.max_city_length:
            return True
        return any(p.search(city) for p in CLUB_NAME_PATTERNS)

    def is_excluded_category(self, club: ClubRecord) -> bool:
        category = club.main_category.strip()
        return bool(category) and category in self.excluded_categories

    def screen(self, club: ClubRecord) -> str | None:
        """Intake reject reason, or None when the club passes."""
        if self.is_known_bad_city(club):
            return INVALID_CITY
        if self.is_excluded_category(club):
            return EXCLUDED_CATEGORY
        return None

    def audit(self, club: ClubRecord) -> str | None:
        if self.is_suspect_city(club):
            return INVALID_CITY
        if self.is_excluded_category(club):
            return EXCLUDED_CATEGORY
        return None


def build_screener(
    max_city_length: int = 25,
    known_bad_cities: list[str] | None = None,
    excluded_categories: list[str] | None = None,
) -> Screener:
    """Screener with the built-in lists extended by configured entries."""
    return Screener(
        max_city_length=max_city_length,
        known_bad_cities=DEFAULT_KNOWN_BAD_CITIES | {c.lower() for c in known_bad_cities or []},
        excluded_categories=DEFAULT_EXCLUDED_CATEGORIES | set(excluded_categories or []),
    )
