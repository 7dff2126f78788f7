"""moto_club_etl.aggregates

Rebuild per-state and per-city aggregates from the full club set.

Counts are always recomputed from scratch by one scan over the clubs; prior
aggregates contribute only their descriptive fields (names, slugs), never
their counts.
"""

from __future__ import annotations

from collections import defaultdict

from moto_club_etl.models import CityAggregate, ClubRecord, StateAggregate
from moto_club_etl.normalize import slug_text, state_display_name


def recompute(
    clubs: list[ClubRecord],
    prior_states: list[StateAggregate],
    prior_cities: list[CityAggregate],
) -> tuple[list[StateAggregate], list[CityAggregate]]:
    """Return fresh (states, cities) for `clubs`.

    States: every prior code/name pair is kept (a state with no clubs stays
    in the list with zero counts); states that only appear in `clubs` are
    added.  Sorted by name, then code.

    Cities: keyed by (state_code, city_slug).  Prior cities keep name and
    state_name; new keys take them from the first club seen.  Sorted by
    (state_code, name, slug).

    Pure: inputs are not modified and repeated calls give equal output.
    """
    state_clubs: dict[str, int] = defaultdict(int)
    state_city_slugs: dict[str, set[str]] = defaultdict(set)
    city_clubs: dict[tuple[str, str], int] = defaultdict(int)
    first_club: dict[tuple[str, str], ClubRecord] = {}
    first_state_club: dict[str, ClubRecord] = {}

    for club in clubs:
        code = club.state_code.lower()
        key = (code, club.city_slug)
        state_clubs[code] += 1
        state_city_slugs[code].add(club.city_slug)
        city_clubs[key] += 1
        first_club.setdefault(key, club)
        first_state_club.setdefault(code, club)

    # -- states --------------------------------------------------------------
    states: list[StateAggregate] = []
    seen_codes: set[str] = set()
    for prior in prior_states:
        code = prior.code.lower()
        if code in seen_codes:
            continue
        seen_codes.add(code)
        states.append(StateAggregate(
            code=code,
            name=prior.name,
            slug=prior.slug or slug_text(prior.name) or code,
            club_count=state_clubs.get(code, 0),
            city_count=len(state_city_slugs.get(code, ())),
        ))
    for code in sorted(state_clubs):
        if code in seen_codes:
            continue
        name = state_display_name(code) or first_state_club[code].state_name or code.upper()
        states.append(StateAggregate(
            code=code,
            name=name,
            slug=slug_text(name) or code,
            club_count=state_clubs[code],
            city_count=len(state_city_slugs[code]),
        ))
    states.sort(key=lambda s: (s.name, s.code))

    # -- cities --------------------------------------------------------------
    cities: list[CityAggregate] = []
    seen_keys: set[tuple[str, str]] = set()
    for prior in prior_cities:
        key = (prior.state_code.lower(), prior.slug)
        if key in seen_keys:
            continue
        seen_keys.add(key)
        cities.append(CityAggregate(
            name=prior.name,
            slug=prior.slug,
            state_code=key[0],
            state_name=prior.state_name,
            club_count=city_clubs.get(key, 0),
        ))
    for key, club in first_club.items():
        if key in seen_keys:
            continue
        cities.append(CityAggregate(
            name=club.city,
            slug=key[1],
            state_code=key[0],
            state_name=club.state_name,
            club_count=city_clubs[key],
        ))
    cities.sort(key=lambda c: (c.state_code, c.name, c.slug))

    return states, cities
