"""Unit tests for moto_club_etl.screening."""

import pytest

from moto_club_etl.models import ClubRecord
from moto_club_etl.screening import (
    EXCLUDED_CATEGORY,
    INVALID_CITY,
    Screener,
    build_screener,
)


def _club(
    city: str = "austin",
    main_category: str = "Motorcycle club",
    state_name: str = "Texas",
    state_code: str = "tx",
) -> ClubRecord:
    return ClubRecord(
        external_id="A",
        slug="club-a",
        name="Club A",
        city=city,
        city_slug=city.replace(" ", "-"),
        state_code=state_code,
        state_name=state_name,
        main_category=main_category,
    )


# ---------------------------------------------------------------------------
# screen (intake)
# ---------------------------------------------------------------------------

class TestScreen:
    def test_real_city_passes(self):
        assert Screener().screen(_club("san antonio")) is None

    @pytest.mark.parametrize("city,state_code,state_name", [
        ("new york", "ny", "New York"),
        ("washington", "dc", "District of Columbia"),
        ("washington", "pa", "Pennsylvania"),
        ("knights landing", "ca", "California"),
        ("warriors mark", "pa", "Pennsylvania"),
    ])
    def test_real_towns_matching_city_heuristics_pass(self, city, state_code, state_name):
        club = _club(city, state_code=state_code, state_name=state_name)
        assert Screener().screen(club) is None

    def test_known_bad_city(self):
        assert Screener().screen(_club("lost souls")) == INVALID_CITY

    def test_excluded_category(self):
        assert Screener().screen(_club(main_category="Bar")) == EXCLUDED_CATEGORY

    def test_dealer(self):
        assert Screener().is_excluded_category(_club(main_category="Motorcycle dealer"))

    def test_club_category_passes(self):
        assert not Screener().is_excluded_category(_club(main_category="Motorcycle club"))

    def test_blank_category_passes(self):
        assert not Screener().is_excluded_category(_club(main_category=""))


# ---------------------------------------------------------------------------
# audit
# ---------------------------------------------------------------------------

class TestAudit:
    def test_real_city_passes(self):
        assert Screener().audit(_club("san antonio")) is None

    def test_city_equal_to_own_state(self):
        assert Screener().is_suspect_city(_club("texas"))

    def test_city_is_other_state_name(self):
        assert Screener().is_suspect_city(_club("new mexico"))

    def test_known_bad_city(self):
        assert Screener().is_suspect_city(_club("lost souls"))

    def test_too_long(self):
        assert Screener().is_suspect_city(_club("a" * 26))
        assert not Screener().is_suspect_city(_club("a" * 25))

    @pytest.mark.parametrize("city", ["desert riders", "iron mc", "south chapter", "road warriors"])
    def test_looks_like_club_name(self, city):
        assert Screener().audit(_club(city)) == INVALID_CITY

    def test_nomad_chapter_city_passes(self):
        assert Screener().audit(_club("nomad")) is None

    def test_invalid_city_reported_first(self):
        assert Screener().audit(_club("texas", main_category="Bar")) == INVALID_CITY


class TestBuildScreener:
    def test_configured_entries_extend_defaults(self):
        screener = build_screener(
            max_city_length=40,
            known_bad_cities=["Iron Range"],
            excluded_categories=["Tattoo shop"],
        )
        assert screener.screen(_club("iron range")) == INVALID_CITY
        assert screener.is_known_bad_city(_club("lost souls"))
        assert screener.is_excluded_category(_club(main_category="Tattoo shop"))
        assert screener.is_excluded_category(_club(main_category="Bar"))
        assert not screener.is_suspect_city(_club("a" * 30))
