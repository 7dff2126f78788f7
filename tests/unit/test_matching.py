"""Unit tests for moto_club_etl.matching."""

import dataclasses

import pytest

from moto_club_etl.matching import (
    EXACT_ID_DUPLICATE,
    FUZZY_MATCH,
    NO_MATCH,
    SLUG_MATCH,
    CanonicalIndex,
    UnrecognizedStateError,
    find_match,
)
from moto_club_etl.models import ClubRecord
from moto_club_etl.normalize import build_base_slug


def _club(external_id: str, name: str, city: str = "austin", state: str = "tx", **kw) -> ClubRecord:
    return ClubRecord(
        external_id=external_id,
        slug=kw.pop("slug", build_base_slug(name, city, state)),
        name=name,
        city=city,
        city_slug=city.replace(" ", "-"),
        state_code=state,
        state_name=kw.pop("state_name", ""),
        **kw,
    )


# ---------------------------------------------------------------------------
# CanonicalIndex
# ---------------------------------------------------------------------------

class TestCanonicalIndex:
    def test_lookups(self):
        a = _club("A", "Iron Horsemen MC")
        index = CanonicalIndex([a])
        assert len(index) == 1
        assert index.has_external_id("A")
        assert index.by_slug(a.slug) is a
        assert index.by_slug("missing") is None
        assert index.state_candidates("tx") == [(a, "iron horsemen")]
        assert index.state_candidates("ca") == []

    def test_replace_keeps_position(self):
        a, b = _club("A", "Alpha"), _club("B", "Bravo")
        index = CanonicalIndex([a, b])
        enriched = dataclasses.replace(a, phone="555-1234")
        index.replace(a, enriched)
        assert index.clubs == [enriched, b]
        assert index.by_slug(a.slug) is enriched

    def test_replace_refuses_identity_change(self):
        a = _club("A", "Alpha")
        index = CanonicalIndex([a])
        with pytest.raises(ValueError):
            index.replace(a, dataclasses.replace(a, slug="other"))

    def test_claimed_id_counts_as_known(self):
        index = CanonicalIndex([])
        assert not index.has_external_id("X1")
        index.claim_external_id("X1")
        assert index.has_external_id("X1")

    def test_blank_id_never_known(self):
        index = CanonicalIndex([])
        index.claim_external_id("")
        assert not index.has_external_id("")

    def test_slugs(self):
        index = CanonicalIndex([_club("A", "Alpha"), _club("B", "Bravo")])
        assert index.slugs() == {"alpha-austin-tx", "bravo-austin-tx"}


# ---------------------------------------------------------------------------
# find_match
# ---------------------------------------------------------------------------

class TestFindMatch:
    def test_exact_id_duplicate_first(self):
        existing = _club("X1", "Iron Horsemen MC")
        result = find_match(_club("X1", "Completely Different"), CanonicalIndex([existing]))
        assert result.kind == EXACT_ID_DUPLICATE
        assert not result.is_match

    def test_slug_match(self):
        existing = _club("A", "Iron Horsemen MC")
        incoming = _club("B", "Iron Horsemen MC")
        result = find_match(incoming, CanonicalIndex([existing]))
        assert result.kind == SLUG_MATCH
        assert result.existing is existing
        assert result.is_match

    def test_fuzzy_match_on_suffix_variant(self):
        existing = _club("A", "Iron Horsemen Motorcycle Club")
        incoming = _club("B", "Iron Horsemen MC", city="round rock")
        result = find_match(incoming, CanonicalIndex([existing]))
        assert result.kind == FUZZY_MATCH
        assert result.existing is existing
        assert result.score == 1.0

    def test_never_crosses_state(self):
        existing = _club("A", "Road Kings MC", city="fresno", state="ca")
        incoming = _club("B", "Road Kings MC", city="el paso", state="tx")
        result = find_match(incoming, CanonicalIndex([existing]))
        assert result.kind == NO_MATCH
        assert result.existing is None

    def test_below_threshold_is_no_match(self):
        existing = _club("A", "Desert Wolves")
        result = find_match(_club("B", "Lone Star Riders"), CanonicalIndex([existing]))
        assert result.kind == NO_MATCH

    def test_exact_threshold_matches_and_is_borderline(self):
        existing = _club("A", "Abcde")
        result = find_match(_club("B", "Abcdz"), CanonicalIndex([existing]), threshold=0.8)
        assert result.kind == FUZZY_MATCH
        assert result.score == pytest.approx(0.8)
        assert result.borderline is True

    def test_review_margin_flags_near_threshold(self):
        existing = _club("A", "Road Kingz")
        incoming = _club("B", "Road Kings")
        plain = find_match(incoming, CanonicalIndex([existing]), threshold=0.8)
        flagged = find_match(incoming, CanonicalIndex([existing]), threshold=0.8, review_margin=0.15)
        assert plain.borderline is False
        assert flagged.borderline is True

    def test_tie_goes_to_first_in_order(self):
        first = _club("A", "Road Kingz")
        second = _club("B", "Road Kingx")
        result = find_match(_club("C", "Road Kings"), CanonicalIndex([first, second]))
        assert result.kind == FUZZY_MATCH
        assert result.existing is first
        assert result.tied is True

    def test_best_score_wins_over_order(self):
        weak = _club("A", "Road Kingzz")
        strong = _club("B", "Road Kingz")
        result = find_match(_club("C", "Road Kings"), CanonicalIndex([weak, strong]))
        assert result.existing is strong
        assert result.tied is False

    def test_threshold_is_configurable(self):
        existing = _club("A", "Road Kingz")
        result = find_match(_club("B", "Road Kings"), CanonicalIndex([existing]), threshold=0.95)
        assert result.kind == NO_MATCH

    def test_unrecognized_state_raises(self):
        incoming = _club("B", "Road Kings", state="??", slug="road-kings")
        with pytest.raises(UnrecognizedStateError):
            find_match(incoming, CanonicalIndex([]))
