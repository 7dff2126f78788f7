"""Unit tests for moto_club_etl.slugs."""

import pytest

from moto_club_etl.slugs import allocate_slug, is_url_safe_slug


class TestIsUrlSafeSlug:
    @pytest.mark.parametrize("value", ["thunder-riders-tx", "a", "club-2"])
    def test_safe(self, value):
        assert is_url_safe_slug(value)

    @pytest.mark.parametrize("value", ["", "-lead", "trail-", "Upper", "two--hyphens", "sp ace"])
    def test_unsafe(self, value):
        assert not is_url_safe_slug(value)


class TestAllocateSlug:
    def test_free_base_is_returned(self):
        reserved: set[str] = set()
        assert allocate_slug("thunder-riders-tx", reserved) == "thunder-riders-tx"
        assert reserved == {"thunder-riders-tx"}

    def test_collision_in_one_batch(self):
        reserved: set[str] = set()
        first = allocate_slug("thunder-riders-tx", reserved)
        second = allocate_slug("thunder-riders-tx", reserved)
        assert (first, second) == ("thunder-riders-tx", "thunder-riders-tx-2")

    def test_taken_base_gets_suffix_two(self):
        assert allocate_slug("foo", {"foo"}) == "foo-2"
        assert allocate_slug("foo", {"foo"}) == "foo-2"

    def test_skips_taken_suffixes(self):
        assert allocate_slug("foo", {"foo", "foo-2", "foo-3"}) == "foo-4"

    def test_n_colliding_requests_are_distinct(self):
        reserved: set[str] = set()
        slugs = [allocate_slug("club", reserved) for _ in range(10)]
        assert len(set(slugs)) == 10
        assert slugs[:3] == ["club", "club-2", "club-3"]

    def test_rejects_unsafe_base(self):
        with pytest.raises(ValueError):
            allocate_slug("Not Safe", set())
