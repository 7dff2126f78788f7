"""moto_club_etl.models

Canonical club record and the two derived aggregate types, plus conversion
to/from the JSON snapshot shape read by the directory site
(clubs.json / states.json / cities.json).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Python attribute → snapshot JSON key.
_CLUB_WIRE_KEYS: dict[str, str] = {
    "external_id": "place_id",
    "name": "name",
    "slug": "slug",
    "description": "description",
    "review_count": "reviews",
    "rating": "rating",
    "website": "website",
    "phone": "phone",
    "featured_image": "featured_image",
    "main_category": "main_category",
    "categories": "categories",
    "closed_on": "closed_on",
    "address": "address",
    "map_link": "link",
    "city": "City",
    "state_code": "State",
    "state_name": "stateName",
    "city_slug": "citySlug",
    "query": "query",
    "query_02": "query-02",
}

_NUMERIC_FIELDS = ("review_count", "rating")


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def coerce_number(value: Any) -> float | int:
    if value in (None, ""):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(str(value).replace(",", ""))
    except ValueError:
        return 0
    return int(number) if number.is_integer() else number


@dataclass
class ClubRecord:
    """One club in the canonical set.

    Identity: external_id + slug (both globally unique).  Empty strings mean
    "absent" for every optional text field.
    """

    external_id: str
    slug: str
    name: str
    city: str
    city_slug: str
    state_code: str
    state_name: str
    description: str = ""
    address: str = ""
    website: str = ""
    phone: str = ""
    main_category: str = ""
    categories: str = ""
    closed_on: str = ""
    map_link: str = ""
    featured_image: str = ""
    rating: float = 0
    review_count: int = 0
    query: str = ""
    query_02: str = ""
    status: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClubRecord":
        """Build from a snapshot JSON object; unknown keys go to `extra`."""
        kwargs: dict[str, Any] = {}
        for attr, key in _CLUB_WIRE_KEYS.items():
            raw = data.get(key)
            kwargs[attr] = coerce_number(raw) if attr in _NUMERIC_FIELDS else _as_str(raw)
        status = data.get("status")
        kwargs["status"] = str(status) if status else None
        known = set(_CLUB_WIRE_KEYS.values()) | {"status"}
        kwargs["extra"] = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            key: getattr(self, attr) for attr, key in _CLUB_WIRE_KEYS.items()
        }
        if self.status is not None:
            out["status"] = self.status
        for k, v in self.extra.items():
            out.setdefault(k, v)
        return out


@dataclass
class StateAggregate:
    code: str
    name: str
    slug: str
    club_count: int = 0
    city_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StateAggregate":
        return cls(
            code=_as_str(data.get("code")).lower(),
            name=_as_str(data.get("name")),
            slug=_as_str(data.get("slug")),
            club_count=int(data.get("clubCount") or 0),
            city_count=int(data.get("cityCount") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "slug": self.slug,
            "clubCount": self.club_count,
            "cityCount": self.city_count,
        }


@dataclass
class CityAggregate:
    name: str
    slug: str
    state_code: str
    state_name: str
    club_count: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.state_code, self.slug)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CityAggregate":
        return cls(
            name=_as_str(data.get("name")),
            slug=_as_str(data.get("slug")),
            state_code=_as_str(data.get("state")).lower(),
            state_name=_as_str(data.get("stateName")),
            club_count=int(data.get("clubCount") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "slug": self.slug,
            "state": self.state_code,
            "stateName": self.state_name,
            "clubCount": self.club_count,
        }


@dataclass
class Snapshot:
    """The three collections the pipeline reads and replaces as one unit."""

    clubs: list[ClubRecord] = field(default_factory=list)
    states: list[StateAggregate] = field(default_factory=list)
    cities: list[CityAggregate] = field(default_factory=list)
