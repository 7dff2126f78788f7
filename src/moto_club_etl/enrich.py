"""moto_club_etl.enrich

Fill-if-empty enrichment of a canonical club from a matched incoming record.
A populated canonical field is never overwritten, and identity fields are
never touched.
"""

from __future__ import annotations

import dataclasses

from moto_club_etl.models import ClubRecord

ENRICHABLE_FIELDS: tuple[str, ...] = (
    "phone",
    "website",
    "description",
    "map_link",
    "featured_image",
)

IDENTITY_FIELDS = frozenset({
    "external_id",
    "slug",
    "name",
    "city",
    "city_slug",
    "state_code",
    "state_name",
})


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def enrich(
    existing: ClubRecord,
    incoming: ClubRecord,
    fields: tuple[str, ...] = ENRICHABLE_FIELDS,
) -> tuple[ClubRecord, bool]:
    """Return (merged, changed).

    For each field in `fields`, copy incoming's value onto a copy of
    `existing` only when existing's value is empty and incoming's is not.
    `existing` itself is not modified.
    """
    blocked = IDENTITY_FIELDS.intersection(fields)
    if blocked:
        raise ValueError(f"identity fields cannot be enriched: {sorted(blocked)}")

    updates: dict[str, object] = {}
    for name in fields:
        current = getattr(existing, name)
        offered = getattr(incoming, name)
        if _is_empty(current) and not _is_empty(offered):
            updates[name] = offered

    if not updates:
        return existing, False
    return dataclasses.replace(existing, **updates), True
