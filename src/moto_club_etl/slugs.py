"""moto_club_etl.slugs

Run-local unique slug allocation.  The reserved set is owned by the caller
(one per consolidation run) and is the only thing consulted while probing.
"""

from __future__ import annotations

import re

_URL_SAFE_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def is_url_safe_slug(value: str) -> bool:
    return bool(_URL_SAFE_SLUG_RE.match(value or ""))


def allocate_slug(base_slug: str, reserved: set[str]) -> str:
    """Reserve and return base_slug, or the first free base-2, base-3, ...

    Args:
        base_slug: Lowercase [a-z0-9-]+ with no leading/trailing hyphen.
        reserved: Slugs already taken in this run.  Mutated: the returned
            slug is added to it.

    Raises:
        ValueError: If base_slug is not URL-safe.
    """
    if not is_url_safe_slug(base_slug):
        raise ValueError(f"base slug {base_slug!r} is not URL-safe")

    candidate = base_slug
    counter = 2
    while candidate in reserved:
        candidate = f"{base_slug}-{counter}"
        counter += 1
    reserved.add(candidate)
    return candidate
