"""moto_club_etl.matching

Resolve one incoming club against the canonical set.

Resolution order (first hit wins):
  1. external_id already known        → exact_id_duplicate (terminal)
  2. slug equals a canonical slug      → slug_match
  3. best normalized-name similarity among canonical clubs in the SAME state
     → fuzzy_match when score >= threshold
  4. otherwise                         → no_match

Cross-state candidates are never scored: clubs with the same name in
different states are different clubs.  Ties at the best score go to the
candidate that appears first in canonical (insertion) order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from moto_club_etl.models import ClubRecord
from moto_club_etl.normalize import UNRECOGNIZED_STATE, normalize_name
from moto_club_etl.similarity import similarity

DEFAULT_SIMILARITY_THRESHOLD = 0.8

EXACT_ID_DUPLICATE = "exact_id_duplicate"
SLUG_MATCH = "slug_match"
FUZZY_MATCH = "fuzzy_match"
NO_MATCH = "no_match"


class UnrecognizedStateError(ValueError):
    """Raised when a record without a resolvable state reaches the matcher."""


@dataclass
class MatchResult:
    kind: str
    existing: ClubRecord | None = None
    score: float | None = None
    tied: bool = False
    borderline: bool = False

    @property
    def is_match(self) -> bool:
        return self.kind in (SLUG_MATCH, FUZZY_MATCH)


# ---------------------------------------------------------------------------
# Canonical index
# ---------------------------------------------------------------------------

class CanonicalIndex:
    """The run's canonical club list with id / slug / state lookups.

    Position in `clubs` is stable for the whole run, so replacing a club after
    enrichment keeps its place in the fuzzy-scan order.  `external_ids` also
    holds ids claimed by earlier records of the current batch, so a repeated
    id inside one batch resolves as a duplicate.
    """

    def __init__(self, clubs: list[ClubRecord]) -> None:
        self.clubs: list[ClubRecord] = []
        self.external_ids: set[str] = set()
        self._slug_pos: dict[str, int] = {}
        self._state_pos: dict[str, list[int]] = defaultdict(list)
        self._norm_names: list[str] = []
        for club in clubs:
            self.append(club)

    def __len__(self) -> int:
        return len(self.clubs)

    def append(self, club: ClubRecord) -> None:
        pos = len(self.clubs)
        self.clubs.append(club)
        self._norm_names.append(normalize_name(club.name))
        if club.external_id:
            self.external_ids.add(club.external_id)
        if club.slug:
            self._slug_pos.setdefault(club.slug, pos)
        self._state_pos[club.state_code].append(pos)

    def replace(self, old: ClubRecord, new: ClubRecord) -> None:
        """Swap in an enriched copy.  Identity fields must be unchanged."""
        pos = self._position_of(old)
        if (new.external_id, new.slug, new.state_code, new.name) != (
            old.external_id, old.slug, old.state_code, old.name
        ):
            raise ValueError(f"identity changed while replacing club {old.slug!r}")
        self.clubs[pos] = new

    def claim_external_id(self, external_id: str) -> None:
        if external_id:
            self.external_ids.add(external_id)

    def has_external_id(self, external_id: str) -> bool:
        return bool(external_id) and external_id in self.external_ids

    def by_slug(self, slug: str) -> ClubRecord | None:
        pos = self._slug_pos.get(slug)
        return self.clubs[pos] if pos is not None else None

    def state_candidates(self, state_code: str) -> list[tuple[ClubRecord, str]]:
        """(club, normalized name) for every club in the state, in order."""
        return [
            (self.clubs[pos], self._norm_names[pos])
            for pos in self._state_pos.get(state_code, [])
        ]

    def slugs(self) -> set[str]:
        return {c.slug for c in self.clubs if c.slug}

    def _position_of(self, club: ClubRecord) -> int:
        for pos in self._state_pos.get(club.state_code, []):
            if self.clubs[pos] is club:
                return pos
        raise KeyError(f"club {club.slug!r} is not in the index")


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------

def find_match(
    incoming: ClubRecord,
    index: CanonicalIndex,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    review_margin: float = 0.0,
) -> MatchResult:
    """Return the MatchResult for `incoming` against `index`.

    Args:
        incoming: Validated record; state_code must be a recognized code.
        index: Canonical set for this run.
        threshold: Minimum similarity for a fuzzy match.
        review_margin: Fuzzy matches scoring below threshold + review_margin
            are flagged `borderline` for manual review.  An exact-threshold
            score is always borderline.

    Raises:
        UnrecognizedStateError: If incoming.state_code is the sentinel.
    """
    if index.has_external_id(incoming.external_id):
        return MatchResult(EXACT_ID_DUPLICATE)

    if incoming.slug:
        existing = index.by_slug(incoming.slug)
        if existing is not None:
            return MatchResult(SLUG_MATCH, existing=existing, score=1.0)

    if not incoming.state_code or incoming.state_code == UNRECOGNIZED_STATE:
        raise UnrecognizedStateError(
            f"unrecognized state for {incoming.name!r}; cannot fuzzy match"
        )

    target = normalize_name(incoming.name)
    best: ClubRecord | None = None
    best_score = -1.0
    tied = False
    for candidate, candidate_norm in index.state_candidates(incoming.state_code):
        score = similarity(target, candidate_norm)
        if score > best_score:
            best, best_score, tied = candidate, score, False
        elif score == best_score:
            tied = True

    if best is not None and best_score >= threshold:
        return MatchResult(
            FUZZY_MATCH,
            existing=best,
            score=round(best_score, 4),
            tied=tied,
            borderline=best_score == threshold or best_score < threshold + review_margin,
        )
    return MatchResult(NO_MATCH)
