"""moto_club_etl.similarity

Bounded edit-distance similarity between two pre-normalized club names.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein


def similarity(a: str, b: str) -> float:
    """Return 1 - levenshtein(a, b) / max(len(a), len(b)), in [0.0, 1.0].

    Inputs are expected to be normalize_name() output.  Identical strings
    short-circuit to 1.0; two empty strings score 0.0 (no evidence of a
    match).  Insertion, deletion and substitution each cost 1.
    """
    if not a and not b:
        return 0.0
    if a == b:
        return 1.0
    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))
