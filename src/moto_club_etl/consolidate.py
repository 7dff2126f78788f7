"""moto_club_etl.consolidate

Consolidation run (--mode consolidate) and read-only snapshot audit
(--mode audit).

A consolidation run moves through fixed stages, in order, none skipped:

    loaded → validated → matched → merged → recomputed → persisted → reported

  loaded      prior snapshot read from the store; source batch read in full
  validated   every raw record checked; rejects written and the run
              continues; only an opt-in max_reject_rate below 1.0 can fail
              the batch here
  matched /   one record at a time: duplicate id → skip; slug or fuzzy match
  merged      → fill-if-empty enrichment; no match → new slug, append.
              Each record is merged before the next one is matched (later
              records see earlier additions and claimed ids); both stages
              are entered once merge_batch returns
  recomputed  state / city aggregates rebuilt once from the final club set
  persisted   all three collections replaced atomically (skipped write in
              dry-run, the stage itself still runs)
  reported    text report built; the CLI writes the JSON run report

Failure at loaded or validated raises before anything is mutated.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from moto_club_etl.aggregates import recompute
from moto_club_etl.config import ConsolidationConfig
from moto_club_etl.enrich import enrich
from moto_club_etl.matching import (
    EXACT_ID_DUPLICATE,
    FUZZY_MATCH,
    CanonicalIndex,
    find_match,
)
from moto_club_etl.models import ClubRecord, Snapshot, coerce_number
from moto_club_etl.normalize import (
    UNRECOGNIZED_STATE,
    build_base_slug,
    city_slug,
    infer_category,
    normalize_city,
    normalize_space,
    normalize_state,
    slug_text,
    split_location,
    state_display_name,
)
from moto_club_etl.screening import EXCLUDED_CATEGORY, INVALID_CITY, Screener
from moto_club_etl.shared import RejectWriter
from moto_club_etl.slugs import allocate_slug, is_url_safe_slug
from moto_club_etl.sources import MALFORMED_KEY, RAW_FIELDS, SourceAdapter
from moto_club_etl.store import SnapshotStore

log = logging.getLogger(__name__)

RUN_STAGES = (
    "loaded",
    "validated",
    "matched",
    "merged",
    "recomputed",
    "persisted",
    "reported",
)

MISSING_FIELD_PREFIX = "missing_required_field"
UNRECOGNIZED_STATE_REASON = "unrecognized_state"
MALFORMED_RECORD = "malformed_record"

REJECT_FIELDS = ("_source",) + RAW_FIELDS + (MALFORMED_KEY,)

_OPTIONAL_TEXT_FIELDS = (
    "description", "address", "website", "phone", "main_category",
    "categories", "closed_on", "map_link", "featured_image", "query", "query_02",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RecordValidationError(ValueError):
    """A raw record cannot enter matching.  `reason` goes to the rejects CSV."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


class BatchValidationError(Exception):
    """The batch as a whole failed validation; nothing was mutated."""


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class ConsolidationCounters:
    total_input: int = 0
    added: int = 0
    enriched: int = 0
    unchanged_skipped: int = 0
    duplicate_id_skipped: int = 0
    unrecognized_state_skipped: int = 0
    missing_field_skipped: int = 0
    invalid_city_skipped: int = 0
    excluded_category_skipped: int = 0
    malformed_skipped: int = 0
    fuzzy_merges: list[dict[str, Any]] = field(default_factory=list)
    review_flags: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return (
            self.unrecognized_state_skipped
            + self.missing_field_skipped
            + self.invalid_city_skipped
            + self.excluded_category_skipped
            + self.malformed_skipped
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalInput": self.total_input,
            "added": self.added,
            "enriched": self.enriched,
            "unchangedSkipped": self.unchanged_skipped,
            "duplicateIdSkipped": self.duplicate_id_skipped,
            "unrecognizedStateSkipped": self.unrecognized_state_skipped,
            "missingFieldSkipped": self.missing_field_skipped,
            "invalidCitySkipped": self.invalid_city_skipped,
            "excludedCategorySkipped": self.excluded_category_skipped,
            "malformedSkipped": self.malformed_skipped,
            "fuzzyMerges": list(self.fuzzy_merges),
            "reviewFlags": self.review_flags,
            "warnings": list(self.warnings),
        }


@dataclass
class ConsolidationRun:
    """Mutable state of one run; the caller keeps it to report failures."""

    run_id: str
    dry_run: bool = False
    stage: str | None = None
    counters: ConsolidationCounters = field(default_factory=ConsolidationCounters)
    snapshot: Snapshot | None = None
    persisted_to: str | None = None
    report: str = ""

    def advance(self, stage: str) -> None:
        expected = RUN_STAGES[0] if self.stage is None else _next_stage(self.stage)
        if stage != expected:
            raise RuntimeError(f"run {self.run_id}: cannot move to {stage!r}, expected {expected!r}")
        self.stage = stage
        log.info("[%s] stage %s", self.run_id, stage)


def _next_stage(stage: str) -> str | None:
    pos = RUN_STAGES.index(stage)
    return RUN_STAGES[pos + 1] if pos + 1 < len(RUN_STAGES) else None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None:
        return ""
    return normalize_space(str(value)) or ""


def validate_raw_record(raw: dict[str, Any]) -> ClubRecord:
    """Turn one raw record into a ClubRecord ready for matching.

    Raises:
        RecordValidationError: reason `malformed_record` for a source entry
            that was not an object, `missing_required_field:<field>` when
            external_id, name, city or state is absent, `unrecognized_state`
            when the state is present but not one of the 50 states + DC.
    """
    if MALFORMED_KEY in raw:
        raise RecordValidationError(
            MALFORMED_RECORD, f"source entry is not an object: {raw[MALFORMED_KEY]}"
        )

    external_id = _text(raw, "external_id")
    if not external_id:
        raise RecordValidationError(f"{MISSING_FIELD_PREFIX}:external_id")

    name = _text(raw, "name")
    if not name:
        raise RecordValidationError(f"{MISSING_FIELD_PREFIX}:name")

    city_raw = _text(raw, "city")
    state_raw = _text(raw, "state")
    if (not city_raw or not state_raw) and _text(raw, "location"):
        loc_city, loc_state = split_location(_text(raw, "location"))
        city_raw = city_raw or loc_city or ""
        state_raw = state_raw or loc_state or ""

    city = normalize_city(city_raw)
    if not city:
        raise RecordValidationError(f"{MISSING_FIELD_PREFIX}:city")
    if not state_raw:
        raise RecordValidationError(f"{MISSING_FIELD_PREFIX}:state")

    state_code = normalize_state(state_raw)
    if state_code == UNRECOGNIZED_STATE:
        raise RecordValidationError(
            UNRECOGNIZED_STATE_REASON, f"unrecognized state {state_raw!r} for {name!r}"
        )

    # Only a slug supplied by the producer takes part in slug matching; new
    # clubs get one allocated from name, city and state.
    slug = slug_text(_text(raw, "slug")) or ""

    optional = {key: _text(raw, key) for key in _OPTIONAL_TEXT_FIELDS}
    if not optional["main_category"]:
        optional["main_category"] = infer_category(name)

    status = _text(raw, "status")
    return ClubRecord(
        external_id=external_id,
        slug=slug,
        name=name,
        city=city,
        city_slug=city_slug(city),
        state_code=state_code,
        state_name=state_display_name(state_code) or _text(raw, "state_name"),
        rating=coerce_number(raw.get("rating")),
        review_count=int(coerce_number(raw.get("review_count"))),
        status=status or None,
        **optional,
    )


def _reject_row(raw: dict[str, Any]) -> dict[str, Any]:
    return {key: raw.get(key, "") for key in REJECT_FIELDS}


def validate_batch(
    raw_records: list[dict[str, Any]],
    counters: ConsolidationCounters,
    rejects: RejectWriter,
    screener: Screener | None = None,
    max_reject_rate: float = 1.0,
) -> list[ClubRecord]:
    """Validate (and optionally screen) a whole batch.

    Rejected records are written to `rejects` and counted by reason.

    Raises:
        BatchValidationError: If the share of rejected records exceeds
            max_reject_rate.
    """
    valid: list[ClubRecord] = []
    for raw in raw_records:
        counters.total_input += 1
        try:
            club = validate_raw_record(raw)
            reason = screener.screen(club) if screener is not None else None
            if reason is not None:
                raise RecordValidationError(reason, f"{reason}: {club.name!r} ({club.city})")
        except RecordValidationError as exc:
            rejects.write(_reject_row(raw), exc.reason)
            _count_reject(counters, exc.reason)
            log.debug("Rejected %r: %s", raw.get("name"), exc)
            continue
        valid.append(club)

    if counters.total_input:
        rate = counters.rejected / counters.total_input
        if rate > max_reject_rate:
            raise BatchValidationError(
                f"reject rate {rate:.2%} ({counters.rejected}/{counters.total_input}) "
                f"exceeds threshold of {max_reject_rate:.2%}"
            )
    return valid


def _count_reject(counters: ConsolidationCounters, reason: str) -> None:
    if reason.startswith(MISSING_FIELD_PREFIX):
        counters.missing_field_skipped += 1
    elif reason == UNRECOGNIZED_STATE_REASON:
        counters.unrecognized_state_skipped += 1
    elif reason == INVALID_CITY:
        counters.invalid_city_skipped += 1
    elif reason == EXCLUDED_CATEGORY:
        counters.excluded_category_skipped += 1
    elif reason == MALFORMED_RECORD:
        counters.malformed_skipped += 1
    else:
        raise ValueError(f"unknown reject reason {reason!r}")


# ---------------------------------------------------------------------------
# Matching + merging
# ---------------------------------------------------------------------------

def merge_batch(
    index: CanonicalIndex,
    incoming: list[ClubRecord],
    config: ConsolidationConfig,
    counters: ConsolidationCounters,
) -> None:
    """Resolve every incoming record against `index`, mutating it in place."""
    canonical_ids = set(index.external_ids)
    reserved = index.slugs()

    for club in incoming:
        result = find_match(
            club,
            index,
            threshold=config.similarity_threshold,
            review_margin=config.review_margin,
        )

        if result.kind == EXACT_ID_DUPLICATE:
            counters.duplicate_id_skipped += 1
            if club.external_id not in canonical_ids:
                counters.warnings.append(
                    f"duplicate external_id {club.external_id} within batch ({club.name})"
                )
            continue

        if result.is_match:
            existing = result.existing
            merged, changed = enrich(existing, club, config.enrichable_fields)
            if changed:
                index.replace(existing, merged)
                counters.enriched += 1
            else:
                counters.unchanged_skipped += 1
            if result.kind == FUZZY_MATCH:
                _record_fuzzy_merge(club, existing, result, counters)
        else:
            base = club.slug or build_base_slug(club.name, club.city, club.state_code)
            slug = allocate_slug(base, reserved)
            if slug != club.slug:
                club = dataclasses.replace(club, slug=slug)
            index.append(club)
            counters.added += 1

        index.claim_external_id(club.external_id)


def _record_fuzzy_merge(incoming, existing, result, counters: ConsolidationCounters) -> None:
    counters.fuzzy_merges.append({
        "incomingName": incoming.name,
        "matchedName": existing.name,
        "score": result.score,
        "state": incoming.state_code,
        "borderline": result.borderline,
        "tied": result.tied,
    })
    if result.borderline or result.tied:
        counters.review_flags += 1
        flags = ", ".join(f for f in ("borderline", "tied") if getattr(result, f))
        log.warning(
            "Fuzzy merge needs review (%s): %r -> %r score=%.4f state=%s",
            flags, incoming.name, existing.name, result.score, incoming.state_code,
        )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run_consolidation(
    run: ConsolidationRun,
    store: SnapshotStore,
    source: SourceAdapter,
    config: ConsolidationConfig,
    rejects: RejectWriter,
    screener: Screener | None = None,
) -> ConsolidationRun:
    """Consolidate one source batch into the stored snapshot.

    Raises:
        SourceLoadError, SnapshotLoadError: at loaded.
        BatchValidationError: at validated.
        PersistError: at persisted; the previous snapshot stays in place.
    """
    counters = run.counters

    prior = store.load()
    raw_records = list(source.iter_records())
    run.advance("loaded")
    log.info(
        "[%s] loaded %d canonical clubs and %d raw records from %s",
        run.run_id, len(prior.clubs), len(raw_records), source.name,
    )

    incoming = validate_batch(
        raw_records, counters, rejects, screener, config.max_reject_rate
    )
    run.advance("validated")

    index = CanonicalIndex(prior.clubs)
    merge_batch(index, incoming, config, counters)
    run.advance("matched")
    run.advance("merged")

    states, cities = recompute(index.clubs, prior.states, prior.cities)
    run.snapshot = Snapshot(clubs=list(index.clubs), states=states, cities=cities)
    run.advance("recomputed")

    if run.dry_run:
        log.info("[%s] dry-run: snapshot not written", run.run_id)
    else:
        run.persisted_to = store.persist(run.snapshot, run.run_id)
    run.advance("persisted")

    run.report = build_consolidation_report(run)
    run.advance("reported")
    return run


def build_consolidation_report(run: ConsolidationRun) -> str:
    ctrs = run.counters
    snapshot = run.snapshot or Snapshot()
    lines = [
        "=" * 60,
        "Club Consolidation Report",
        f"  dry_run: {run.dry_run}",
        "=" * 60,
        f"  total input:              {ctrs.total_input}",
        f"    → added:                {ctrs.added}",
        f"    → enriched:             {ctrs.enriched}",
        f"    → unchanged, skipped:   {ctrs.unchanged_skipped}",
        f"    → duplicate id:         {ctrs.duplicate_id_skipped}",
        f"    → unrecognized state:   {ctrs.unrecognized_state_skipped}",
        f"    → missing field:        {ctrs.missing_field_skipped}",
        f"    → invalid city:         {ctrs.invalid_city_skipped}",
        f"    → excluded category:    {ctrs.excluded_category_skipped}",
        f"    → malformed record:     {ctrs.malformed_skipped}",
        f"  fuzzy merges:             {len(ctrs.fuzzy_merges)}",
        f"  flagged for review:       {ctrs.review_flags}",
        f"  canonical clubs:          {len(snapshot.clubs)}",
        f"  states / cities:          {len(snapshot.states)} / {len(snapshot.cities)}",
        f"  persisted to:             {run.persisted_to or '(not written)'}",
    ]
    if ctrs.fuzzy_merges:
        lines.append("\nFuzzy merges:")
        for m in ctrs.fuzzy_merges[:50]:
            mark = " [review]" if m["borderline"] or m["tied"] else ""
            lines.append(
                f"  {m['state']}: {m['incomingName']!r} → {m['matchedName']!r} ({m['score']:.4f}){mark}"
            )
        if len(ctrs.fuzzy_merges) > 50:
            lines.append(f"  ... and {len(ctrs.fuzzy_merges) - 50} more")
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

@dataclass
class AuditCounters:
    clubs_checked: int = 0
    invalid_city: int = 0
    excluded_category: int = 0
    duplicate_ids: int = 0
    duplicate_slugs: int = 0
    unsafe_slugs: int = 0
    stale_state_aggregates: int = 0
    stale_city_aggregates: int = 0
    findings: list[dict[str, str]] = field(default_factory=list)

    @property
    def problems(self) -> int:
        return (
            self.invalid_city + self.excluded_category + self.duplicate_ids
            + self.duplicate_slugs + self.unsafe_slugs
            + self.stale_state_aggregates + self.stale_city_aggregates
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "clubsChecked": self.clubs_checked,
            "invalidCity": self.invalid_city,
            "excludedCategory": self.excluded_category,
            "duplicateIds": self.duplicate_ids,
            "duplicateSlugs": self.duplicate_slugs,
            "unsafeSlugs": self.unsafe_slugs,
            "staleStateAggregates": self.stale_state_aggregates,
            "staleCityAggregates": self.stale_city_aggregates,
            "findings": list(self.findings),
        }


def run_audit(snapshot: Snapshot, screener: Screener) -> AuditCounters:
    """Check a stored snapshot without changing it.

    Reports canonical clubs that fail screening, identity collisions, slugs
    that are not URL-safe and aggregates whose counts differ from a fresh
    recompute.
    """
    ctrs = AuditCounters(clubs_checked=len(snapshot.clubs))

    for club in snapshot.clubs:
        reason = screener.audit(club)
        if reason == INVALID_CITY:
            ctrs.invalid_city += 1
        elif reason == EXCLUDED_CATEGORY:
            ctrs.excluded_category += 1
        if reason:
            ctrs.findings.append(_finding(club, reason))
        if not is_url_safe_slug(club.slug):
            ctrs.unsafe_slugs += 1
            ctrs.findings.append(_finding(club, "unsafe_slug"))

    id_counts = Counter(c.external_id for c in snapshot.clubs if c.external_id)
    slug_counts = Counter(c.slug for c in snapshot.clubs if c.slug)
    for external_id, n in sorted(id_counts.items()):
        if n > 1:
            ctrs.duplicate_ids += n - 1
            ctrs.findings.append({"external_id": external_id, "reason": "duplicate_id"})
    for slug, n in sorted(slug_counts.items()):
        if n > 1:
            ctrs.duplicate_slugs += n - 1
            ctrs.findings.append({"slug": slug, "reason": "duplicate_slug"})

    states, cities = recompute(snapshot.clubs, snapshot.states, snapshot.cities)
    stored_states = {s.code: s for s in snapshot.states}
    for fresh in states:
        stored = stored_states.get(fresh.code)
        if stored is None or (stored.club_count, stored.city_count) != (fresh.club_count, fresh.city_count):
            ctrs.stale_state_aggregates += 1
            ctrs.findings.append({"state": fresh.code, "reason": "stale_state_aggregate"})
    stored_cities = {c.key: c for c in snapshot.cities}
    for fresh in cities:
        stored = stored_cities.get(fresh.key)
        if stored is None or stored.club_count != fresh.club_count:
            ctrs.stale_city_aggregates += 1
            ctrs.findings.append({
                "state": fresh.state_code, "city": fresh.slug, "reason": "stale_city_aggregate",
            })
    return ctrs


def _finding(club: ClubRecord, reason: str) -> dict[str, str]:
    return {
        "slug": club.slug,
        "name": club.name,
        "city": club.city,
        "state": club.state_code,
        "main_category": club.main_category,
        "reason": reason,
    }


def build_audit_report(ctrs: AuditCounters) -> str:
    lines = [
        "=" * 60,
        "Club Snapshot Audit Report",
        "=" * 60,
        f"  clubs checked:            {ctrs.clubs_checked}",
        f"  invalid city:             {ctrs.invalid_city}",
        f"  excluded category:        {ctrs.excluded_category}",
        f"  duplicate ids:            {ctrs.duplicate_ids}",
        f"  duplicate slugs:          {ctrs.duplicate_slugs}",
        f"  unsafe slugs:             {ctrs.unsafe_slugs}",
        f"  stale state aggregates:   {ctrs.stale_state_aggregates}",
        f"  stale city aggregates:    {ctrs.stale_city_aggregates}",
    ]
    if ctrs.findings:
        lines.append(f"\nFindings ({len(ctrs.findings)}):")
        for f in ctrs.findings[:20]:
            lines.append("  " + " ".join(f"{k}={v}" for k, v in f.items()))
        if len(ctrs.findings) > 20:
            lines.append(f"  ... and {len(ctrs.findings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
