"""moto_club_etl.config

YAML configuration for consolidation runs.

Responsibilities:
  - Load and validate config/consolidation.yml
  - Expose matching / enrichment / validation / screening tunables
  - Describe the named sources the CLI can consolidate
  - Hash YAML content for traceability in run reports

Usage:
    from pathlib import Path
    from moto_club_etl.config import load_config

    config = load_config(Path("config/consolidation.yml"))
    config.similarity_threshold   # 0.8
    config.sources["riderclubs"]  # SourceDefinition
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from moto_club_etl.enrich import ENRICHABLE_FIELDS, IDENTITY_FIELDS
from moto_club_etl.matching import DEFAULT_SIMILARITY_THRESHOLD
from moto_club_etl.models import ClubRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "consolidation.yml"

REQUIRED_YAML_KEYS = frozenset({"version", "matching", "enrichment", "sources"})

VALID_SOURCE_TYPES = frozenset({"json_file", "csv_file", "http_json"})

_CLUB_FIELDS = frozenset(ClubRecord.__dataclass_fields__) - {"extra"}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigValidationError(ValueError):
    """Raised when the consolidation YAML fails schema validation."""


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class SourceDefinition:
    """One named producer of raw club records."""

    name: str
    type: str
    path: str | None = None
    url: str | None = None
    id_prefix: str = "src"
    field_map: dict[str, str] = field(default_factory=dict)
    data_path: str | None = None
    delimiter: str = ","
    timeout: float = 30.0
    default_category: str | None = None


@dataclass
class ConsolidationConfig:
    version: str
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    review_margin: float = 0.0
    enrichable_fields: tuple[str, ...] = ENRICHABLE_FIELDS
    max_reject_rate: float = 1.0
    screening_enabled: bool = False
    max_city_length: int = 25
    known_bad_cities: list[str] = field(default_factory=list)
    excluded_categories: list[str] = field(default_factory=list)
    report_dir: str = "./artifacts/reports"
    rejects_path: str = "./artifacts/rejects/consolidation_rejects.csv"
    sources: dict[str, SourceDefinition] = field(default_factory=dict)
    yaml_hash: str = ""
    raw_yaml: str = field(repr=False, default="")


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_config(yaml_path: Path) -> ConsolidationConfig:
    """Load, validate, and return a ConsolidationConfig from a YAML file.

    Raises:
        ConfigValidationError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    validate_config(data)
    config = config_from_dict(data)
    config.yaml_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    config.raw_yaml = raw
    return config


def config_from_dict(data: dict[str, Any]) -> ConsolidationConfig:
    """Build a ConsolidationConfig from an already-validated mapping."""
    matching = data.get("matching") or {}
    enrichment = data.get("enrichment") or {}
    validation = data.get("validation") or {}
    screening = data.get("screening") or {}
    output = data.get("output") or {}

    defaults = ConsolidationConfig(version=str(data["version"]))
    return ConsolidationConfig(
        version=str(data["version"]),
        similarity_threshold=float(
            matching.get("similarity_threshold", defaults.similarity_threshold)
        ),
        review_margin=float(matching.get("review_margin", defaults.review_margin)),
        enrichable_fields=tuple(enrichment.get("fields") or ENRICHABLE_FIELDS),
        max_reject_rate=float(validation.get("max_reject_rate", defaults.max_reject_rate)),
        screening_enabled=bool(screening.get("enabled", False)),
        max_city_length=int(screening.get("max_city_length", defaults.max_city_length)),
        known_bad_cities=[str(c).lower() for c in screening.get("known_bad_cities") or []],
        excluded_categories=[str(c) for c in screening.get("excluded_categories") or []],
        report_dir=str(output.get("report_dir", defaults.report_dir)),
        rejects_path=str(output.get("rejects_path", defaults.rejects_path)),
        sources={
            name: _source_from_dict(name, entry)
            for name, entry in (data.get("sources") or {}).items()
        },
    )


def _source_from_dict(name: str, entry: dict[str, Any]) -> SourceDefinition:
    return SourceDefinition(
        name=name,
        type=entry["type"],
        path=entry.get("path"),
        url=entry.get("url"),
        id_prefix=str(entry.get("id_prefix") or name),
        field_map={str(k): str(v) for k, v in (entry.get("field_map") or {}).items()},
        data_path=entry.get("data_path"),
        delimiter=str(entry.get("delimiter", ",")),
        timeout=float(entry.get("timeout", 30.0)),
        default_category=entry.get("default_category"),
    )


def _check_rate(value: Any, label: str) -> float:
    try:
        fval = float(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"'{label}' value '{value}' is not numeric.")
    if not (0.0 <= fval <= 1.0):
        raise ConfigValidationError(f"'{label}' value {fval} must be in [0.0, 1.0].")
    return fval


def validate_config(data: dict[str, Any]) -> None:
    """Raise ConfigValidationError if data does not match the required schema.

    Validates:
      - Required top-level keys present
      - similarity_threshold, review_margin, max_reject_rate in [0.0, 1.0]
      - enrichment fields are known, non-identity club fields
      - each source has a valid type and the location that type needs
    """
    if not isinstance(data, dict):
        raise ConfigValidationError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise ConfigValidationError(f"Missing required YAML keys: {sorted(missing_keys)}")

    matching = data.get("matching") or {}
    if "similarity_threshold" in matching:
        _check_rate(matching["similarity_threshold"], "matching.similarity_threshold")
    if "review_margin" in matching:
        _check_rate(matching["review_margin"], "matching.review_margin")

    validation = data.get("validation") or {}
    if "max_reject_rate" in validation:
        _check_rate(validation["max_reject_rate"], "validation.max_reject_rate")

    fields = (data.get("enrichment") or {}).get("fields") or []
    if not isinstance(fields, list):
        raise ConfigValidationError("'enrichment.fields' must be a list.")
    for name in fields:
        if name in IDENTITY_FIELDS:
            raise ConfigValidationError(
                f"enrichment field '{name}' is an identity field and cannot be enriched."
            )
        if name not in _CLUB_FIELDS:
            raise ConfigValidationError(f"Unknown enrichment field '{name}'.")

    sources = data.get("sources") or {}
    if not isinstance(sources, dict):
        raise ConfigValidationError("'sources' must be a mapping of name → definition.")
    for name, entry in sources.items():
        if not isinstance(entry, dict):
            raise ConfigValidationError(f"Source '{name}' must be a mapping.")
        source_type = entry.get("type")
        if source_type not in VALID_SOURCE_TYPES:
            raise ConfigValidationError(
                f"Source '{name}' has invalid type '{source_type}'. "
                f"Must be one of {sorted(VALID_SOURCE_TYPES)}."
            )
        if source_type == "http_json" and not entry.get("url"):
            raise ConfigValidationError(f"Source '{name}' (http_json) requires 'url'.")
        if source_type != "http_json" and not entry.get("path"):
            raise ConfigValidationError(f"Source '{name}' ({source_type}) requires 'path'.")
