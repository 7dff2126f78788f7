"""Unit tests for moto_club_etl.config."""

from __future__ import annotations

import hashlib
import textwrap
from pathlib import Path

import pytest
import yaml

from moto_club_etl.config import (
    DEFAULT_CONFIG_PATH,
    ConfigValidationError,
    config_from_dict,
    load_config,
    validate_config,
)
from moto_club_etl.enrich import ENRICHABLE_FIELDS


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

CONFIG_YAML = textwrap.dedent("""\
    version: "1"
    matching:
      similarity_threshold: 0.85
      review_margin: 0.05
    enrichment:
      fields: [phone, website]
    validation:
      max_reject_rate: 0.25
    screening:
      enabled: true
      max_city_length: 30
      known_bad_cities: [Iron Range]
      excluded_categories: [Tattoo shop]
    output:
      report_dir: out/reports
      rejects_path: out/rejects.csv
    sources:
      riderclubs:
        type: json_file
        path: data/sources/riderclubs.json
      chapters:
        type: csv_file
        path: data/sources/chapters.csv
        id_prefix: csv
        delimiter: ";"
        field_map:
          name: parentClub
          location: location
      feed:
        type: http_json
        url: https://example.org/clubs.json
        data_path: data.clubs
        timeout: 5
""")


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    p = tmp_path / "consolidation.yml"
    p.write_text(CONFIG_YAML, encoding="utf-8")
    return p


def _minimal(**overrides) -> dict:
    data = {
        "version": "1",
        "matching": {},
        "enrichment": {},
        "sources": {"a": {"type": "json_file", "path": "a.json"}},
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------

class TestLoadConfig:
    def test_values(self, config_path: Path):
        config = load_config(config_path)
        assert config.version == "1"
        assert config.similarity_threshold == 0.85
        assert config.review_margin == 0.05
        assert config.enrichable_fields == ("phone", "website")
        assert config.max_reject_rate == 0.25
        assert config.screening_enabled is True
        assert config.max_city_length == 30
        assert config.known_bad_cities == ["iron range"]
        assert config.excluded_categories == ["Tattoo shop"]
        assert config.report_dir == "out/reports"
        assert config.rejects_path == "out/rejects.csv"

    def test_sources(self, config_path: Path):
        sources = load_config(config_path).sources
        assert set(sources) == {"riderclubs", "chapters", "feed"}
        assert sources["riderclubs"].id_prefix == "riderclubs"
        assert sources["chapters"].id_prefix == "csv"
        assert sources["chapters"].delimiter == ";"
        assert sources["chapters"].field_map == {"name": "parentClub", "location": "location"}
        assert sources["feed"].url == "https://example.org/clubs.json"
        assert sources["feed"].data_path == "data.clubs"
        assert sources["feed"].timeout == 5.0

    def test_yaml_hash(self, config_path: Path):
        config = load_config(config_path)
        assert config.yaml_hash == hashlib.sha256(CONFIG_YAML.encode("utf-8")).hexdigest()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yml")

    def test_shipped_config_is_valid(self):
        config = load_config(DEFAULT_CONFIG_PATH)
        assert config.similarity_threshold == 0.8
        assert config.enrichable_fields == ENRICHABLE_FIELDS
        assert "riderclubs" in config.sources

    def test_shipped_config_keeps_runs_going(self):
        config = load_config(DEFAULT_CONFIG_PATH)
        assert config.max_reject_rate == 1.0
        assert config.screening_enabled is False


class TestDefaults:
    def test_minimal_config(self):
        config = config_from_dict(_minimal())
        assert config.similarity_threshold == 0.8
        assert config.review_margin == 0.0
        assert config.enrichable_fields == ENRICHABLE_FIELDS
        assert config.max_reject_rate == 1.0
        assert config.screening_enabled is False
        assert config.sources["a"].id_prefix == "a"


# ---------------------------------------------------------------------------
# validate_config
# ---------------------------------------------------------------------------

class TestValidateConfig:
    def test_valid(self):
        validate_config(yaml.safe_load(CONFIG_YAML))

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            validate_config(["not", "a", "mapping"])

    def test_missing_keys(self):
        data = _minimal()
        del data["sources"]
        with pytest.raises(ConfigValidationError, match="sources"):
            validate_config(data)

    def test_threshold_out_of_range(self):
        with pytest.raises(ConfigValidationError, match="similarity_threshold"):
            validate_config(_minimal(matching={"similarity_threshold": 1.5}))

    def test_threshold_not_numeric(self):
        with pytest.raises(ConfigValidationError, match="not numeric"):
            validate_config(_minimal(matching={"similarity_threshold": "high"}))

    def test_identity_field_cannot_be_enriched(self):
        with pytest.raises(ConfigValidationError, match="identity"):
            validate_config(_minimal(enrichment={"fields": ["phone", "slug"]}))

    def test_unknown_enrichment_field(self):
        with pytest.raises(ConfigValidationError, match="Unknown"):
            validate_config(_minimal(enrichment={"fields": ["fax"]}))

    def test_bad_source_type(self):
        with pytest.raises(ConfigValidationError, match="invalid type"):
            validate_config(_minimal(sources={"x": {"type": "ftp", "path": "x"}}))

    def test_http_source_needs_url(self):
        with pytest.raises(ConfigValidationError, match="url"):
            validate_config(_minimal(sources={"x": {"type": "http_json"}}))

    def test_file_source_needs_path(self):
        with pytest.raises(ConfigValidationError, match="path"):
            validate_config(_minimal(sources={"x": {"type": "csv_file"}}))
