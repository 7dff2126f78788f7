"""moto_club_etl.sources

Raw-record adapters.  Every producer (scraper output, CSV import, curated
list, remote JSON feed) is read through one SourceAdapter interface that
yields plain dicts in the common raw shape:

    external_id, name, city, state, slug, location, description, address,
    website, phone, main_category, categories, closed_on, map_link,
    featured_image, rating, review_count, query, query_02, status

Only name / city / state are required downstream; a combined `location`
("Austin, Texas") may stand in for city + state.  Records without an
external_id get a deterministic one derived from source + name + location.
An array entry that is not an object is passed on as a placeholder carrying
MALFORMED_KEY, so validation rejects and counts it.
"""

from __future__ import annotations

import csv
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterator, Protocol

import requests

from moto_club_etl.config import SourceDefinition
from moto_club_etl.normalize import normalize_city, normalize_name, normalize_state, trim
from moto_club_etl.shared import normalize_headers

log = logging.getLogger(__name__)

RAW_FIELDS = (
    "external_id", "name", "city", "state", "slug", "location",
    "description", "address", "website", "phone", "main_category",
    "categories", "closed_on", "map_link", "featured_image", "rating",
    "review_count", "query", "query_02", "status",
)

# Set on the placeholder yielded for an array entry that is not an object.
MALFORMED_KEY = "_malformed"

# Transformed-scraper JSON shape (the same keys as clubs.json) → raw shape.
_SCRAPER_KEYS: dict[str, str] = {
    "place_id": "external_id",
    "City": "city",
    "State": "state",
    "stateName": "state_name",
    "link": "map_link",
    "reviews": "review_count",
    "query-02": "query_02",
}


class SourceLoadError(Exception):
    """Raised when a source batch cannot be read at all."""


# ---------------------------------------------------------------------------
# Adapter interface
# ---------------------------------------------------------------------------

class SourceAdapter(Protocol):
    name: str

    def iter_records(self) -> Iterator[dict[str, Any]]:
        """Yield raw records in the common shape."""
        ...


def synthesize_external_id(prefix: str, source_name: str, raw: dict[str, Any]) -> str:
    """Stable id for records whose producer supplies none."""
    key = "|".join([
        source_name,
        normalize_name(raw.get("name")),
        normalize_city(raw.get("city") or raw.get("location")),
        normalize_state(raw.get("state")),
    ])
    return f"{prefix}_{hashlib.sha256(key.encode()).hexdigest()[:20]}"


def dot_lookup(payload: Any, path: str | None) -> Any:
    """Follow a dotted key path ("data.items") into nested dicts."""
    if not path:
        return payload
    current = payload
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class _MappedSource:
    """Shared field mapping for the concrete adapters."""

    def __init__(self, definition: SourceDefinition) -> None:
        self.definition = definition
        self.name = definition.name

    def _to_raw(self, payload: dict[str, Any]) -> dict[str, Any]:
        raw: dict[str, Any] = {}
        for key, value in payload.items():
            target = _SCRAPER_KEYS.get(key, key)
            if target in RAW_FIELDS or target == "state_name":
                raw[target] = value
        for target, source_key in self.definition.field_map.items():
            value = dot_lookup(payload, source_key)
            if value not in (None, ""):
                raw[target] = value
        if not trim(_as_text(raw.get("main_category"))) and self.definition.default_category:
            raw["main_category"] = self.definition.default_category
        if not trim(_as_text(raw.get("external_id"))):
            raw["external_id"] = synthesize_external_id(
                self.definition.id_prefix, self.name, raw
            )
        raw["_source"] = self.name
        return raw

    def _malformed(self, item: Any) -> dict[str, Any]:
        return {"_source": self.name, MALFORMED_KEY: json.dumps(item, ensure_ascii=False)}


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


# ---------------------------------------------------------------------------
# Concrete adapters
# ---------------------------------------------------------------------------

class JsonFileSource(_MappedSource):
    """JSON array of club objects (transformed scraper output or raw shape)."""

    def iter_records(self) -> Iterator[dict[str, Any]]:
        path = Path(self.definition.path or "")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise SourceLoadError(f"source file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise SourceLoadError(f"source file is not valid JSON: {path}: {exc}") from exc
        items = dot_lookup(payload, self.definition.data_path)
        if not isinstance(items, list):
            raise SourceLoadError(f"expected a JSON array in {path}")
        for item in items:
            if isinstance(item, dict):
                yield self._to_raw(item)
            else:
                log.warning("Non-object entry in %s: %r", path, item)
                yield self._malformed(item)


class CsvFileSource(_MappedSource):
    """CSV export; columns are mapped through field_map (target: column)."""

    def iter_records(self) -> Iterator[dict[str, Any]]:
        path = Path(self.definition.path or "")
        if not path.exists():
            raise SourceLoadError(f"source file not found: {path}")
        with path.open("r", newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh, delimiter=self.definition.delimiter)
            for row in reader:
                yield self._to_raw(normalize_headers(row))


class HttpJsonSource(_MappedSource):
    """JSON array served over HTTP(S)."""

    def __init__(self, definition: SourceDefinition, session: requests.Session | None = None) -> None:
        super().__init__(definition)
        self.session = session or requests.Session()

    def iter_records(self) -> Iterator[dict[str, Any]]:
        url = self.definition.url or ""
        try:
            resp = self.session.get(url, timeout=self.definition.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise SourceLoadError(f"fetch failed for {url}: {exc}") from exc
        except ValueError as exc:
            raise SourceLoadError(f"response from {url} is not JSON: {exc}") from exc
        items = dot_lookup(payload, self.definition.data_path)
        if not isinstance(items, list):
            raise SourceLoadError(f"expected a JSON array from {url}")
        for item in items:
            if isinstance(item, dict):
                yield self._to_raw(item)
            else:
                log.warning("Non-object entry from %s: %r", url, item)
                yield self._malformed(item)


_ADAPTERS = {
    "json_file": JsonFileSource,
    "csv_file": CsvFileSource,
    "http_json": HttpJsonSource,
}


def build_source(definition: SourceDefinition) -> SourceAdapter:
    try:
        adapter_cls = _ADAPTERS[definition.type]
    except KeyError:
        raise ValueError(f"Unsupported source type: {definition.type}") from None
    return adapter_cls(definition)


def source_for_path(path: Path, id_prefix: str | None = None) -> SourceAdapter:
    """Ad-hoc adapter for a file given on the command line."""
    source_type = "csv_file" if path.suffix.lower() == ".csv" else "json_file"
    definition = SourceDefinition(
        name=path.stem,
        type=source_type,
        path=str(path),
        id_prefix=id_prefix or path.stem,
    )
    return build_source(definition)
