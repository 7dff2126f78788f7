"""moto_club_etl.store

Snapshot persistence for the canonical club set and its aggregates.

The three collections are always written together as one atomic replace:
  - JsonSnapshotStore writes a new generation directory, then swaps the
    `current` symlink to it with os.replace.  Readers see either the old
    snapshot or the new one, never a mix.
  - PostgresSnapshotStore deletes and re-inserts all three tables inside a
    single transaction.  Any failure rolls back; the previous rows stay.

A failed persist raises PersistError and leaves the previous snapshot
authoritative.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Protocol

import psycopg
from psycopg.types.json import Jsonb

from moto_club_etl.models import CityAggregate, ClubRecord, Snapshot, StateAggregate

log = logging.getLogger(__name__)

CLUBS_FILE = "clubs.json"
STATES_FILE = "states.json"
CITIES_FILE = "cities.json"
LEGACY_GENERATION = "legacy"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SnapshotLoadError(Exception):
    """Raised when the prior snapshot cannot be read."""


class PersistError(Exception):
    """Raised when the new snapshot could not be committed."""


class SnapshotStore(Protocol):
    def load(self) -> Snapshot: ...

    def persist(self, snapshot: Snapshot, generation: str) -> str:
        """Atomically replace the stored snapshot; return where it landed."""
        ...


# ---------------------------------------------------------------------------
# JSON files
# ---------------------------------------------------------------------------

class JsonSnapshotStore:
    """clubs.json / states.json / cities.json under data_dir/current."""

    def __init__(self, data_dir: Path, keep_generations: int = 3, allow_empty: bool = False) -> None:
        self.data_dir = Path(data_dir)
        self.keep_generations = keep_generations
        self.allow_empty = allow_empty

    @property
    def current(self) -> Path:
        return self.data_dir / "current"

    @property
    def generations_dir(self) -> Path:
        return self.data_dir / "generations"

    def load(self) -> Snapshot:
        if not self.current.exists():
            if self.allow_empty:
                log.info("No snapshot at %s; starting from an empty canonical set.", self.current)
                return Snapshot()
            raise SnapshotLoadError(f"no snapshot found at {self.current}")
        try:
            clubs = [ClubRecord.from_dict(d) for d in self._read_list(CLUBS_FILE)]
            states = [StateAggregate.from_dict(d) for d in self._read_list(STATES_FILE)]
            cities = [CityAggregate.from_dict(d) for d in self._read_list(CITIES_FILE)]
        except (OSError, json.JSONDecodeError, AttributeError) as exc:
            raise SnapshotLoadError(f"cannot read snapshot at {self.current}: {exc}") from exc
        return Snapshot(clubs=clubs, states=states, cities=cities)

    def _read_list(self, filename: str) -> list[dict]:
        path = self.current / filename
        if not path.exists():
            if filename == CLUBS_FILE:
                raise SnapshotLoadError(f"missing {path}")
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise SnapshotLoadError(f"{path} must contain a JSON array")
        return data

    def persist(self, snapshot: Snapshot, generation: str) -> str:
        target = self.generations_dir / generation
        staging = self.generations_dir / f".staging-{generation}"
        adopt = self.current.is_dir() and not self.current.is_symlink()
        legacy = self.generations_dir / LEGACY_GENERATION
        if target.exists():
            raise PersistError(f"generation {generation} already exists at {target}")
        if adopt and legacy.exists():
            raise PersistError(f"{legacy} already exists; cannot adopt {self.current}")
        try:
            staging.mkdir(parents=True, exist_ok=False)
            self._write_json(staging / CLUBS_FILE, [c.to_dict() for c in snapshot.clubs])
            self._write_json(staging / STATES_FILE, [s.to_dict() for s in snapshot.states])
            self._write_json(staging / CITIES_FILE, [c.to_dict() for c in snapshot.cities])
            os.replace(staging, target)
            self._swap_current(target, adopt=adopt)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if target.is_dir() and not self._points_to(target):
                shutil.rmtree(target, ignore_errors=True)
            raise PersistError(f"failed to persist snapshot to {self.data_dir}: {exc}") from exc
        self._prune(keep=target)
        return str(target)

    def _points_to(self, target: Path) -> bool:
        return self.current.is_symlink() and self.current.resolve() == target.resolve()

    @staticmethod
    def _write_json(path: Path, payload: list[dict]) -> None:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())

    def _swap_current(self, target: Path, adopt: bool = False) -> None:
        link_tmp = self.data_dir / f".current-{target.name}"
        if link_tmp.is_symlink() or link_tmp.exists():
            link_tmp.unlink()
        os.symlink(os.path.relpath(target, self.data_dir), link_tmp)
        try:
            if not adopt:
                os.replace(link_tmp, self.current)
                return
            # A plain directory cannot be replaced by a symlink in one rename:
            # it becomes the legacy generation and `current` is absent only
            # between these two calls.
            legacy = self.generations_dir / LEGACY_GENERATION
            os.replace(self.current, legacy)
            try:
                os.replace(link_tmp, self.current)
            except OSError:
                os.replace(legacy, self.current)
                raise
        except OSError:
            if link_tmp.is_symlink():
                link_tmp.unlink()
            raise

    def _prune(self, keep: Path) -> None:
        if self.keep_generations <= 0:
            return
        older = sorted(
            (
                p for p in self.generations_dir.iterdir()
                if p.is_dir() and not p.name.startswith(".") and p != keep
            ),
            key=lambda p: (p.stat().st_mtime, p.name),
        )
        for old in older[: max(0, len(older) - (self.keep_generations - 1))]:
            log.info("Pruning snapshot generation %s", old)
            shutil.rmtree(old, ignore_errors=True)


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

_CLUB_COLUMNS = (
    "external_id", "slug", "name", "description", "address", "city",
    "city_slug", "state_code", "state_name", "website", "phone",
    "main_category", "categories", "closed_on", "map_link", "featured_image",
    "rating", "review_count", "query", "query_02", "status",
)


class PostgresSnapshotStore:
    """Tables club / state_aggregate / city_aggregate (migrations/0001)."""

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn

    def load(self) -> Snapshot:
        try:
            conn = psycopg.connect(self.dsn, autocommit=False)
        except psycopg.Error as exc:
            raise SnapshotLoadError(f"cannot connect to snapshot database: {exc}") from exc
        try:
            club_rows = conn.execute(
                f"SELECT {', '.join(_CLUB_COLUMNS)}, extra FROM club ORDER BY position ASC"
            ).fetchall()
            state_rows = conn.execute(
                "SELECT code, name, slug, club_count, city_count FROM state_aggregate ORDER BY name, code"
            ).fetchall()
            city_rows = conn.execute(
                """
                SELECT name, slug, state_code, state_name, club_count
                FROM city_aggregate
                ORDER BY state_code, name, slug
                """
            ).fetchall()
            conn.rollback()
        except psycopg.Error as exc:
            raise SnapshotLoadError(f"cannot read snapshot tables: {exc}") from exc
        finally:
            conn.close()

        clubs = []
        for row in club_rows:
            values = dict(zip(_CLUB_COLUMNS, row[:-1]))
            values["rating"] = float(values["rating"] or 0)
            values["review_count"] = int(values["review_count"] or 0)
            clubs.append(ClubRecord(**values, extra=dict(row[-1] or {})))
        states = [StateAggregate(*row) for row in state_rows]
        cities = [CityAggregate(*row) for row in city_rows]
        return Snapshot(clubs=clubs, states=states, cities=cities)

    def persist(self, snapshot: Snapshot, generation: str) -> str:
        try:
            conn = psycopg.connect(self.dsn, autocommit=False)
        except psycopg.Error as exc:
            raise PersistError(f"cannot connect to snapshot database: {exc}") from exc
        try:
            conn.execute("DELETE FROM club")
            conn.execute("DELETE FROM state_aggregate")
            conn.execute("DELETE FROM city_aggregate")
            with conn.cursor() as cur:
                cur.executemany(
                    f"""
                    INSERT INTO club (position, {', '.join(_CLUB_COLUMNS)}, extra)
                    VALUES (%s, {', '.join(['%s'] * len(_CLUB_COLUMNS))}, %s)
                    """,
                    [
                        (pos, *(getattr(c, col) for col in _CLUB_COLUMNS), Jsonb(c.extra))
                        for pos, c in enumerate(snapshot.clubs)
                    ],
                )
                cur.executemany(
                    """
                    INSERT INTO state_aggregate (code, name, slug, club_count, city_count)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    [(s.code, s.name, s.slug, s.club_count, s.city_count) for s in snapshot.states],
                )
                cur.executemany(
                    """
                    INSERT INTO city_aggregate (name, slug, state_code, state_name, club_count)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    [
                        (c.name, c.slug, c.state_code, c.state_name, c.club_count)
                        for c in snapshot.cities
                    ],
                )
            conn.execute(
                "INSERT INTO snapshot_generation (generation, club_count) VALUES (%s, %s)",
                (generation, len(snapshot.clubs)),
            )
            conn.commit()
        except psycopg.Error as exc:
            conn.rollback()
            raise PersistError(f"snapshot write rolled back: {exc}") from exc
        finally:
            conn.close()
        return f"postgresql generation {generation}"
