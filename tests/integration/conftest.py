"""Integration test fixtures.

Applies migrations/*.sql against an ephemeral PostgreSQL database provided
by pytest-postgresql.  Tests that need the database are skipped when no
PostgreSQL binaries are installed.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_directory_snapshot.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def _postgres_available() -> bool:
    return bool(shutil.which("pg_ctl") or shutil.which("pg_config"))


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(request):
    """Return (connection, dsn) with the snapshot schema applied."""
    if not _postgres_available():
        pytest.skip("PostgreSQL binaries not available")
    pg = request.getfixturevalue("postgresql")
    dsn = (
        f"host={pg.info.host} "
        f"port={pg.info.port} "
        f"dbname={pg.info.dbname} "
        f"user={pg.info.user} "
        f"password={pg.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# JSON snapshot fixtures
# ---------------------------------------------------------------------------

CANONICAL_CLUBS = [
    {
        "place_id": "ChIJ-oh-1",
        "name": "Iron Horsemen Motorcycle Club",
        "slug": "iron-horsemen-motorcycle-club-cincinnati-oh",
        "description": "",
        "reviews": 40,
        "rating": 4.6,
        "website": "http://ironhorsemen.example",
        "phone": "",
        "featured_image": "",
        "main_category": "Motorcycle club",
        "categories": "Motorcycle club",
        "closed_on": "",
        "address": "100 Vine St",
        "link": "https://maps.example/oh-1",
        "City": "cincinnati",
        "State": "oh",
        "stateName": "Ohio",
        "citySlug": "cincinnati",
        "query": "motorcycle clubs ohio",
        "query-02": "",
    },
    {
        "place_id": "ChIJ-ca-1",
        "name": "Road Kings MC",
        "slug": "road-kings-mc-fresno-ca",
        "description": "Since 1971",
        "reviews": 3,
        "rating": 4.0,
        "website": "",
        "phone": "559-555-0100",
        "featured_image": "",
        "main_category": "Motorcycle club",
        "categories": "",
        "closed_on": "",
        "address": "",
        "link": "",
        "City": "fresno",
        "State": "ca",
        "stateName": "California",
        "citySlug": "fresno",
        "query": "",
        "query-02": "",
    },
]

CANONICAL_STATES = [
    {"code": "ca", "name": "California", "slug": "california", "clubCount": 1, "cityCount": 1},
    {"code": "oh", "name": "Ohio", "slug": "ohio", "clubCount": 1, "cityCount": 1},
]

CANONICAL_CITIES = [
    {"name": "Fresno", "slug": "fresno", "state": "ca", "stateName": "California", "clubCount": 1},
    {"name": "Cincinnati", "slug": "cincinnati", "state": "oh", "stateName": "Ohio", "clubCount": 1},
]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A first-time layout: a plain data/current/ directory."""
    current = tmp_path / "data" / "current"
    current.mkdir(parents=True)
    (current / "clubs.json").write_text(json.dumps(CANONICAL_CLUBS), encoding="utf-8")
    (current / "states.json").write_text(json.dumps(CANONICAL_STATES), encoding="utf-8")
    (current / "cities.json").write_text(json.dumps(CANONICAL_CITIES), encoding="utf-8")
    return tmp_path / "data"
