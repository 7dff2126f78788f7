"""moto_club_etl.cli

Command-line entrypoint for club directory consolidation.

Modes (--mode):
  consolidate  merge one source batch into the canonical snapshot (default)
  audit        report canonical records that fail screening or integrity
               checks; never writes the snapshot

Usage (consolidate a configured source into the JSON snapshot):
    python -m moto_club_etl.cli \\
        --mode consolidate \\
        --source riderclubs \\
        --data-dir data \\
        --rejects-path artifacts/rejects/riderclubs_rejects.csv

Usage (ad-hoc file into PostgreSQL, dry run):
    python -m moto_club_etl.cli \\
        --source-path rawEvidence/new-clubs.json \\
        --db-dsn "$DB_DSN" \\
        --dry-run

Usage (audit):
    python -m moto_club_etl.cli --mode audit --data-dir data
"""

from __future__ import annotations

import logging
import sys
import uuid
from pathlib import Path

import click

from moto_club_etl.config import (
    DEFAULT_CONFIG_PATH,
    ConfigValidationError,
    ConsolidationConfig,
    load_config,
)
from moto_club_etl.consolidate import (
    BatchValidationError,
    ConsolidationRun,
    build_audit_report,
    run_audit,
    run_consolidation,
)
from moto_club_etl.screening import build_screener
from moto_club_etl.shared import RejectWriter, utc_now_iso, write_run_report
from moto_club_etl.sources import SourceAdapter, SourceLoadError, build_source, source_for_path
from moto_club_etl.store import (
    JsonSnapshotStore,
    PersistError,
    PostgresSnapshotStore,
    SnapshotLoadError,
    SnapshotStore,
)

log = logging.getLogger(__name__)


def _build_store(data_dir: str | None, db_dsn: str | None, allow_empty: bool) -> SnapshotStore:
    if db_dsn:
        return PostgresSnapshotStore(db_dsn)
    return JsonSnapshotStore(Path(data_dir or "data"), allow_empty=allow_empty)


def _build_source(
    config: ConsolidationConfig,
    source_name: str | None,
    source_path: str | None,
    run_id: str,
) -> SourceAdapter:
    if source_path:
        return source_for_path(Path(source_path))
    if not source_name:
        click.echo(f"[{run_id}] ERROR: --source or --source-path is required for consolidate.", err=True)
        sys.exit(1)
    definition = config.sources.get(source_name)
    if definition is None:
        click.echo(
            f"[{run_id}] ERROR: unknown source '{source_name}'. "
            f"Configured: {sorted(config.sources)}",
            err=True,
        )
        sys.exit(1)
    return build_source(definition)


@click.command()
@click.option(
    "--mode",
    type=click.Choice(["consolidate", "audit"]),
    default="consolidate",
    show_default=True,
    help="Run mode",
)
@click.option(
    "--config",
    "config_path",
    default=str(DEFAULT_CONFIG_PATH),
    type=click.Path(),
    show_default=True,
    help="Consolidation YAML",
)
@click.option("--source", "source_name", default=None, help="[consolidate] Source name from the config")
@click.option("--source-path", default=None, type=click.Path(), help="[consolidate] Ad-hoc JSON or CSV batch")
@click.option("--data-dir", default="data", type=click.Path(), show_default=True, help="JSON snapshot directory")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN; replaces the JSON snapshot store")
@click.option(
    "--allow-empty-snapshot",
    is_flag=True,
    default=False,
    help="[consolidate] Start from an empty canonical set when no snapshot exists",
)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--rejects-path", default=None, type=click.Path(), help="Rejects CSV (default from config)")
@click.option("--report-dir", default=None, type=click.Path(), help="Run report directory (default from config)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
)
def main(
    mode: str,
    config_path: str,
    source_name: str | None,
    source_path: str | None,
    data_dir: str,
    db_dsn: str | None,
    allow_empty_snapshot: bool,
    dry_run: bool,
    run_id: str | None,
    rejects_path: str | None,
    report_dir: str | None,
    log_level: str,
) -> None:
    """Motorcycle club directory consolidation CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = utc_now_iso()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    try:
        config = load_config(Path(config_path))
    except FileNotFoundError:
        click.echo(f"[{run_id}] FATAL: config not found: {config_path}", err=True)
        sys.exit(1)
    except ConfigValidationError as exc:
        click.echo(f"[{run_id}] FATAL: invalid config {config_path}: {exc}", err=True)
        sys.exit(1)
    log.info("Loaded config %s (sha256 %s)", config_path, config.yaml_hash)

    reports = Path(report_dir or config.report_dir)
    store = _build_store(data_dir, db_dsn, allow_empty_snapshot)
    screener = build_screener(
        config.max_city_length, config.known_bad_cities, config.excluded_categories
    )

    if mode == "audit":
        try:
            snapshot = store.load()
        except SnapshotLoadError as exc:
            click.echo(f"[{run_id}] FATAL: {exc}", err=True)
            sys.exit(1)
        audit = run_audit(snapshot, screener)
        click.echo(build_audit_report(audit))
        report_path = write_run_report(
            run_id, started_at, mode, dry_run,
            {"status": "ok", "config_hash": config.yaml_hash},
            audit,
            report_dir=reports,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        return

    source = _build_source(config, source_name, source_path, run_id)
    rejects = RejectWriter(Path(rejects_path or config.rejects_path))
    run = ConsolidationRun(run_id=run_id, dry_run=dry_run)
    details = {"source": source.name, "config_hash": config.yaml_hash}

    try:
        run_consolidation(
            run, store, source, config, rejects,
            screener=screener if config.screening_enabled else None,
        )
    except (SourceLoadError, SnapshotLoadError, BatchValidationError, PersistError) as exc:
        report_path = write_run_report(
            run_id, started_at, mode, dry_run,
            {**details, "status": "failed", "stage": run.stage, "error": str(exc)},
            run.counters,
            report_dir=reports,
        )
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        click.echo(f"[{run_id}] Run report: {report_path}")
        sys.exit(1)
    finally:
        rejects.close()

    click.echo(run.report)
    if rejects.count:
        click.echo(f"[{run_id}] {rejects.count} rejected record(s) written to {rejects.path}")
    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {**details, "status": "ok", "stage": run.stage, "persisted_to": run.persisted_to},
        run.counters,
        report_dir=reports,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
