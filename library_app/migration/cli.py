"""
CLI commands for the legacy catalogue migration.

``flask legacy run`` executes the stages against ``LEGACY_DATABASE_URL``;
``flask legacy verify`` reruns only the reconciliation report.
"""

from __future__ import annotations

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from library_app.migration.pipeline import (
    STAGE_ORDER,
    MigrationSettings,
    ReconciliationVerifier,
    RunLog,
    RunResult,
    UnknownStageError,
    run_migration,
)
from library_app.migration.pipeline.stages import STAGE_REGISTRY
from library_app.migration.source import LegacySource, SourceUnavailableError
from library_app.models.base import db
from library_app.models.migration.schema import MigrationRunStatus


@click.group(name="legacy")
def legacy_cli():
    """Legacy catalogue migration commands."""


def _settings(**overrides) -> MigrationSettings:
    settings = MigrationSettings.from_config(current_app.config, **overrides)
    if not settings.source_url:
        raise click.ClickException(
            "Legacy source is not configured. Set LEGACY_DATABASE_URL or MYSQL_HOST/MYSQL_USER/"
            "MYSQL_PASSWORD/MYSQL_DATABASE."
        )
    return settings


def _format_summary(result: RunResult) -> str:
    lines = [f"Run {result.run_id} completed with status {result.status.value}."]
    for stage in result.stages:
        counts = stage.counts
        status = "ok" if stage.succeeded else f"FAILED ({stage.error})"
        lines.append(
            f"  {stage.name:<15}: processed={counts.get('processed', 0)} created={counts.get('created', 0)} "
            f"updated={counts.get('updated', 0)} unchanged={counts.get('unchanged', 0)} "
            f"failed={counts.get('failed', 0)} [{status}]"
        )
    lines.append(f"  row_failures   : {result.row_failures}")
    cache = result.subject_cache
    if cache:
        lines.append(
            f"  subject_cache  : size={cache.get('size', 0)} hits={cache.get('hits', 0)} "
            f"misses={cache.get('misses', 0)}"
        )
    if result.verification is not None:
        lines.extend(f"  {line}" for line in result.verification.format_lines())
    return "\n".join(lines)


@legacy_cli.command("stages")
def list_stages_command():
    """List migration stages in execution order."""
    for index, name in enumerate(STAGE_ORDER, 1):
        click.echo(f"{index}. {name:<15} {STAGE_REGISTRY[name].description}")


@legacy_cli.command("run")
@click.option(
    "--stage",
    "stages",
    multiple=True,
    type=click.Choice(STAGE_ORDER, case_sensitive=False),
    help="Run only the named stage(s); may be repeated. Order is always the dependency order.",
)
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Source page size.")
@click.option("--skip-verify", is_flag=True, help="Do not run the reconciliation report afterwards.")
@click.option("--summary-json", is_flag=True, help="Emit the run summary as JSON.")
@with_appcontext
def run_command(stages, batch_size, skip_verify, summary_json):
    """Migrate the legacy catalogue into the library database."""

    settings = _settings(batch_size=batch_size)
    verify = not skip_verify and current_app.config.get("MIGRATION_VERIFY_AFTER_RUN", True)
    try:
        result = run_migration(settings, db.session, stages=stages or None, verify=verify)
    except UnknownStageError as exc:
        raise click.ClickException(str(exc)) from exc
    except SourceUnavailableError as exc:
        raise click.ClickException(f"Migration aborted: {exc}") from exc
    finally:
        db.session.remove()

    if summary_json:
        click.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        click.echo(_format_summary(result))

    if result.failed_stages:
        raise click.exceptions.Exit(1)
    if result.verification_incomplete:
        if result.verification is None:
            click.echo("Error: verification did not complete; see the run log.", err=True)
        raise click.exceptions.Exit(1)
    if result.status is not MigrationRunStatus.SUCCEEDED:
        click.echo(f"Warning: {result.row_failures} record(s) failed; see the run log.", err=True)


@legacy_cli.command("verify")
@click.option("--sample-size", type=click.IntRange(min=0), default=None, help="Missing keys to sample per kind.")
@click.option("--json", "as_json", is_flag=True, help="Emit the report as JSON.")
@with_appcontext
def verify_command(sample_size, as_json):
    """Compare legacy and migrated row counts."""

    settings = _settings()
    sample = settings.sample_size if sample_size is None else sample_size
    try:
        with LegacySource(settings.source_url, connect_timeout=settings.connect_timeout) as source:
            report = ReconciliationVerifier(
                source,
                db.session,
                sample_size=sample,
                batch_size=settings.batch_size,
            ).verify()
    except SourceUnavailableError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        db.session.remove()

    with RunLog(settings.log_path) as run_log:
        run_log.write_report(report.format_lines())

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        click.echo("\n".join(report.format_lines()))
    if not report.complete:
        raise click.exceptions.Exit(1)
