"""Prometheus metrics helpers for the legacy migration."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

_rows_counter = Counter(
    "migration_rows_total",
    "Legacy records processed by the migration, by stage and outcome.",
    ["stage", "outcome"],
)
_stage_failures = Counter(
    "migration_stage_failures_total",
    "Migration stages abandoned because of an unrecoverable error.",
    ["stage"],
)
_stage_duration = Histogram(
    "migration_stage_duration_seconds",
    "Duration of a migration stage in seconds.",
    ["stage"],
    buckets=(0.5, 1, 5, 15, 30, 60, 120, 300, 900, 1800, 3600),
)
_verification_percentage = Gauge(
    "migration_verification_percentage",
    "Target/source completeness per entity kind from the last verification.",
    ["kind"],
)


def record_migration_rows(*, stage: str, outcome: str, count: int = 1) -> None:
    """Increment the per-stage row counter."""

    if count <= 0:
        return
    _rows_counter.labels(stage=stage, outcome=outcome).inc(count)


def record_stage_failure(stage: str) -> None:
    _stage_failures.labels(stage=stage).inc()


def record_stage_duration(stage: str, duration_seconds: float) -> None:
    _stage_duration.labels(stage=stage).observe(duration_seconds)


def record_verification(kind: str, percentage: float) -> None:
    """Publish the completeness percentage of one entity kind."""

    _verification_percentage.labels(kind=kind).set(percentage)
