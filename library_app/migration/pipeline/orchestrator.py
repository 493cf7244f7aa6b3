"""
Sequential driver for the legacy migration.

Stages run one after another in dependency order. A stage that raises is
rolled back, logged and skipped so every remaining stage still runs; the
run record reports what succeeded.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from sqlalchemy.orm import Session

from library_app.migration.metrics import record_migration_rows, record_stage_duration
from library_app.migration.source import LegacySource, SourceUnavailableError
from library_app.models.migration.schema import MigrationRun, MigrationRunStatus

from .context import MigrationContext, MigrationSettings
from .run_log import RunLog
from .stages import STAGE_ORDER, STAGE_REGISTRY, Stage
from .status import utcnow
from .subjects import SubjectCache
from .verify import ReconciliationVerifier, VerificationReport


class UnknownStageError(ValueError):
    def __init__(self, names: Iterable[str]) -> None:
        names = sorted(names)
        super().__init__(f"Unknown migration stage(s): {', '.join(names)}. Known stages: {', '.join(STAGE_ORDER)}.")
        self.names = names


@dataclass(frozen=True)
class StageResult:
    name: str
    succeeded: bool
    counts: dict[str, int]
    duration_seconds: float
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "status": "succeeded" if self.succeeded else "failed",
            "counts": dict(self.counts),
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
        }


@dataclass(frozen=True)
class RunResult:
    run_id: int | None
    status: MigrationRunStatus
    stages: tuple[StageResult, ...]
    row_failures: int
    verification: VerificationReport | None = None
    subject_cache: dict[str, int] = field(default_factory=dict)
    verify_requested: bool = False

    @property
    def failed_stages(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages if not stage.succeeded)

    @property
    def verification_incomplete(self) -> bool:
        """True when a requested check did not run or found gaps."""
        if not self.verify_requested:
            return False
        return self.verification is None or not self.verification.complete

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "row_failures": self.row_failures,
            "failed_stages": list(self.failed_stages),
            "verification_incomplete": self.verification_incomplete,
            "stages": [stage.to_dict() for stage in self.stages],
            "subject_cache": dict(self.subject_cache),
            "verification": self.verification.to_dict() if self.verification is not None else None,
        }


def resolve_stage_names(selected: Iterable[str] | None = None) -> tuple[str, ...]:
    """Return the requested stages in canonical dependency order."""
    if not selected:
        return STAGE_ORDER
    requested = {name.strip().lower() for name in selected if name and name.strip()}
    unknown = requested.difference(STAGE_ORDER)
    if unknown:
        raise UnknownStageError(unknown)
    return tuple(name for name in STAGE_ORDER if name in requested)


class MigrationOrchestrator:
    """Run the migration stages against an open context."""

    def __init__(
        self,
        context: MigrationContext,
        registry: dict[str, type[Stage]] | None = None,
    ):
        self.context = context
        self.registry = registry or STAGE_REGISTRY

    @property
    def session(self) -> Session:
        return self.context.session

    def run(self, stages: Iterable[str] | None = None, *, verify: bool = True) -> RunResult:
        names = resolve_stage_names(stages)
        context = self.context
        run_log = context.run_log
        run = context.run
        if run is not None:
            run.status = MigrationRunStatus.RUNNING
            run.started_at = datetime.now(timezone.utc)
            run.stages_json = list(names)
            run.batch_size = context.batch_size
            self.session.commit()

        run_log.info("Migration run %s started; stages: %s", run.id if run else "-", ", ".join(names))
        results: list[StageResult] = []
        for name in names:
            result = self._run_stage(name)
            results.append(result)
            if run is not None:
                counts = dict(run.counts_json or {})
                counts[name] = result.to_dict()
                run.counts_json = counts
                self.session.commit()
                run_log.issues_saved()

        report = None
        if verify:
            report = self._verify()

        failed_names = [result.name for result in results if not result.succeeded]
        verification_incomplete = verify and (report is None or not report.complete)

        status = MigrationRunStatus.SUCCEEDED
        if run_log.row_failures or failed_names or verification_incomplete:
            status = MigrationRunStatus.PARTIALLY_FAILED

        if run is not None:
            run.status = status
            run.finished_at = datetime.now(timezone.utc)
            if report is not None:
                run.verification_json = report.to_dict()
            if failed_names or run_log.row_failures or verification_incomplete:
                summary = (
                    f"failed stages: {', '.join(failed_names) or 'none'}; "
                    f"row failures: {run_log.row_failures}"
                )
                if verification_incomplete:
                    summary += "; verification incomplete" if report is not None else "; verification failed"
                run.error_summary = summary
            self.session.commit()

        run_log.info(
            "Migration run %s finished with status %s (row failures=%d, failed stages=%s)",
            run.id if run else "-",
            status.value,
            run_log.row_failures,
            ", ".join(failed_names) or "none",
        )
        return RunResult(
            run_id=run.id if run is not None else None,
            status=status,
            stages=tuple(results),
            row_failures=run_log.row_failures,
            verification=report,
            subject_cache=context.subject_cache.to_dict(),
            verify_requested=verify,
        )

    def _run_stage(self, name: str) -> StageResult:
        context = self.context
        stage = self.registry[name](context)
        context.run_log.stage_started(name)
        started = time.perf_counter()
        try:
            counters = stage.run()
        except Exception as exc:  # noqa: BLE001 - a failed stage must not stop the run
            self.session.rollback()
            context.run_log.restore_issues()
            context.source.reset()
            context.subject_cache.invalidate()
            context.forget_lookups()
            context.run_log.stage_failed(name, exc)
            self.session.commit()
            context.run_log.issues_saved()
            duration = time.perf_counter() - started
            record_stage_duration(name, duration)
            return StageResult(
                name=name,
                succeeded=False,
                counts=stage.counters.to_dict(),
                duration_seconds=duration,
                error=f"{type(exc).__name__}: {exc}",
            )

        duration = time.perf_counter() - started
        record_stage_duration(name, duration)
        for action in ("created", "updated", "unchanged"):
            record_migration_rows(stage=name, outcome=action, count=getattr(counters, action))
        counts = counters.to_dict()
        context.run_log.stage_finished(name, counts, duration)
        return StageResult(name=name, succeeded=True, counts=counts, duration_seconds=duration)

    def _verify(self) -> VerificationReport | None:
        context = self.context
        verifier = ReconciliationVerifier(
            context.source,
            self.session,
            sample_size=context.settings.sample_size,
            batch_size=context.batch_size,
        )
        try:
            report = verifier.verify()
        except Exception as exc:  # noqa: BLE001 - verification is reported, not fatal
            self.session.rollback()
            context.run_log.restore_issues()
            context.source.reset()
            context.run_log.stage_failed("verify", exc)
            self.session.commit()
            context.run_log.issues_saved()
            return None
        context.run_log.write_report(report.format_lines())
        return report


def run_migration(
    settings: MigrationSettings,
    session: Session,
    *,
    stages: Sequence[str] | None = None,
    verify: bool = True,
    source: LegacySource | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> RunResult:
    """
    Execute one migration run end to end.

    Opens the legacy source and the run log, records a ``MigrationRun`` and
    releases both resources on every exit path. A source that cannot be
    opened marks the run failed and re-raises :class:`SourceUnavailableError`.
    """

    names = resolve_stage_names(stages)
    run = MigrationRun(source="legacy", status=MigrationRunStatus.PENDING, stages_json=list(names))
    session.add(run)
    session.commit()

    with RunLog(
        settings.log_path,
        session=session,
        run=run,
        progress_interval=settings.progress_interval,
    ) as run_log:
        try:
            if source is None:
                if not settings.source_url:
                    raise SourceUnavailableError("No legacy database URL configured (LEGACY_DATABASE_URL).")
                source = LegacySource(settings.source_url, connect_timeout=settings.connect_timeout)
            source.open()
        except SourceUnavailableError as exc:
            run_log.run_failed(exc)
            run.status = MigrationRunStatus.FAILED
            run.error_summary = str(exc)
            run.finished_at = datetime.now(timezone.utc)
            session.commit()
            raise
        try:
            context = MigrationContext(
                session=session,
                source=source,
                run_log=run_log,
                settings=settings,
                subject_cache=SubjectCache(),
                run=run,
                clock=clock,
            )
            return MigrationOrchestrator(context).run(names, verify=verify)
        except Exception as exc:
            session.rollback()
            run_log.restore_issues()
            run_log.run_failed(exc)
            run.status = MigrationRunStatus.FAILED
            run.error_summary = f"{type(exc).__name__}: {exc}"
            run.finished_at = datetime.now(timezone.utc)
            session.commit()
            raise
        finally:
            source.close()
