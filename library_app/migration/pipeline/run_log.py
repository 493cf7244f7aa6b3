"""
Durable run log and failure isolation for migration runs.

Every line goes to an append-only text file (``MIGRATION_LOG_PATH``) and to
the application logger. Row and stage failures are additionally recorded as
``MigrationIssue`` rows when a run record is attached.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy.orm import Session

from library_app.migration.metrics import record_migration_rows, record_stage_failure
from library_app.models.migration.schema import MigrationIssue, MigrationIssueSeverity, MigrationRun

RUN_LOGGER_NAME = "library_app.migration.run"
LOG_LINE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


@dataclass
class RowOutcome:
    """Filled in by :meth:`RunLog.isolate_row` once the row block exits."""

    stage: str
    record_key: str
    failed: bool = False
    error: str | None = None


class RunLog:
    """Append-only log of one migration run."""

    def __init__(
        self,
        path: str | os.PathLike | None = None,
        *,
        session: Session | None = None,
        run: MigrationRun | None = None,
        progress_interval: int = 100,
        logger: logging.Logger | None = None,
    ) -> None:
        self.path = os.fspath(path) if path is not None else None
        self.session = session
        self.run = run
        self.progress_interval = max(1, int(progress_interval))
        self.logger = logger or logging.getLogger(RUN_LOGGER_NAME)
        self.row_failures = 0
        self.stage_failures = 0
        self._handler: logging.Handler | None = None
        self._last_progress: dict[str, int] = {}
        self._unsaved_issues: list[dict] = []

    def __enter__(self) -> "RunLog":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self.path is None or self._handler is not None:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT))
        handler.setLevel(logging.DEBUG)
        self.logger.addHandler(handler)
        if self.logger.level == logging.NOTSET or self.logger.level > logging.INFO:
            self.logger.setLevel(logging.INFO)
        self._handler = handler

    def close(self) -> None:
        if self._handler is None:
            return
        self.logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    def info(self, message: str, *args) -> None:
        self.logger.info(message, *args)

    def warning(self, message: str, *args) -> None:
        self.logger.warning(message, *args)

    def error(self, message: str, *args) -> None:
        self.logger.error(message, *args)

    def stage_started(self, stage: str) -> None:
        self._last_progress[stage] = 0
        self.info("Stage %s started", stage)

    def stage_finished(self, stage: str, counts: dict[str, int], duration_seconds: float) -> None:
        summary = ", ".join(f"{key}={value}" for key, value in counts.items())
        self.info("Stage %s finished in %.2fs (%s)", stage, duration_seconds, summary)

    def progress(self, stage: str, processed: int, *, force: bool = False) -> None:
        last = self._last_progress.get(stage, 0)
        if force or processed - last >= self.progress_interval:
            self._last_progress[stage] = processed
            self.info("Stage %s progress: %d records processed", stage, processed)

    def row_failed(self, stage: str, record_key: str, exc: BaseException) -> None:
        self.row_failures += 1
        self.error("Stage %s record %s failed: %s: %s", stage, record_key, type(exc).__name__, exc)
        record_migration_rows(stage=stage, outcome="failed")
        self._record_issue(stage, record_key, exc, MigrationIssueSeverity.ROW)

    def stage_failed(self, stage: str, exc: BaseException) -> None:
        self.stage_failures += 1
        self.error("Stage %s aborted: %s: %s", stage, type(exc).__name__, exc)
        record_stage_failure(stage)
        self._record_issue(stage, None, exc, MigrationIssueSeverity.STAGE)

    def run_failed(self, exc: BaseException) -> None:
        self.error("Run aborted: %s: %s", type(exc).__name__, exc)
        self._record_issue(None, None, exc, MigrationIssueSeverity.RUN)

    def write_report(self, lines: list[str]) -> None:
        for line in lines:
            self.info(line)

    def _record_issue(
        self,
        stage: str | None,
        record_key: str | None,
        exc: BaseException,
        severity: MigrationIssueSeverity,
    ) -> None:
        if self.session is None or self.run is None or self.run.id is None:
            return
        issue = {
            "run_id": self.run.id,
            "stage": stage,
            "severity": severity,
            "record_key": record_key[:255] if record_key else None,
            "error_type": type(exc).__name__,
            "message": str(exc) or type(exc).__name__,
        }
        self._unsaved_issues.append(issue)
        self.session.add(MigrationIssue(**issue))

    def issues_saved(self) -> None:
        """The caller committed; recorded issues are durable."""
        self._unsaved_issues.clear()

    def restore_issues(self) -> None:
        """
        Re-add issues recorded since the last commit.

        Call after a rollback of the enclosing transaction, which discards
        the issue rows together with the work they describe.
        """
        if self.session is None:
            return
        for issue in self._unsaved_issues:
            self.session.add(MigrationIssue(**issue))

    @contextmanager
    def isolate_row(self, stage: str, record_key: str) -> Iterator[RowOutcome]:
        """
        Run one record's work inside a savepoint.

        A failure rolls the savepoint back, is logged with the record key and
        does not propagate, so the caller moves on to the next record.
        """

        outcome = RowOutcome(stage=stage, record_key=record_key)
        if self.session is None:
            raise RuntimeError("RunLog.isolate_row requires a session.")
        try:
            with self.session.begin_nested():
                yield outcome
        except Exception as exc:  # noqa: BLE001 - isolated per record
            outcome.failed = True
            outcome.error = str(exc)
            self.row_failed(stage, record_key, exc)
