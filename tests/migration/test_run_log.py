from __future__ import annotations

import logging

from library_app.migration.pipeline.run_log import RunLog
from library_app.models import (
    MigrationIssue,
    MigrationIssueSeverity,
    MigrationRun,
    MigrationRunStatus,
    Role,
    db,
)


def _make_run() -> MigrationRun:
    run = MigrationRun(source="legacy", status=MigrationRunStatus.RUNNING)
    db.session.add(run)
    db.session.commit()
    return db.session.get(MigrationRun, run.id)


def test_lines_are_appended_to_the_log_file(tmp_path):
    path = tmp_path / "runs" / "migration.log"

    with RunLog(path) as run_log:
        run_log.info("first run")
    with RunLog(path) as run_log:
        run_log.warning("second run")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("[INFO] first run")
    assert lines[1].endswith("[WARNING] second run")


def test_file_handler_is_detached_on_close(tmp_path):
    run_log = RunLog(tmp_path / "migration.log")
    run_log.open()
    handlers_while_open = list(run_log.logger.handlers)
    run_log.close()

    assert any(isinstance(handler, logging.FileHandler) for handler in handlers_while_open)
    assert run_log._handler is None
    assert all(handler not in run_log.logger.handlers for handler in handlers_while_open if handler is not None)


def test_failed_row_is_rolled_back_and_recorded(app, tmp_path):
    run = _make_run()
    run_log = RunLog(tmp_path / "migration.log", session=db.session, run=run)

    with run_log:
        with run_log.isolate_row("roles", "role_broken") as outcome:
            db.session.add(Role(name="broken", display_name="Broken"))
            db.session.flush()
            raise ValueError("bad row")
        with run_log.isolate_row("roles", "role_good") as good:
            db.session.add(Role(name="good", display_name="Good"))
        db.session.commit()

    assert outcome.failed is True
    assert outcome.error == "bad row"
    assert good.failed is False
    assert [role.name for role in Role.query.all()] == ["good"]
    assert run_log.row_failures == 1

    issue = MigrationIssue.query.one()
    assert issue.run_id == run.id
    assert issue.stage == "roles"
    assert issue.record_key == "role_broken"
    assert issue.severity is MigrationIssueSeverity.ROW
    assert issue.error_type == "ValueError"
    assert "role_broken" in (tmp_path / "migration.log").read_text(encoding="utf-8")


def test_issues_are_re_added_after_a_transaction_rollback(app):
    run = _make_run()
    run_log = RunLog(session=db.session, run=run)

    run_log.row_failed("materials", "material_7", ValueError("bad row"))
    db.session.rollback()
    assert MigrationIssue.query.count() == 0

    run_log.restore_issues()
    db.session.commit()
    run_log.issues_saved()
    db.session.rollback()
    run_log.restore_issues()
    db.session.commit()

    issue = MigrationIssue.query.one()
    assert issue.record_key == "material_7"
    assert issue.severity is MigrationIssueSeverity.ROW


def test_stage_and_run_failures_are_recorded(app):
    run = _make_run()
    run_log = RunLog(session=db.session, run=run)

    run_log.stage_failed("loans", RuntimeError("table missing"))
    run_log.run_failed(ConnectionError("gone"))
    db.session.commit()

    severities = {issue.severity for issue in MigrationIssue.query.all()}
    assert severities == {MigrationIssueSeverity.STAGE, MigrationIssueSeverity.RUN}
    assert run_log.stage_failures == 1


def test_progress_is_throttled_by_interval(caplog):
    run_log = RunLog(progress_interval=10)
    run_log.stage_started("materials")

    with caplog.at_level(logging.INFO, logger=run_log.logger.name):
        for processed in range(1, 26):
            run_log.progress("materials", processed)
        run_log.progress("materials", 25, force=True)

    messages = [record.getMessage() for record in caplog.records if "progress" in record.getMessage()]
    assert messages == [
        "Stage materials progress: 10 records processed",
        "Stage materials progress: 20 records processed",
        "Stage materials progress: 25 records processed",
    ]
