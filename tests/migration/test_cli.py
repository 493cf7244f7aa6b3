from __future__ import annotations

import json

import pytest

from library_app.migration.pipeline import STAGE_ORDER
from library_app.models import Loan, Material, MigrationRun, MigrationRunStatus, db


@pytest.fixture
def configured_app(app, legacy_db, tmp_path):
    app.config.update(
        LEGACY_DATABASE_URL=legacy_db.url,
        MIGRATION_LOG_PATH=str(tmp_path / "cli" / "migration.log"),
        MIGRATION_BATCH_SIZE=50,
    )
    return app


def test_stages_command_lists_execution_order(runner):
    result = runner.invoke(args=["legacy", "stages"])

    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert len(lines) == len(STAGE_ORDER)
    assert lines[0].startswith("1. roles")
    assert lines[-1].startswith(f"{len(STAGE_ORDER)}. library_info")


def test_run_command_emits_json_summary(configured_app, runner, legacy_db, tmp_path):
    legacy_db.seed_catalog()

    result = runner.invoke(args=["legacy", "run", "--summary-json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "succeeded"
    assert payload["failed_stages"] == []
    assert payload["verification"]["complete"] is True
    assert [stage["name"] for stage in payload["stages"]] == list(STAGE_ORDER)
    assert Material.query.count() == 3
    assert "Migration run" in (tmp_path / "cli" / "migration.log").read_text(encoding="utf-8")


def test_run_command_human_summary_and_stage_selection(configured_app, runner, legacy_db):
    legacy_db.add_collection(1, "Stacks")

    result = runner.invoke(args=["legacy", "run", "--stage", "collections", "--skip-verify", "--batch-size", "10"])

    assert result.exit_code == 0, result.output
    assert "collections" in result.output
    assert "created=1" in result.output
    run = MigrationRun.query.one()
    assert run.stages_json == ["collections"]
    assert run.batch_size == 10


def test_run_command_exits_nonzero_when_a_stage_fails(configured_app, runner, legacy_db):
    legacy_db.seed_catalog()
    legacy_db.execute("DROP TABLE material_type_dm")

    result = runner.invoke(args=["legacy", "run", "--skip-verify"])

    assert result.exit_code == 1
    assert "FAILED" in result.output
    assert MigrationRun.query.one().status is MigrationRunStatus.PARTIALLY_FAILED


def test_run_command_exits_nonzero_when_verification_is_incomplete(configured_app, runner, legacy_db):
    legacy_db.seed_catalog()
    assert runner.invoke(args=["legacy", "run"]).exit_code == 0
    legacy_db.execute("DELETE FROM biblio_copy WHERE bibid = 1 AND copyid = 2")

    result = runner.invoke(args=["legacy", "run", "--summary-json"])

    assert result.exit_code == 1, result.output
    payload = json.loads(result.stdout)
    assert payload["row_failures"] == 0
    assert payload["failed_stages"] == []
    assert payload["verification_incomplete"] is True
    assert payload["verification"]["complete"] is False
    assert payload["status"] == "partially_failed"


def test_run_command_rejects_unknown_stage(configured_app, runner):
    result = runner.invoke(args=["legacy", "run", "--stage", "patrons"])

    assert result.exit_code == 2
    assert MigrationRun.query.count() == 0


def test_run_command_requires_a_source(runner):
    result = runner.invoke(args=["legacy", "run"])

    assert result.exit_code == 1
    assert "Legacy source is not configured" in result.output


def test_run_command_reports_unreachable_source(app, runner, tmp_path):
    app.config["LEGACY_DATABASE_URL"] = f"sqlite:///{tmp_path / 'absent' / 'legacy.db'}"

    result = runner.invoke(args=["legacy", "run"])

    assert result.exit_code == 1
    assert "Migration aborted" in result.output
    assert MigrationRun.query.one().status is MigrationRunStatus.FAILED


def test_verify_command_json_report(configured_app, runner, legacy_db):
    legacy_db.seed_catalog()
    assert runner.invoke(args=["legacy", "run", "--skip-verify"]).exit_code == 0

    result = runner.invoke(args=["legacy", "verify", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["complete"] is True
    assert payload["kinds"]["loans"]["percentage"] == 100.0


def test_verify_command_exits_nonzero_when_incomplete(configured_app, runner, legacy_db):
    legacy_db.seed_catalog()
    assert runner.invoke(args=["legacy", "run", "--skip-verify"]).exit_code == 0
    Loan.query.filter_by(external_id="active_loan_1_2").delete(synchronize_session=False)
    db.session.commit()

    result = runner.invoke(args=["legacy", "verify", "--sample-size", "2"])

    assert result.exit_code == 1
    assert "active_loan_1_2" in result.output
    assert "Verification INCOMPLETE" in result.output
