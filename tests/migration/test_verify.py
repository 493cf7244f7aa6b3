from __future__ import annotations

from dataclasses import replace

from library_app.migration.pipeline import ReconciliationVerifier, run_migration
from library_app.migration.pipeline.verify import VERIFIED_KINDS, KindReport
from library_app.models import Loan, LoanStatus, Subject, db


def _seed_checked_out(legacy_db, *, biblios=10, copies_per_biblio=10):
    for bibid in range(1, biblios + 1):
        legacy_db.add_biblio(bibid, f"Title {bibid}")
        for copyid in range(1, copies_per_biblio + 1):
            legacy_db.add_copy(bibid, copyid, "CRT", due_back_dt="2099-12-31 00:00:00")


def test_reconciliation_reports_missing_active_loans(app, legacy_db, legacy_source, migration_settings):
    _seed_checked_out(legacy_db)
    result = run_migration(replace(migration_settings, batch_size=25), db.session)
    assert result.verification.get("active_loans").percentage == 100.0

    removed = ["active_loan_2_3", "active_loan_5_5", "active_loan_9_10"]
    Loan.query.filter(Loan.external_id.in_(removed)).delete(synchronize_session=False)
    db.session.commit()

    report = ReconciliationVerifier(legacy_source, db.session, sample_size=10, batch_size=25).verify(
        ["active_loans", "loans"]
    )

    active = report.get("active_loans")
    assert active.source_count == 100
    assert active.target_count == 97
    assert active.percentage == 97.0
    assert active.diagnosis == "missing_rows"
    assert sorted(active.missing_samples) == sorted(removed)
    assert report.get("loans").target_count == 97
    assert report.complete is False


def test_sampling_stops_at_sample_size(app, legacy_db, legacy_source, migration_settings):
    _seed_checked_out(legacy_db, biblios=2, copies_per_biblio=5)
    run_migration(migration_settings, db.session)
    Loan.query.delete(synchronize_session=False)
    db.session.commit()

    report = ReconciliationVerifier(legacy_source, db.session, sample_size=3).verify(["active_loans"])

    assert report.get("active_loans").missing_samples == [
        "active_loan_1_1",
        "active_loan_1_2",
        "active_loan_1_3",
    ]


def test_overdue_loans_count_as_checked_out(app, legacy_db, legacy_source, migration_settings):
    _seed_checked_out(legacy_db, biblios=1, copies_per_biblio=2)
    run_migration(migration_settings, db.session)
    Loan.query.filter_by(external_id="active_loan_1_1").update({"status": LoanStatus.OVERDUE})
    db.session.commit()

    report = ReconciliationVerifier(legacy_source, db.session).verify(["active_loans"])

    assert report.get("active_loans").matches


def test_count_difference_without_missing_rows_is_a_formula_mismatch(
    app, legacy_db, legacy_source, migration_settings
):
    _seed_checked_out(legacy_db, biblios=1, copies_per_biblio=3)
    run_migration(migration_settings, db.session)
    Loan.query.filter_by(external_id="active_loan_1_2").update({"status": LoanStatus.RETURNED})
    db.session.commit()

    active = ReconciliationVerifier(legacy_source, db.session).verify(["active_loans"]).get("active_loans")

    assert active.target_count == 2
    assert active.missing_samples == []
    assert active.diagnosis == "count_mismatch"


def test_subjects_are_reconciled_by_normalized_name(app, legacy_db, legacy_source, migration_settings):
    legacy_db.add_biblio(1, "One", topic1="  History ", fields=[("650", "a", "Maps")])
    legacy_db.add_biblio(2, "Two", fields=[("650", "a", "History")])
    run_migration(migration_settings, db.session)
    Subject.query.filter_by(name="Maps").delete(synchronize_session=False)
    db.session.commit()

    subjects = ReconciliationVerifier(legacy_source, db.session).verify(["subjects"]).get("subjects")

    assert subjects.source_count == 2
    assert subjects.target_count == 1
    assert subjects.missing_samples == ["Maps"]


def test_full_report_covers_every_kind(app, legacy_db, legacy_source, migration_settings):
    legacy_db.seed_catalog()
    run_migration(migration_settings, db.session, verify=False)

    report = ReconciliationVerifier(legacy_source, db.session).verify()

    assert [kind.kind for kind in report.kinds] == list(VERIFIED_KINDS)
    assert report.complete
    assert report.to_dict()["kinds"]["returned_loans"]["source_count"] == 2
    assert report.format_lines()[-1] == "Verification complete"


def test_empty_source_is_fully_verified():
    report = KindReport(kind="loans", source_count=0, target_count=0)

    assert report.percentage == 100.0
    assert report.diagnosis == "ok"
