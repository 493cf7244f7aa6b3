from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from library_app.migration.pipeline.status import (
    CHECKED_OUT_CODES,
    LOAN_RECORD_CODES,
    is_checked_out,
    is_loan_record,
    translate_copy_status,
    translate_loan_code,
    translate_loan_status,
)
from library_app.models import CopyStatus, LoanStatus


@pytest.mark.parametrize(
    "code, expected",
    [
        ("AVL", CopyStatus.AVAILABLE),
        ("in", CopyStatus.AVAILABLE),
        (" crt ", CopyStatus.LOANED),
        ("LOA", CopyStatus.LOANED),
        ("HLD", CopyStatus.RESERVED),
        ("MND", CopyStatus.DAMAGED),
        ("DAM", CopyStatus.DAMAGED),
        ("LST", CopyStatus.LOST),
        ("ORD", CopyStatus.OTHER),
        ("XYZ", CopyStatus.AVAILABLE),
        (None, CopyStatus.AVAILABLE),
    ],
)
def test_copy_status_translation(code, expected):
    assert translate_copy_status(code) is expected


@pytest.mark.parametrize(
    "code, expected",
    [
        ("CRT", LoanStatus.ACTIVE),
        ("loa", LoanStatus.ACTIVE),
        ("OUT", LoanStatus.RETURNED),
        ("REQ", LoanStatus.REQUESTED),
        ("HLD", LoanStatus.REQUESTED),
        ("REJ", LoanStatus.REJECTED),
        ("???", LoanStatus.RETURNED),
        ("", LoanStatus.RETURNED),
    ],
)
def test_loan_code_translation(code, expected):
    assert translate_loan_code(code) is expected


def test_copy_and_loan_tables_are_independent():
    # HLD is a reservation for a copy but a pending request for a loan.
    assert translate_copy_status("HLD") is CopyStatus.RESERVED
    assert translate_loan_code("HLD") is LoanStatus.REQUESTED


def test_active_loan_past_due_is_overdue():
    now = datetime(2024, 6, 2, 12, 0, tzinfo=timezone.utc)
    yesterday = now - timedelta(days=1)

    assert translate_loan_status("CRT", yesterday, now=now) is LoanStatus.OVERDUE
    assert translate_loan_status("CRT", yesterday, now=yesterday - timedelta(hours=1)) is LoanStatus.ACTIVE


def test_due_date_equal_to_now_is_not_overdue():
    now = datetime(2024, 6, 2, 12, 0, tzinfo=timezone.utc)
    assert translate_loan_status("CRT", now, now=now) is LoanStatus.ACTIVE


def test_naive_due_dates_are_read_as_utc():
    now = datetime(2024, 6, 2, 12, 0, tzinfo=timezone.utc)
    assert translate_loan_status("CRT", datetime(2024, 6, 2, 11, 59), now=now) is LoanStatus.OVERDUE


def test_missing_due_date_keeps_loan_active():
    assert translate_loan_status("CRT", None) is LoanStatus.ACTIVE


def test_only_active_codes_can_become_overdue():
    long_ago = datetime(2000, 1, 1, tzinfo=timezone.utc)
    assert translate_loan_status("OUT", long_ago) is LoanStatus.RETURNED
    assert translate_loan_status("REQ", long_ago) is LoanStatus.REQUESTED


def test_clock_is_read_on_every_call():
    due = datetime(2024, 1, 10, tzinfo=timezone.utc)
    readings = iter(
        [
            datetime(2024, 1, 9, tzinfo=timezone.utc),
            datetime(2024, 1, 11, tzinfo=timezone.utc),
        ]
    )

    def clock():
        return next(readings)

    assert translate_loan_status("CRT", due, clock=clock) is LoanStatus.ACTIVE
    assert translate_loan_status("CRT", due, clock=clock) is LoanStatus.OVERDUE


def test_code_sets_used_for_source_filters():
    assert set(CHECKED_OUT_CODES) == {"CRT", "LOA"}
    assert set(LOAN_RECORD_CODES) == {"CRT", "LOA", "OUT"}
    assert is_checked_out(" crt")
    assert not is_checked_out("OUT")
    assert is_loan_record("out")
    assert not is_loan_record("IN")
