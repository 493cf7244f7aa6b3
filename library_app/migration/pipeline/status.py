"""
Translation of legacy status codes into target copy and loan states.

Copy condition codes and loan status codes are separate vocabularies and
are kept in separate tables even where the legacy codes overlap.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Mapping

from library_app.models.enums import CopyStatus, LoanStatus

COPY_STATUS_CODES: Mapping[str, CopyStatus] = {
    "AVL": CopyStatus.AVAILABLE,
    "IN": CopyStatus.AVAILABLE,
    "SHL": CopyStatus.AVAILABLE,
    "CRT": CopyStatus.LOANED,
    "LOA": CopyStatus.LOANED,
    "RES": CopyStatus.RESERVED,
    "HLD": CopyStatus.RESERVED,
    "DAM": CopyStatus.DAMAGED,
    "MND": CopyStatus.DAMAGED,
    "LST": CopyStatus.LOST,
    "OTH": CopyStatus.OTHER,
    "ORD": CopyStatus.OTHER,
    "DIS": CopyStatus.OTHER,
}
DEFAULT_COPY_STATUS = CopyStatus.AVAILABLE

LOAN_STATUS_CODES: Mapping[str, LoanStatus] = {
    "CRT": LoanStatus.ACTIVE,
    "LOA": LoanStatus.ACTIVE,
    "OUT": LoanStatus.RETURNED,
    "REQ": LoanStatus.REQUESTED,
    "HLD": LoanStatus.REQUESTED,
    "REJ": LoanStatus.REJECTED,
}
DEFAULT_LOAN_STATUS = LoanStatus.RETURNED

# Codes whose rows describe a loan that was, or still is, checked out.
CHECKED_OUT_CODES: tuple[str, ...] = tuple(
    sorted(code for code, status in LOAN_STATUS_CODES.items() if status is LoanStatus.ACTIVE)
)
LOAN_RECORD_CODES: tuple[str, ...] = tuple(
    sorted(
        code
        for code, status in LOAN_STATUS_CODES.items()
        if status in (LoanStatus.ACTIVE, LoanStatus.RETURNED)
    )
)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def translate_copy_status(code: str | None) -> CopyStatus:
    return COPY_STATUS_CODES.get(normalize_code(code), DEFAULT_COPY_STATUS)


def translate_loan_code(code: str | None) -> LoanStatus:
    """Map a loan status code without applying the overdue rule."""
    return LOAN_STATUS_CODES.get(normalize_code(code), DEFAULT_LOAN_STATUS)


def is_overdue(due_date: datetime | None, now: datetime) -> bool:
    if due_date is None:
        return False
    return _as_utc(due_date) < _as_utc(now)


def translate_loan_status(
    code: str | None,
    due_date: datetime | None = None,
    *,
    now: datetime | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> LoanStatus:
    """
    Map a loan status code, deriving ``overdue`` for active loans.

    ``now`` defaults to a fresh reading of ``clock`` on every call, so the
    same source row moves from active to overdue on a later run.
    """

    status = translate_loan_code(code)
    if status is LoanStatus.ACTIVE:
        reference = now if now is not None else clock()
        if is_overdue(due_date, reference):
            return LoanStatus.OVERDUE
    return status


def is_checked_out(code: str | None) -> bool:
    return translate_loan_code(code) is LoanStatus.ACTIVE


def is_loan_record(code: str | None) -> bool:
    """True for history codes that the migration turns into loans."""
    return normalize_code(code) in LOAN_RECORD_CODES
