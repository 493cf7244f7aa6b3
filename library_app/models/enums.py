# library_app/models/enums.py

from enum import Enum


class CopyStatus(str, Enum):
    """Physical availability of a single copy."""

    AVAILABLE = "available"
    LOANED = "loaned"
    RESERVED = "reserved"
    DAMAGED = "damaged"
    LOST = "lost"
    OTHER = "other"


class LoanStatus(str, Enum):
    """
    Loan lifecycle.

    ``requested -> active -> returned``; ``overdue`` is an ``active`` loan whose
    due date has passed and ``rejected`` closes a declined request.
    """

    REQUESTED = "requested"
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"
    REJECTED = "rejected"


OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)
