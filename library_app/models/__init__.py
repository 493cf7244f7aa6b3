# library_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .catalog import Category, Collection, Copy, Material, MaterialSubject, MaterialType, Subject
from .enums import OPEN_LOAN_STATUSES, CopyStatus, LoanStatus
from .library_info import LibraryInfo
from .loan import GUEST_BORROWER_NAME, Loan
from .migration import MigrationIssue, MigrationIssueSeverity, MigrationRun, MigrationRunStatus
from .user import Role, User

__all__ = [
    "db",
    "BaseModel",
    "Role",
    "User",
    # Catalogue models
    "Category",
    "Collection",
    "MaterialType",
    "Subject",
    "Material",
    "MaterialSubject",
    "Copy",
    "CopyStatus",
    # Circulation
    "Loan",
    "LoanStatus",
    "OPEN_LOAN_STATUSES",
    "GUEST_BORROWER_NAME",
    "LibraryInfo",
    # Migration bookkeeping
    "MigrationRun",
    "MigrationRunStatus",
    "MigrationIssue",
    "MigrationIssueSeverity",
]
