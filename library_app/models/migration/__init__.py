from .schema import (
    MigrationIssue,
    MigrationIssueSeverity,
    MigrationRun,
    MigrationRunStatus,
)

__all__ = [
    "MigrationIssue",
    "MigrationIssueSeverity",
    "MigrationRun",
    "MigrationRunStatus",
]
