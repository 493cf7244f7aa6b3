"""
SQLAlchemy models recording legacy migration runs.

Each invocation of the migration engine writes one ``MigrationRun`` row and
one ``MigrationIssue`` row per failed record or stage, so an operator can
audit a run without replaying it.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class MigrationRunStatus(str, enum.Enum):
    """Lifecycle states for a migration run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class MigrationRun(BaseModel):
    """Metadata describing a single migration execution."""

    __tablename__ = "migration_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(255), nullable=False, default="legacy")
    status: Mapped[MigrationRunStatus] = mapped_column(
        Enum(MigrationRunStatus, name="migration_run_status_enum"),
        nullable=False,
        default=MigrationRunStatus.PENDING,
        index=True,
    )
    stages_json: Mapped[list | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Stage names requested for the run, in execution order.",
    )
    batch_size: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    verification_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    issues = relationship(
        "MigrationIssue",
        back_populates="migration_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<MigrationRun {self.id} {self.status}>"


class MigrationIssueSeverity(str, enum.Enum):
    """Granularity of a recorded failure."""

    ROW = "row"
    STAGE = "stage"
    RUN = "run"


class MigrationIssue(BaseModel):
    """A failure isolated during a migration run."""

    __tablename__ = "migration_issues"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("migration_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage: Mapped[str | None] = mapped_column(db.String(50), nullable=True, index=True)
    severity: Mapped[MigrationIssueSeverity] = mapped_column(
        Enum(MigrationIssueSeverity, name="migration_issue_severity_enum"),
        nullable=False,
        default=MigrationIssueSeverity.ROW,
        index=True,
    )
    record_key: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    error_type: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    message: Mapped[str] = mapped_column(db.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    migration_run = relationship("MigrationRun", back_populates="issues")

    __table_args__ = (Index("idx_migration_issues_run_stage", "run_id", "stage"),)
