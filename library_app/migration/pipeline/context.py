"""
Run-scoped state shared by the migration stages.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from library_app.migration.source import LegacySource
from library_app.models.migration.schema import MigrationRun

from .run_log import RunLog
from .status import utcnow
from .subjects import SubjectCache, SubjectResolver

DEFAULT_BATCH_SIZE = 500
DEFAULT_PASSWORD = "changeme123"
DEFAULT_CONNECT_TIMEOUT = 60
DEFAULT_PROGRESS_INTERVAL = 100
DEFAULT_SAMPLE_SIZE = 10


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class MigrationSettings:
    """Run configuration resolved from the Flask config."""

    source_url: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    default_password: str = DEFAULT_PASSWORD
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    sample_size: int = DEFAULT_SAMPLE_SIZE
    log_path: str | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> "MigrationSettings":
        log_path = config.get("MIGRATION_LOG_PATH")
        settings = cls(
            source_url=config.get("LEGACY_DATABASE_URL") or None,
            batch_size=_positive_int(config.get("MIGRATION_BATCH_SIZE"), DEFAULT_BATCH_SIZE),
            default_password=config.get("MIGRATION_DEFAULT_PASSWORD") or DEFAULT_PASSWORD,
            connect_timeout=_positive_int(config.get("MIGRATION_CONNECT_TIMEOUT"), DEFAULT_CONNECT_TIMEOUT),
            progress_interval=_positive_int(config.get("MIGRATION_PROGRESS_INTERVAL"), DEFAULT_PROGRESS_INTERVAL),
            sample_size=_positive_int(config.get("MIGRATION_SAMPLE_SIZE"), DEFAULT_SAMPLE_SIZE),
            log_path=os.fspath(log_path) if log_path else None,
        )
        cleaned = {key: value for key, value in overrides.items() if value is not None}
        if not cleaned:
            return settings
        return cls(**{**settings.__dict__, **cleaned})


@dataclass
class MigrationContext:
    """Everything a stage needs: both stores, the run log and per-run caches."""

    session: Session
    source: LegacySource
    run_log: RunLog
    settings: MigrationSettings = field(default_factory=MigrationSettings)
    subject_cache: SubjectCache = field(default_factory=SubjectCache)
    run: MigrationRun | None = None
    clock: Callable[[], datetime] = utcnow
    _ids: dict[tuple[str, str], int] = field(default_factory=dict, repr=False)
    _password_hash: str | None = field(default=None, repr=False)
    _resolver: SubjectResolver | None = field(default=None, repr=False)

    @property
    def batch_size(self) -> int:
        return self.settings.batch_size

    def now(self) -> datetime:
        return self.clock()

    @property
    def subjects(self) -> SubjectResolver:
        if self._resolver is None:
            self._resolver = SubjectResolver(self.session, self.subject_cache)
        return self._resolver

    @property
    def default_password_hash(self) -> str:
        # Hashed once per run; migrated accounts share it until rotated.
        if self._password_hash is None:
            self._password_hash = generate_password_hash(self.settings.default_password)
        return self._password_hash

    def lookup_id(self, model: type, external_id: str | None) -> int | None:
        """Primary key of the row owning ``external_id``; hits are memoized."""
        if not external_id:
            return None
        key = (model.__name__, external_id)
        cached = self._ids.get(key)
        if cached is not None:
            return cached
        entity_id = self.session.scalar(select(model.id).where(model.external_id == external_id))
        if entity_id is not None:
            self._ids[key] = entity_id
        return entity_id

    def forget_lookups(self) -> None:
        self._ids.clear()
