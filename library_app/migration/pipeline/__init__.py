"""
Legacy migration pipeline: extraction, identity, status translation, subject
resolution, stage orchestration, failure isolation and reconciliation.
"""

from .context import MigrationContext, MigrationSettings
from .fields import ExtractedAttributes, TaggedField, extract_attributes, parse_float_safe, parse_int_safe
from .identity import (
    MissingExternalIdentifier,
    NaturalKeyConflict,
    UpsertResult,
    external_id_for,
    topic_external_id,
    upsert,
)
from .orchestrator import (
    MigrationOrchestrator,
    RunResult,
    StageResult,
    UnknownStageError,
    resolve_stage_names,
    run_migration,
)
from .run_log import RunLog
from .stages import STAGE_ORDER, MissingReferenceError, StageCounters
from .status import translate_copy_status, translate_loan_code, translate_loan_status
from .subjects import SubjectCache, SubjectResolver, normalize_subject
from .verify import KindReport, ReconciliationVerifier, VerificationReport

__all__ = [
    "ExtractedAttributes",
    "KindReport",
    "MigrationContext",
    "MigrationOrchestrator",
    "MigrationSettings",
    "MissingExternalIdentifier",
    "MissingReferenceError",
    "NaturalKeyConflict",
    "ReconciliationVerifier",
    "RunLog",
    "RunResult",
    "STAGE_ORDER",
    "StageCounters",
    "StageResult",
    "SubjectCache",
    "SubjectResolver",
    "TaggedField",
    "UnknownStageError",
    "UpsertResult",
    "VerificationReport",
    "extract_attributes",
    "external_id_for",
    "normalize_subject",
    "parse_float_safe",
    "parse_int_safe",
    "resolve_stage_names",
    "run_migration",
    "topic_external_id",
    "translate_copy_status",
    "translate_loan_code",
    "translate_loan_status",
    "upsert",
]
