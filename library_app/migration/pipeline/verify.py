"""
Post-run reconciliation between the legacy source and the target store.

For every entity kind the verifier counts the source rows the matching stage
would import and the migrated target rows, then reports the percentage. When
the counts diverge it derives the external ids of source rows page by page
and checks which are absent from the target, so a real gap ("missing rows")
can be told apart from a counting difference ("count mismatch").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from library_app.migration.metrics import record_verification
from library_app.migration.records import BiblioRecord, SourceRecordError, StatusHistoryRecord, as_text
from library_app.migration.source import LegacySource
from library_app.models import (
    OPEN_LOAN_STATUSES,
    Category,
    Collection,
    Copy,
    Loan,
    LoanStatus,
    Material,
    MaterialType,
    Subject,
    User,
)

from .fields import TaggedField, extract_attributes
from .identity import external_id_for
from .stages import (
    BIBLIO_COLUMNS,
    CDD_FILTER,
    DEFAULT_CATEGORIES,
    FIELD_COLUMNS,
    HISTORY_FILTER,
    SNAPSHOT_FILTER,
    history_loan_external_id,
    slugify,
)
from .status import CHECKED_OUT_CODES, LOAN_RECORD_CODES
from .subjects import normalize_subject

VERIFIED_KINDS = (
    "users",
    "categories",
    "collections",
    "material_types",
    "subjects",
    "materials",
    "copies",
    "loans",
    "active_loans",
    "returned_loans",
)


@dataclass
class KindReport:
    kind: str
    source_count: int
    target_count: int
    missing_samples: list[str] = field(default_factory=list)
    sampled: bool = False

    @property
    def percentage(self) -> float:
        if self.source_count == 0:
            return 100.0
        return round(self.target_count / self.source_count * 100, 1)

    @property
    def matches(self) -> bool:
        return self.source_count == self.target_count

    @property
    def diagnosis(self) -> str:
        if self.matches:
            return "ok"
        if self.missing_samples:
            return "missing_rows"
        return "count_mismatch"

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "percentage": self.percentage,
            "diagnosis": self.diagnosis,
            "missing_samples": list(self.missing_samples),
        }

    def format_line(self) -> str:
        return (
            f"{self.kind:<15} source={self.source_count:>8} target={self.target_count:>8} "
            f"{self.percentage:6.1f}%  {self.diagnosis}"
        )


@dataclass
class VerificationReport:
    kinds: list[KindReport] = field(default_factory=list)

    def get(self, kind: str) -> KindReport:
        for report in self.kinds:
            if report.kind == kind:
                return report
        raise KeyError(kind)

    @property
    def complete(self) -> bool:
        return all(report.matches for report in self.kinds)

    def to_dict(self) -> dict[str, object]:
        return {
            "complete": self.complete,
            "kinds": {report.kind: report.to_dict() for report in self.kinds},
        }

    def format_lines(self) -> list[str]:
        lines = ["Verification report"]
        for report in self.kinds:
            lines.append(report.format_line())
            if report.missing_samples:
                lines.append(f"  missing in target: {', '.join(report.missing_samples)}")
            elif not report.matches:
                lines.append("  all sampled source rows exist in target; counts differ by formula")
        lines.append("Verification " + ("complete" if self.complete else "INCOMPLETE"))
        return lines


@dataclass(frozen=True)
class _KindCheck:
    kind: str
    source_count: Callable[[], int]
    target_count: Callable[[], int]
    source_keys: Callable[[], Iterator[list[str]]]
    existing: Callable[[list[str]], set[str]]


def _prefix_filter(model: type, *prefixes: str):
    return or_(*(model.external_id.startswith(prefix, autoescape=True) for prefix in prefixes))


class ReconciliationVerifier:
    """Compare legacy and target row counts per entity kind."""

    def __init__(
        self,
        source: LegacySource,
        session: Session,
        *,
        sample_size: int = 10,
        batch_size: int = 500,
    ):
        self.source = source
        self.session = session
        self.sample_size = max(0, sample_size)
        self.batch_size = max(1, batch_size)
        self._subject_names: set[str] | None = None

    def verify(self, kinds: Sequence[str] | None = None) -> VerificationReport:
        checks = self._checks()
        selected = kinds or VERIFIED_KINDS
        report = VerificationReport()
        for kind in selected:
            check = checks[kind]
            kind_report = KindReport(
                kind=kind,
                source_count=check.source_count(),
                target_count=check.target_count(),
            )
            if not kind_report.matches and self.sample_size:
                kind_report.missing_samples = self._sample_missing(check)
                kind_report.sampled = True
            record_verification(kind, kind_report.percentage)
            report.kinds.append(kind_report)
        return report

    def _sample_missing(self, check: _KindCheck) -> list[str]:
        missing: list[str] = []
        for keys in check.source_keys():
            if not keys:
                continue
            present = check.existing(keys)
            for key in keys:
                if key not in present and key not in missing:
                    missing.append(key)
                    if len(missing) >= self.sample_size:
                        return missing
        return missing

    # Target helpers

    def _count(self, model: type, *criteria) -> int:
        stmt = select(func.count()).select_from(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return int(self.session.scalar(stmt) or 0)

    def _existing_external_ids(self, model: type) -> Callable[[list[str]], set[str]]:
        def _existing(keys: list[str]) -> set[str]:
            return set(self.session.scalars(select(model.external_id).where(model.external_id.in_(keys))))

        return _existing

    # Source helpers

    def _pages(self, table, columns, order_by, **kwargs):
        return self.source.iter_pages(table, columns, order_by, self.batch_size, **kwargs)

    def _keyed_pages(self, table, key_column, prefix, **kwargs) -> Iterator[list[str]]:
        for page in self._pages(table, (key_column,), (key_column,), **kwargs):
            yield [f"{prefix}_{as_text(row.get(key_column))}" for row in page]

    def _history_keys(self) -> Iterator[list[str]]:
        for page in self._pages(
            "biblio_status_hist",
            ("bibid", "copyid", "status_cd", "status_begin_dt"),
            ("bibid", "copyid", "status_begin_dt", "status_cd"),
            where=HISTORY_FILTER,
            params={"codes": LOAN_RECORD_CODES},
        ):
            keys = []
            for row in page:
                try:
                    record = StatusHistoryRecord.from_row(row)
                    keys.append(history_loan_external_id(record))
                except (SourceRecordError, ValueError):
                    keys.append(f"biblio_status_hist:{as_text(row.get('bibid'))}:{as_text(row.get('copyid'))}")
            yield keys

    def _snapshot_keys(self) -> Iterator[list[str]]:
        for page in self._pages(
            "biblio_copy",
            ("bibid", "copyid"),
            ("bibid", "copyid"),
            where=SNAPSHOT_FILTER,
            params={"codes": CHECKED_OUT_CODES},
        ):
            yield [external_id_for("active_loan", row.get("bibid"), row.get("copyid")) for row in page]

    def _copy_keys(self) -> Iterator[list[str]]:
        for page in self._pages("biblio_copy", ("bibid", "copyid"), ("bibid", "copyid")):
            yield [external_id_for("copy", row.get("bibid"), row.get("copyid")) for row in page]

    def _category_keys(self) -> Iterator[list[str]]:
        yield [external_id_for("default", slugify(name)) for name, _ in DEFAULT_CATEGORIES]
        yield from self._keyed_pages("cdd", "cdd_Bid", "cdd", where=CDD_FILTER)

    def _user_keys(self) -> Iterator[list[str]]:
        yield from self._keyed_pages("staff", "userid", "staff")
        yield from self._keyed_pages("member", "mbrid", "member")

    def _loan_keys(self) -> Iterator[list[str]]:
        yield from self._history_keys()
        yield from self._snapshot_keys()

    def _source_subject_names(self) -> set[str]:
        if self._subject_names is not None:
            return self._subject_names
        names: set[str] = set()
        for page in self._pages("biblio", BIBLIO_COLUMNS, ("bibid",)):
            bibids = [row.get("bibid") for row in page if row.get("bibid") is not None]
            fields: dict[object, list[TaggedField]] = {}
            if bibids:
                rows = self.source.fetch_all(
                    f"SELECT {', '.join(FIELD_COLUMNS)} FROM biblio_field WHERE bibid IN :bibids",
                    {"bibids": bibids},
                )
                for row in rows:
                    tagged = TaggedField.from_row(row)
                    fields.setdefault(tagged.bibid, []).append(tagged)
            for row in page:
                try:
                    biblio = BiblioRecord.from_row(row)
                except SourceRecordError:
                    continue
                attributes = extract_attributes(fields.get(row.get("bibid"), ()), biblio)
                for term in attributes.subjects:
                    name = normalize_subject(term)
                    if name:
                        names.add(name)
        self._subject_names = names
        return names

    def _subject_name_pages(self) -> Iterator[list[str]]:
        names = sorted(self._source_subject_names())
        for start in range(0, len(names), self.batch_size):
            yield names[start : start + self.batch_size]

    def _existing_subject_names(self, names: list[str]) -> set[str]:
        return set(self.session.scalars(select(Subject.name).where(Subject.name.in_(names))))

    def _checks(self) -> dict[str, _KindCheck]:
        source = self.source
        history_params = {"codes": LOAN_RECORD_CODES}
        snapshot_params = {"codes": CHECKED_OUT_CODES}

        def history_count() -> int:
            return source.count("biblio_status_hist", HISTORY_FILTER, history_params)

        def snapshot_count() -> int:
            return source.count("biblio_copy", SNAPSHOT_FILTER, snapshot_params)

        return {
            "users": _KindCheck(
                "users",
                lambda: source.count("staff") + source.count("member"),
                lambda: self._count(User, _prefix_filter(User, "staff_", "member_")),
                self._user_keys,
                self._existing_external_ids(User),
            ),
            "categories": _KindCheck(
                "categories",
                lambda: len(DEFAULT_CATEGORIES) + source.count("cdd", CDD_FILTER),
                lambda: self._count(Category, _prefix_filter(Category, "default_", "cdd_")),
                self._category_keys,
                self._existing_external_ids(Category),
            ),
            "collections": _KindCheck(
                "collections",
                lambda: source.count("collection_dm"),
                lambda: self._count(Collection, _prefix_filter(Collection, "collection_")),
                lambda: self._keyed_pages("collection_dm", "code", "collection"),
                self._existing_external_ids(Collection),
            ),
            "material_types": _KindCheck(
                "material_types",
                lambda: source.count("material_type_dm"),
                lambda: self._count(MaterialType, _prefix_filter(MaterialType, "material_type_")),
                lambda: self._keyed_pages("material_type_dm", "code", "material_type"),
                self._existing_external_ids(MaterialType),
            ),
            "subjects": _KindCheck(
                "subjects",
                lambda: len(self._source_subject_names()),
                lambda: self._count(Subject),
                self._subject_name_pages,
                self._existing_subject_names,
            ),
            "materials": _KindCheck(
                "materials",
                lambda: source.count("biblio"),
                lambda: self._count(Material, _prefix_filter(Material, "material_")),
                lambda: self._keyed_pages("biblio", "bibid", "material"),
                self._existing_external_ids(Material),
            ),
            "copies": _KindCheck(
                "copies",
                lambda: source.count("biblio_copy"),
                lambda: self._count(Copy, _prefix_filter(Copy, "copy_")),
                self._copy_keys,
                self._existing_external_ids(Copy),
            ),
            "loans": _KindCheck(
                "loans",
                lambda: history_count() + snapshot_count(),
                lambda: self._count(Loan, _prefix_filter(Loan, "loan_", "active_loan_")),
                self._loan_keys,
                self._existing_external_ids(Loan),
            ),
            "active_loans": _KindCheck(
                "active_loans",
                snapshot_count,
                lambda: self._count(Loan, Loan.status.in_(OPEN_LOAN_STATUSES)),
                self._snapshot_keys,
                self._existing_external_ids(Loan),
            ),
            "returned_loans": _KindCheck(
                "returned_loans",
                history_count,
                lambda: self._count(
                    Loan,
                    _prefix_filter(Loan, "loan_"),
                    Loan.status == LoanStatus.RETURNED,
                ),
                self._history_keys,
                self._existing_external_ids(Loan),
            ),
        }
