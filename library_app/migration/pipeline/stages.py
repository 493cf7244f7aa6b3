"""
Stage loaders for the legacy migration.

Each stage pages through its legacy table(s) and reconciles every row into
the target schema through :func:`upsert`, one savepoint per row.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, func, select, update

from library_app.migration.records import (
    BiblioRecord,
    CategoryRecord,
    CopyRecord,
    LookupRecord,
    MemberRecord,
    SettingsRecord,
    SourceRecordError,
    StaffRecord,
    StatusHistoryRecord,
    as_int,
    as_text,
)
from library_app.models import (
    GUEST_BORROWER_NAME,
    OPEN_LOAN_STATUSES,
    Category,
    Collection,
    Copy,
    LibraryInfo,
    Loan,
    LoanStatus,
    Material,
    MaterialType,
    Role,
    User,
)
from library_app.models.library_info import DEFAULT_LIBRARY_EMAIL, DEFAULT_LIBRARY_NAME

from .context import MigrationContext
from .fields import TaggedField, extract_attributes
from .identity import epoch_millis, external_id_for, upsert
from .status import (
    CHECKED_OUT_CODES,
    LOAN_RECORD_CODES,
    normalize_code,
    translate_copy_status,
    translate_loan_code,
    translate_loan_status,
)

STAFF_COLUMNS = ("userid", "username", "first_name", "last_name", "suspended_flg")
MEMBER_COLUMNS = (
    "mbrid",
    "barcode_nmbr",
    "first_name",
    "last_name",
    "email",
    "home_phone",
    "work_phone",
    "cel",
    "address",
    "is_active",
)
CDD_COLUMNS = ("cdd_Bid", "cdd_Numero", "cdd_Descripcion")
CDD_FILTER = "cdd_Descripcion IS NOT NULL AND TRIM(cdd_Descripcion) <> ''"
COLLECTION_COLUMNS = ("code", "description", "days_due_back")
MATERIAL_TYPE_COLUMNS = ("code", "description")
BIBLIO_COLUMNS = (
    "bibid",
    "create_dt",
    "material_cd",
    "collection_cd",
    "call_nmbr1",
    "call_nmbr2",
    "call_nmbr3",
    "title",
    "title_remainder",
    "responsibility_stmt",
    "author",
    "topic1",
    "topic2",
    "topic3",
    "topic4",
    "topic5",
    "opac_flg",
)
FIELD_COLUMNS = ("bibid", "fieldid", "tag", "subfield_cd", "field_data")
COPY_COLUMNS = (
    "bibid",
    "copyid",
    "create_dt",
    "copy_desc",
    "barcode_nmbr",
    "status_cd",
    "status_begin_dt",
    "due_back_dt",
    "mbrid",
    "renewal_count",
)
HISTORY_COLUMNS = ("bibid", "copyid", "status_cd", "status_begin_dt", "due_back_dt", "mbrid", "renewal_count")
HISTORY_FILTER = "UPPER(TRIM(status_cd)) IN :codes"
SNAPSHOT_FILTER = "UPPER(TRIM(status_cd)) IN :codes"
SETTINGS_COLUMNS = ("library_name", "library_hours", "library_aders", "library_phone", "library_url", "opac_url")

DEFAULT_ROLES = (
    ("librarian", "Librarian", "Library staff account"),
    ("member", "Member", "Registered library patron"),
    ("guest", "Guest", "Borrower without a registered account"),
)
DEFAULT_CATEGORIES = (
    ("Fiction", "Novels, short stories and other imaginative works"),
    ("Non-fiction", "Factual works"),
    ("Reference", "Dictionaries, encyclopedias and other consultation works"),
    ("Academic", "Textbooks and scholarly works"),
    ("Children", "Works for young readers"),
    ("Uncategorized", "Materials without a recognised classification"),
)
UNCATEGORIZED_EXTERNAL_ID = "default_uncategorized"
LIBRARY_INFO_EXTERNAL_ID = "settings_default"
UNTITLED = "Untitled"
UNKNOWN_AUTHOR = "Unknown"
LOAN_NOTES_TEMPLATE = "Imported from legacy system. Renewals: {renewals}"

_DIGITS = re.compile(r"\d+")


class MissingReferenceError(LookupError):
    """Raised when a row points at a target entity that was never migrated."""

    def __init__(self, kind: str, external_id: str) -> None:
        super().__init__(f"Referenced {kind} '{external_id}' does not exist in the target.")
        self.kind = kind
        self.external_id = external_id


@dataclass
class StageCounters:
    processed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    details: dict[str, int] = field(default_factory=dict)

    def record(self, action: str) -> None:
        if action == "created":
            self.created += 1
        elif action == "updated":
            self.updated += 1
        else:
            self.unchanged += 1

    def bump(self, key: str, amount: int = 1) -> None:
        self.details[key] = self.details.get(key, 0) + amount

    def to_dict(self) -> dict[str, int]:
        payload = {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }
        payload.update(sorted(self.details.items()))
        return payload


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")


def history_loan_external_id(record: StatusHistoryRecord) -> str:
    """``loan_<bibid>_<copyid>_<epoch ms>_<code>``; the code separates status changes stamped in the same instant."""
    return external_id_for(
        "loan", record.bibid, record.copyid, epoch_millis(record.status_begin), normalize_code(record.status_code)
    )


def dewey_code(value: Any) -> str | None:
    """Three-digit class of a Dewey or UDC number: ``"823.914"`` -> ``"823"``, ``"82"`` -> ``"820"``."""
    text = as_text(value)
    if text is None:
        return None
    match = _DIGITS.search(text)
    if match is None:
        return None
    return match.group()[:3].ljust(3, "0")


def normalize_email(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def _fit(value: str | None, length: int) -> str | None:
    if value is None:
        return None
    return value[:length]


class Stage:
    """
    Base stage: page through source items and load each under isolation.

    Subclasses provide :meth:`pages`, :meth:`record_key` and :meth:`load`.
    ``load`` returns ``created``, ``updated`` or ``unchanged``.
    """

    name = ""
    description = ""

    def __init__(self, context: MigrationContext):
        self.context = context
        self.session = context.session
        self.source = context.source
        self.counters = StageCounters()

    def pages(self) -> Iterator[Sequence[Any]]:
        raise NotImplementedError

    def record_key(self, item: Any) -> str:
        raise NotImplementedError

    def load(self, item: Any) -> str:
        raise NotImplementedError

    def before_page(self, page: Sequence[Any]) -> None:
        """Prefetch child rows for a page."""

    def run(self) -> StageCounters:
        run_log = self.context.run_log
        cache = self.context.subject_cache
        for page in self.pages():
            self.before_page(page)
            for item in page:
                record_key = self.record_key(item)
                action = "unchanged"
                with run_log.isolate_row(self.name, record_key) as outcome:
                    action = self.load(item)
                self.counters.processed += 1
                if outcome.failed:
                    self.counters.failed += 1
                    cache.discard_pending()
                else:
                    self.counters.record(action)
                run_log.progress(self.name, self.counters.processed)
            self.session.commit()
            run_log.issues_saved()
            cache.commit_pending()
        run_log.progress(self.name, self.counters.processed, force=True)
        return self.counters

    def _source_pages(self, table, columns, order_by, **kwargs) -> Iterator[list[Mapping[str, Any]]]:
        return self.source.iter_pages(table, columns, order_by, self.context.batch_size, **kwargs)


class RolesStage(Stage):
    name = "roles"
    description = "Seed the librarian, member and guest roles"

    def pages(self):
        yield list(DEFAULT_ROLES)

    def record_key(self, item):
        return external_id_for("role", item[0])

    def load(self, item):
        name, display_name, description = item
        result = upsert(
            self.session,
            Role,
            external_id_for("role", name),
            {"name": name, "display_name": display_name, "description": description},
            natural_key={"name": name},
        )
        return result.action


class UsersStage(Stage):
    name = "users"
    description = "Staff become librarians, members become patrons"

    def pages(self):
        for page in self._source_pages("staff", STAFF_COLUMNS, ("userid",)):
            yield [("staff", row) for row in page]
        for page in self._source_pages("member", MEMBER_COLUMNS, ("mbrid",)):
            yield [("member", row) for row in page]

    def record_key(self, item):
        kind, row = item
        key_column = "userid" if kind == "staff" else "mbrid"
        return f"{kind}_{as_text(row.get(key_column)) or '?'}"

    def load(self, item):
        kind, row = item
        if kind == "staff":
            return self._load_staff(StaffRecord.from_row(row))
        return self._load_member(MemberRecord.from_row(row))

    def _role_id(self, name: str) -> int:
        external_id = external_id_for("role", name)
        role_id = self.context.lookup_id(Role, external_id)
        if role_id is None:
            raise MissingReferenceError("role", external_id)
        return role_id

    def _resolve_email(self, candidate: str | None, fallback: str, external_id: str) -> str:
        email = normalize_email(candidate)
        if email is None:
            return fallback
        owner = self.session.execute(select(User.id, User.external_id).where(User.email == email)).first()
        if owner is not None and owner.external_id != external_id:
            self.counters.bump("email_fallbacks")
            return fallback
        return email

    def _upsert_user(self, external_id: str, values: dict[str, Any]) -> str:
        result = upsert(
            self.session,
            User,
            external_id,
            values,
            create_values={"password_hash": self.context.default_password_hash},
        )
        return result.action

    def _load_staff(self, record: StaffRecord) -> str:
        external_id = external_id_for("staff", record.userid)
        candidate = f"{record.username}@library.org" if record.username else None
        values = {
            "email": self._resolve_email(candidate, f"staff{record.userid}@library.org", external_id),
            "first_name": _fit(record.first_name or record.username, 100),
            "last_name": _fit(record.last_name, 100),
            "is_active": not record.suspended,
            "role_id": self._role_id("librarian"),
        }
        return self._upsert_user(external_id, values)

    def _load_member(self, record: MemberRecord) -> str:
        external_id = external_id_for("member", record.mbrid)
        values = {
            "email": self._resolve_email(record.email, f"member{record.mbrid}@example.com", external_id),
            "first_name": _fit(record.first_name, 100),
            "last_name": _fit(record.last_name, 100),
            "phone": _fit(record.phone, 50),
            "address": record.address,
            "identity_card": _fit(record.barcode, 100),
            "is_active": record.is_active,
            "role_id": self._role_id("member"),
        }
        return self._upsert_user(external_id, values)


class CategoriesStage(Stage):
    name = "categories"
    description = "House default categories plus the Dewey classes of the cdd table"

    def pages(self):
        yield [("default", entry) for entry in DEFAULT_CATEGORIES]
        for page in self._source_pages("cdd", CDD_COLUMNS, ("cdd_Bid",), where=CDD_FILTER):
            yield [("cdd", row) for row in page]

    def record_key(self, item):
        kind, payload = item
        if kind == "default":
            return external_id_for("default", slugify(payload[0]))
        return f"cdd_{as_text(payload.get('cdd_Bid')) or '?'}"

    def load(self, item):
        kind, payload = item
        if kind == "default":
            name, description = payload
            result = upsert(
                self.session,
                Category,
                external_id_for("default", slugify(name)),
                {"name": name, "description": description},
                natural_key={"name": name},
            )
            return result.action

        record = CategoryRecord.from_row(payload)
        external_id = external_id_for("cdd", record.cdd_id)
        name = _fit(record.description, 200)
        owner = self.session.scalars(select(Category).where(Category.name == name)).first()
        if owner is not None and owner.external_id not in (None, external_id):
            # Name taken by another category; keep both distinguishable.
            name = _fit(f"{record.description} ({record.number or record.cdd_id})", 200)
            self.counters.bump("renamed")
        description = f"CDD {record.number}: {record.description}" if record.number else record.description
        result = upsert(
            self.session,
            Category,
            external_id,
            {"name": name, "code": dewey_code(record.number), "description": description},
            natural_key={"name": name},
        )
        return result.action


class CollectionsStage(Stage):
    name = "collections"
    description = "Shelving collections and their loan periods"

    def pages(self):
        return self._source_pages("collection_dm", COLLECTION_COLUMNS, ("code",))

    def record_key(self, item):
        return f"collection_{as_text(item.get('code')) or '?'}"

    def load(self, item):
        record = LookupRecord.from_row(item, kind="collection_dm")
        description = None
        if record.days_due_back is not None:
            description = f"Loan period: {record.days_due_back} days"
        result = upsert(
            self.session,
            Collection,
            external_id_for("collection", record.code),
            {
                "code": record.code,
                "name": _fit(record.description or record.code, 200),
                "description": description,
                "days_due_back": record.days_due_back,
            },
        )
        return result.action


class MaterialTypesStage(Stage):
    name = "material_types"
    description = "Material formats"

    def pages(self):
        return self._source_pages("material_type_dm", MATERIAL_TYPE_COLUMNS, ("code",))

    def record_key(self, item):
        return f"material_type_{as_text(item.get('code')) or '?'}"

    def load(self, item):
        record = LookupRecord.from_row(item, kind="material_type_dm")
        result = upsert(
            self.session,
            MaterialType,
            external_id_for("material_type", record.code),
            {
                "code": record.code,
                "name": _fit(record.description or record.code, 200),
                "description": record.description,
            },
        )
        return result.action


class _BiblioStage(Stage):
    """Shared paging over ``biblio`` with the tagged fields of each page."""

    def __init__(self, context: MigrationContext):
        super().__init__(context)
        self._fields: dict[int, list[TaggedField]] = {}

    def pages(self):
        return self._source_pages("biblio", BIBLIO_COLUMNS, ("bibid",))

    def record_key(self, item):
        return f"material_{as_text(item.get('bibid')) or '?'}"

    @staticmethod
    def _page_bibids(page: Iterable[Mapping[str, Any]]) -> list[int]:
        return [bibid for bibid in (as_int(row.get("bibid")) for row in page) if bibid is not None]

    def before_page(self, page):
        bibids = self._page_bibids(page)
        self._fields = defaultdict(list)
        if not bibids:
            return
        rows = self.source.fetch_all(
            f"SELECT {', '.join(FIELD_COLUMNS)} FROM biblio_field WHERE bibid IN :bibids ORDER BY bibid, fieldid",
            {"bibids": bibids},
        )
        for row in rows:
            tagged = TaggedField.from_row(row)
            self._fields[as_int(tagged.bibid)].append(tagged)

    def _attributes(self, biblio: BiblioRecord):
        return extract_attributes(self._fields.get(biblio.bibid, ()), biblio)


class SubjectsStage(_BiblioStage):
    name = "subjects"
    description = "Deduplicate topical terms (650$a and topic columns) into subjects"

    def load(self, item):
        biblio = BiblioRecord.from_row(item)
        attributes = self._attributes(biblio)
        created = False
        for term in attributes.subjects:
            resolved = self.context.subjects.resolve(term)
            if resolved is not None and resolved.created:
                created = True
                self.counters.bump("subjects_created")
        return "created" if created else "unchanged"


class MaterialsStage(_BiblioStage):
    name = "materials"
    description = "Bibliographic records with their copies and subject links"

    def __init__(self, context: MigrationContext):
        super().__init__(context)
        self._copies: dict[int, list[Mapping[str, Any]]] = {}
        self._category_codes: dict[str, int] | None = None

    def before_page(self, page):
        super().before_page(page)
        bibids = self._page_bibids(page)
        self._copies = defaultdict(list)
        if not bibids:
            return
        rows = self.source.fetch_all(
            f"SELECT {', '.join(COPY_COLUMNS)} FROM biblio_copy WHERE bibid IN :bibids ORDER BY bibid, copyid",
            {"bibids": bibids},
        )
        for row in rows:
            self._copies[as_int(row.get("bibid"))].append(row)

    def _category_id(self, classification: str | None) -> int | None:
        if self._category_codes is None:
            rows = self.session.execute(
                select(Category.code, Category.id).where(Category.code.is_not(None)).order_by(Category.id)
            ).all()
            self._category_codes = {}
            for code, category_id in rows:
                self._category_codes.setdefault(code, category_id)
        code = dewey_code(classification)
        if code is not None:
            for candidate in (code, code[:2] + "0", code[0] + "00"):
                category_id = self._category_codes.get(candidate)
                if category_id is not None:
                    return category_id
        return self.context.lookup_id(Category, UNCATEGORIZED_EXTERNAL_ID)

    def load(self, item):
        biblio = BiblioRecord.from_row(item)
        attributes = self._attributes(biblio)
        context = self.context
        collection_id = None
        if biblio.collection_code:
            collection_id = context.lookup_id(Collection, external_id_for("collection", biblio.collection_code))
        material_type_id = None
        if biblio.material_code:
            material_type_id = context.lookup_id(
                MaterialType, external_id_for("material_type", biblio.material_code)
            )

        values = {
            "title": _fit(attributes.title or UNTITLED, 500),
            "subtitle": _fit(attributes.subtitle, 500),
            "author": _fit(attributes.author or UNKNOWN_AUTHOR, 255),
            "isbn": _fit(attributes.isbn, 50),
            "edition": _fit(attributes.edition, 100),
            "publisher": _fit(attributes.publisher, 255),
            "publication_place": _fit(attributes.publication_place, 255),
            "country": _fit(attributes.country, 100),
            "language": _fit(attributes.language, 100),
            "pages": attributes.pages,
            "price": attributes.price,
            "dimensions": _fit(attributes.dimensions, 100),
            "classification": _fit(attributes.classification, 100),
            "call_number": _fit(biblio.call_number, 255),
            "description": attributes.description,
            "is_public": biblio.is_public,
            "acquired_at": biblio.created_at,
            "category_id": self._category_id(attributes.classification),
            "collection_id": collection_id,
            "material_type_id": material_type_id,
        }
        result = upsert(self.session, Material, external_id_for("material", biblio.bibid), values)
        material = result.entity

        context.subjects.associate(material.id, attributes.subjects)
        copies_changed = self._load_copies(material, biblio.bibid)

        quantity = self.session.scalar(select(func.count(Copy.id)).where(Copy.material_id == material.id)) or 0
        if material.quantity != quantity:
            material.quantity = quantity
            copies_changed = True

        if result.created:
            return "created"
        return "updated" if (result.changed or copies_changed) else "unchanged"

    def _load_copies(self, material: Material, bibid: int) -> bool:
        changed = False
        seen: list[str] = []
        for row in self._copies.get(bibid, ()):
            record = CopyRecord.from_row(row)
            external_id = external_id_for("copy", record.bibid, record.copyid)
            result = upsert(
                self.session,
                Copy,
                external_id,
                {
                    "material_id": material.id,
                    "barcode": _fit(record.barcode, 100),
                    "description": _fit(record.description, 255),
                    "status": translate_copy_status(record.status_code),
                    "status_changed_at": record.status_begin,
                    "acquired_at": record.created_at,
                },
            )
            seen.append(external_id)
            self.counters.bump(f"copies_{result.action}")
            changed = changed or result.changed

        stale_stmt = (
            select(Copy.id)
            .where(Copy.material_id == material.id)
            .where(Copy.external_id.startswith("copy_", autoescape=True))
        )
        if seen:
            stale_stmt = stale_stmt.where(Copy.external_id.not_in(seen))
        stale_ids = list(self.session.scalars(stale_stmt))
        if stale_ids:
            self.session.execute(
                update(Loan).where(Loan.copy_id.in_(stale_ids)).values(copy_id=None),
                execution_options={"synchronize_session": False},
            )
            self.session.execute(
                delete(Copy).where(Copy.id.in_(stale_ids)),
                execution_options={"synchronize_session": False},
            )
            self.session.expire_all()
            self.counters.bump("copies_deleted", len(stale_ids))
            changed = True
        return changed


class LoansStage(Stage):
    name = "loans"
    description = "Closed loans from status history plus open loans from the copy snapshot"

    def pages(self):
        for page in self._source_pages(
            "biblio_status_hist",
            HISTORY_COLUMNS,
            ("bibid", "copyid", "status_begin_dt", "status_cd"),
            where=HISTORY_FILTER,
            params={"codes": LOAN_RECORD_CODES},
        ):
            yield [("history", row) for row in page]
        for page in self._source_pages(
            "biblio_copy",
            COPY_COLUMNS,
            ("bibid", "copyid"),
            where=SNAPSHOT_FILTER,
            params={"codes": CHECKED_OUT_CODES},
        ):
            yield [("snapshot", row) for row in page]

    def record_key(self, item):
        kind, row = item
        try:
            if kind == "history":
                record = StatusHistoryRecord.from_row(row)
                return history_loan_external_id(record)
            record = CopyRecord.from_row(row)
            return external_id_for("active_loan", record.bibid, record.copyid)
        except (SourceRecordError, ValueError):
            return f"{kind}_{as_text(row.get('bibid')) or '?'}_{as_text(row.get('copyid')) or '?'}"

    def load(self, item):
        kind, row = item
        if kind == "history":
            return self._load_history(StatusHistoryRecord.from_row(row))
        return self._load_snapshot(CopyRecord.from_row(row))

    def _references(self, bibid: int, copyid: int, mbrid: int | None, renewals: int) -> dict[str, Any]:
        context = self.context
        material_external_id = external_id_for("material", bibid)
        material_id = context.lookup_id(Material, material_external_id)
        if material_id is None:
            raise MissingReferenceError("material", material_external_id)
        copy_id = context.lookup_id(Copy, external_id_for("copy", bibid, copyid))
        user_id = context.lookup_id(User, external_id_for("member", mbrid)) if mbrid is not None else None
        if copy_id is None:
            self.counters.bump("without_copy")
        if user_id is None:
            self.counters.bump("guest_borrowers")
        return {
            "material_id": material_id,
            "copy_id": copy_id,
            "user_id": user_id,
            "guest_name": None if user_id is not None else GUEST_BORROWER_NAME,
            "renewal_count": renewals,
            "notes": LOAN_NOTES_TEMPLATE.format(renewals=renewals),
        }

    def _load_history(self, record: StatusHistoryRecord) -> str:
        status = translate_loan_code(record.status_code)
        if status in OPEN_LOAN_STATUSES:
            # Superseded by a later status change, so the loan is closed.
            status = LoanStatus.RETURNED
        values = self._references(record.bibid, record.copyid, record.mbrid, record.renewal_count)
        values.update(
            {
                "loan_date": record.status_begin,
                "due_date": record.due_back,
                "return_date": record.due_back or record.status_begin,
                "status": status,
            }
        )
        external_id = history_loan_external_id(record)
        return upsert(self.session, Loan, external_id, values).action

    def _load_snapshot(self, record: CopyRecord) -> str:
        status = translate_loan_status(record.status_code, record.due_back, clock=self.context.clock)
        values = self._references(record.bibid, record.copyid, record.mbrid, record.renewal_count)
        values.update(
            {
                "loan_date": record.status_begin,
                "due_date": record.due_back,
                "return_date": None,
                "status": status,
            }
        )
        if status is LoanStatus.OVERDUE:
            self.counters.bump("overdue")
        external_id = external_id_for("active_loan", record.bibid, record.copyid)
        return upsert(self.session, Loan, external_id, values).action


class LibraryInfoStage(Stage):
    name = "library_info"
    description = "Library name, hours and contact details from settings"

    def pages(self):
        row = self.source.fetch_one(f"SELECT {', '.join(SETTINGS_COLUMNS)} FROM settings")
        yield [row]

    def record_key(self, item):
        return LIBRARY_INFO_EXTERNAL_ID

    def load(self, item):
        record = SettingsRecord.from_row(item) if item is not None else SettingsRecord()
        result = upsert(
            self.session,
            LibraryInfo,
            LIBRARY_INFO_EXTERNAL_ID,
            {
                "name": _fit(record.library_name or DEFAULT_LIBRARY_NAME, 255),
                "opening_hours": record.hours,
                "address": record.address,
                "phone": _fit(record.phone, 100),
                "email": DEFAULT_LIBRARY_EMAIL,
                "website": _fit(record.url, 500),
                "catalog_url": _fit(record.opac_url, 500),
            },
        )
        return result.action


STAGE_CLASSES: tuple[type[Stage], ...] = (
    RolesStage,
    UsersStage,
    CategoriesStage,
    CollectionsStage,
    MaterialTypesStage,
    SubjectsStage,
    MaterialsStage,
    LoansStage,
    LibraryInfoStage,
)
STAGE_ORDER: tuple[str, ...] = tuple(stage.name for stage in STAGE_CLASSES)
STAGE_REGISTRY: dict[str, type[Stage]] = {stage.name: stage for stage in STAGE_CLASSES}
