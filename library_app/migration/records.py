"""
Typed views over legacy source rows.

Rows leave the source reader as plain mappings; every stage converts them
here, at the boundary, so downstream code only sees explicit optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

_TRUTHY_FLAGS = {"y", "yes", "1", "true", "t", "s", "si"}
_ZERO_DATES = ("0000-00-00",)


class SourceRecordError(ValueError):
    """Raised when a source row lacks the columns needed to identify it."""

    def __init__(self, kind: str, column: str, row: Mapping[str, Any] | None = None) -> None:
        super().__init__(f"{kind} row is missing required column '{column}'.")
        self.kind = kind
        self.column = column
        self.row = dict(row) if row is not None else None


def as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip()
    return text or None


def as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = as_text(value)
    if text is None:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def as_flag(value: Any, default: bool = False) -> bool:
    """Legacy ``Y``/``N`` columns to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = as_text(value)
    if text is None:
        return default
    return text.lower() in _TRUTHY_FLAGS


def as_datetime(value: Any) -> datetime | None:
    """
    Coerce legacy date values, which arrive as ``datetime`` objects or as
    strings depending on the driver. MySQL zero dates map to ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = as_text(value)
    if text is None or text.startswith(_ZERO_DATES):
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _required_int(kind: str, row: Mapping[str, Any], column: str) -> int:
    value = as_int(row.get(column))
    if value is None:
        raise SourceRecordError(kind, column, row)
    return value


def _required_text(kind: str, row: Mapping[str, Any], column: str) -> str:
    value = as_text(row.get(column))
    if value is None:
        raise SourceRecordError(kind, column, row)
    return value


@dataclass(frozen=True)
class StaffRecord:
    userid: int
    username: str | None
    first_name: str | None
    last_name: str | None
    suspended: bool

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StaffRecord":
        return cls(
            userid=_required_int("staff", row, "userid"),
            username=as_text(row.get("username")),
            first_name=as_text(row.get("first_name")),
            last_name=as_text(row.get("last_name")),
            suspended=as_flag(row.get("suspended_flg")),
        )


@dataclass(frozen=True)
class MemberRecord:
    mbrid: int
    barcode: str | None
    first_name: str | None
    last_name: str | None
    email: str | None
    home_phone: str | None
    work_phone: str | None
    mobile_phone: str | None
    address: str | None
    is_active: bool

    @property
    def phone(self) -> str | None:
        return self.mobile_phone or self.home_phone or self.work_phone

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MemberRecord":
        return cls(
            mbrid=_required_int("member", row, "mbrid"),
            barcode=as_text(row.get("barcode_nmbr")),
            first_name=as_text(row.get("first_name")),
            last_name=as_text(row.get("last_name")),
            email=as_text(row.get("email")),
            home_phone=as_text(row.get("home_phone")),
            work_phone=as_text(row.get("work_phone")),
            mobile_phone=as_text(row.get("cel")),
            address=as_text(row.get("address")),
            is_active=as_flag(row.get("is_active"), default=True),
        )


@dataclass(frozen=True)
class CategoryRecord:
    cdd_id: int
    number: str | None
    description: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CategoryRecord":
        return cls(
            cdd_id=_required_int("cdd", row, "cdd_Bid"),
            number=as_text(row.get("cdd_Numero")),
            description=_required_text("cdd", row, "cdd_Descripcion"),
        )


@dataclass(frozen=True)
class LookupRecord:
    """Row of a ``*_dm`` domain table (collections, material types)."""

    code: str
    description: str | None
    days_due_back: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], kind: str = "lookup") -> "LookupRecord":
        return cls(
            code=_required_text(kind, row, "code"),
            description=as_text(row.get("description")),
            days_due_back=as_int(row.get("days_due_back")),
        )


@dataclass(frozen=True)
class BiblioRecord:
    bibid: int
    created_at: datetime | None
    material_code: str | None
    collection_code: str | None
    call_numbers: tuple[str, ...]
    title: str | None
    title_remainder: str | None
    responsibility: str | None
    author: str | None
    topics: tuple[str, ...]
    is_public: bool

    @property
    def call_number(self) -> str | None:
        return " ".join(self.call_numbers) or None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BiblioRecord":
        call_numbers = tuple(
            text for text in (as_text(row.get(f"call_nmbr{index}")) for index in (1, 2, 3)) if text
        )
        topics = tuple(text for text in (as_text(row.get(f"topic{index}")) for index in range(1, 6)) if text)
        return cls(
            bibid=_required_int("biblio", row, "bibid"),
            created_at=as_datetime(row.get("create_dt")),
            material_code=as_text(row.get("material_cd")),
            collection_code=as_text(row.get("collection_cd")),
            call_numbers=call_numbers,
            title=as_text(row.get("title")),
            title_remainder=as_text(row.get("title_remainder")),
            responsibility=as_text(row.get("responsibility_stmt")),
            author=as_text(row.get("author")),
            topics=topics,
            is_public=as_flag(row.get("opac_flg"), default=True),
        )


@dataclass(frozen=True)
class CopyRecord:
    bibid: int
    copyid: int
    created_at: datetime | None
    description: str | None
    barcode: str | None
    status_code: str | None
    status_begin: datetime | None
    due_back: datetime | None
    mbrid: int | None
    renewal_count: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CopyRecord":
        return cls(
            bibid=_required_int("biblio_copy", row, "bibid"),
            copyid=_required_int("biblio_copy", row, "copyid"),
            created_at=as_datetime(row.get("create_dt")),
            description=as_text(row.get("copy_desc")),
            barcode=as_text(row.get("barcode_nmbr")),
            status_code=as_text(row.get("status_cd")),
            status_begin=as_datetime(row.get("status_begin_dt")),
            due_back=as_datetime(row.get("due_back_dt")),
            mbrid=as_int(row.get("mbrid")),
            renewal_count=as_int(row.get("renewal_count")) or 0,
        )


@dataclass(frozen=True)
class StatusHistoryRecord:
    bibid: int
    copyid: int
    status_code: str | None
    status_begin: datetime
    due_back: datetime | None
    mbrid: int | None
    renewal_count: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StatusHistoryRecord":
        status_begin = as_datetime(row.get("status_begin_dt"))
        if status_begin is None:
            raise SourceRecordError("biblio_status_hist", "status_begin_dt", row)
        return cls(
            bibid=_required_int("biblio_status_hist", row, "bibid"),
            copyid=_required_int("biblio_status_hist", row, "copyid"),
            status_code=as_text(row.get("status_cd")),
            status_begin=status_begin,
            due_back=as_datetime(row.get("due_back_dt")),
            mbrid=as_int(row.get("mbrid")),
            renewal_count=as_int(row.get("renewal_count")) or 0,
        )


@dataclass(frozen=True)
class SettingsRecord:
    library_name: str | None = None
    hours: str | None = None
    address: str | None = None
    phone: str | None = None
    url: str | None = None
    opac_url: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SettingsRecord":
        return cls(
            library_name=as_text(row.get("library_name")),
            hours=as_text(row.get("library_hours")),
            address=as_text(row.get("library_aders")),
            phone=as_text(row.get("library_phone")),
            url=as_text(row.get("library_url")),
            opac_url=as_text(row.get("opac_url")),
        )
