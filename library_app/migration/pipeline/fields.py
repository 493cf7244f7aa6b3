"""
MARC tagged sub-field extraction for legacy bibliographic records.

The legacy catalogue stores every descriptive attribute of a record as a
``(tag, subfield, value)`` triple in ``biblio_field``. This module turns the
triples of one record into a typed attribute set. Extraction never raises:
unknown pairs are ignored and malformed numbers come back as ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Mapping

if TYPE_CHECKING:  # pragma: no cover
    from library_app.migration.records import BiblioRecord

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_INTEGER = re.compile(r"-?\d+")
_FLOAT = re.compile(r"-?\d+(?:\.\d+)?")

# (tag, subfield) -> attribute; several pairs may feed one attribute, in
# priority order.
SCALAR_TAGS: Mapping[tuple[str, str], str] = {
    ("020", "a"): "isbn",
    ("041", "a"): "language",
    ("240", "l"): "language",
    ("080", "a"): "classification",
    ("082", "a"): "classification",
    ("100", "a"): "author",
    ("110", "a"): "author",
    ("245", "a"): "title",
    ("245", "b"): "subtitle",
    ("250", "a"): "edition",
    ("257", "a"): "country",
    ("260", "a"): "publication_place",
    ("260", "b"): "publisher",
    ("300", "a"): "pages",
    ("300", "c"): "dimensions",
    ("365", "b"): "price",
    ("541", "h"): "price",
    ("520", "a"): "description",
}
REPEATABLE_TAGS: Mapping[tuple[str, str], str] = {
    ("650", "a"): "subjects",
}
_PRIORITY = {pair: index for index, pair in enumerate(SCALAR_TAGS)}


@dataclass(frozen=True)
class TaggedField:
    """One ``(tag, subfield, value)`` triple of a bibliographic record."""

    tag: str
    subfield: str
    value: str | None
    bibid: int | None = None
    fieldid: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return normalize_tag(self.tag), (self.subfield or "").strip().lower()

    @classmethod
    def from_row(cls, row: Mapping) -> "TaggedField":
        value = row.get("field_data")
        return cls(
            tag=str(row.get("tag") if row.get("tag") is not None else ""),
            subfield=str(row.get("subfield_cd") or ""),
            value=None if value is None else str(value),
            bibid=row.get("bibid"),
            fieldid=row.get("fieldid"),
        )


@dataclass(frozen=True)
class ExtractedAttributes:
    isbn: str | None = None
    title: str | None = None
    subtitle: str | None = None
    author: str | None = None
    edition: str | None = None
    description: str | None = None
    publisher: str | None = None
    publication_place: str | None = None
    country: str | None = None
    language: str | None = None
    pages: int | None = None
    price: float | None = None
    dimensions: str | None = None
    classification: str | None = None
    subjects: tuple[str, ...] = field(default_factory=tuple)


def normalize_tag(tag) -> str:
    """Left-pad numeric tags to three digits (``20`` -> ``"020"``)."""
    text = str(tag).strip() if tag is not None else ""
    if text.isdigit():
        return text.zfill(3)
    return text


def parse_int_safe(value) -> int | None:
    """
    Parse the first integer found in a free-text value.

    ``"xii, 240 p."`` yields ``240``; values without digits yield ``None``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    cleaned = _NON_NUMERIC.sub(" ", str(value))
    match = _INTEGER.search(cleaned)
    if match is None:
        return None
    try:
        return int(match.group())
    except ValueError:
        return None


def parse_float_safe(value) -> float | None:
    """Parse the first decimal number in a value, accepting ``,`` as decimal mark."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if "," in text:
        text = text.replace(",", "") if "." in text else text.replace(",", ".")
    cleaned = _NON_NUMERIC.sub(" ", text)
    match = _FLOAT.search(cleaned)
    if match is None:
        return None
    try:
        return float(match.group())
    except ValueError:
        return None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def extract_attributes(
    fields: Iterable[TaggedField],
    biblio: "BiblioRecord | None" = None,
) -> ExtractedAttributes:
    """Build the attribute set of one record from its tagged fields."""

    scalars: dict[str, tuple[int, str]] = {}
    subjects: list[str] = []

    for tagged in fields:
        value = _clean(tagged.value)
        if value is None:
            continue
        pair = tagged.key
        repeatable = REPEATABLE_TAGS.get(pair)
        if repeatable is not None:
            subjects.append(value)
            continue
        attribute = SCALAR_TAGS.get(pair)
        if attribute is None:
            continue
        priority = _PRIORITY[pair]
        current = scalars.get(attribute)
        if current is None or priority < current[0]:
            scalars[attribute] = (priority, value)

    values = {name: value for name, (_, value) in scalars.items()}

    if biblio is not None:
        values.setdefault("title", _clean(biblio.title))
        values.setdefault("subtitle", _clean(biblio.title_remainder))
        values.setdefault("author", _clean(biblio.author))
        values.setdefault("description", _clean(biblio.responsibility))
        subjects.extend(topic for topic in (_clean(t) for t in biblio.topics) if topic)
        values = {name: value for name, value in values.items() if value is not None}

    return ExtractedAttributes(
        isbn=values.get("isbn"),
        title=values.get("title"),
        subtitle=values.get("subtitle"),
        author=values.get("author"),
        edition=values.get("edition"),
        description=values.get("description"),
        publisher=values.get("publisher"),
        publication_place=values.get("publication_place"),
        country=values.get("country"),
        language=values.get("language"),
        pages=parse_int_safe(values.get("pages")),
        price=parse_float_safe(values.get("price")),
        dimensions=values.get("dimensions"),
        classification=values.get("classification"),
        subjects=tuple(subjects),
    )
