"""
Subject term resolution with a per-run memo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from library_app.models import MaterialSubject, Subject

from .identity import topic_external_id


SUBJECT_NAME_LENGTH = 255


def normalize_subject(term: str | None) -> str | None:
    """
    Trim and collapse inner whitespace; blank terms resolve to ``None``.

    Names longer than the subject column are cut to ``SUBJECT_NAME_LENGTH``.
    """
    if term is None:
        return None
    normalized = " ".join(str(term).split())[:SUBJECT_NAME_LENGTH].rstrip()
    return normalized or None


@dataclass(frozen=True)
class CachedSubject:
    id: int
    external_id: str | None


@dataclass
class SubjectCache:
    """Normalized subject name -> target subject, valid for one run."""

    entries: dict[str, CachedSubject] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0
    _pending: list[str] = field(default_factory=list, repr=False)

    def get(self, name: str) -> CachedSubject | None:
        entry = self.entries.get(name)
        if entry is None:
            self.misses += 1
        else:
            self.hits += 1
        return entry

    def put(self, name: str, subject: Subject) -> CachedSubject:
        entry = CachedSubject(id=subject.id, external_id=subject.external_id)
        self.entries[name] = entry
        self._pending.append(name)
        return entry

    def commit_pending(self) -> None:
        """Entries added since the last call now point at durable rows."""
        self._pending.clear()

    def discard_pending(self) -> None:
        """Forget entries whose rows were rolled back with their record."""
        for name in self._pending:
            self.entries.pop(name, None)
        self._pending.clear()

    def invalidate(self) -> None:
        self.entries.clear()
        self._pending.clear()

    def clear(self) -> None:
        self.invalidate()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, int]:
        return {"size": len(self.entries), "hits": self.hits, "misses": self.misses}


@dataclass(frozen=True)
class ResolvedSubject:
    id: int
    name: str
    created: bool


class SubjectResolver:
    """Resolve raw terms to subjects: cache, then name, then topic id, then create."""

    def __init__(self, session: Session, cache: SubjectCache):
        self.session = session
        self.cache = cache
        self.created = 0

    def resolve(self, term: str | None) -> ResolvedSubject | None:
        name = normalize_subject(term)
        if name is None:
            return None
        cached = self.cache.get(name)
        if cached is not None:
            return ResolvedSubject(id=cached.id, name=name, created=False)

        external_id = topic_external_id(name)
        subject = self._lookup(name, external_id)
        created = False
        if subject is None:
            subject = Subject(name=name, external_id=external_id)
            try:
                with self.session.begin_nested():
                    self.session.add(subject)
                    self.session.flush()
                created = True
                self.created += 1
            except IntegrityError:
                subject = self._lookup(name, external_id)
                if subject is None:
                    raise
        elif subject.external_id is None:
            subject.external_id = external_id

        entry = self.cache.put(name, subject)
        return ResolvedSubject(id=entry.id, name=name, created=created)

    def _lookup(self, name: str, external_id: str) -> Subject | None:
        subject = self.session.scalars(select(Subject).where(Subject.name == name)).first()
        if subject is not None:
            return subject
        return self.session.scalars(select(Subject).where(Subject.external_id == external_id)).first()

    def associate(self, material_id: int, terms: Iterable[str]) -> list[int]:
        """
        Replace the subject links of a material.

        Existing links are deleted and recreated from ``terms``; a subject
        reached twice is linked once.
        """

        self.session.execute(delete(MaterialSubject).where(MaterialSubject.material_id == material_id))
        subject_ids: list[int] = []
        for term in terms:
            resolved = self.resolve(term)
            if resolved is None or resolved.id in subject_ids:
                continue
            subject_ids.append(resolved.id)
            self.session.add(MaterialSubject(material_id=material_id, subject_id=resolved.id))
        self.session.flush()
        return subject_ids
