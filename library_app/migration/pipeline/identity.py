"""
Deterministic identities and idempotent upserts for migrated rows.

Every migrated entity carries an ``external_id`` derived from its legacy key.
That column is the only idempotency key: re-running the migration against an
unchanged source resolves every row to the entity created the first time and
writes nothing.
"""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


class MissingExternalIdentifier(ValueError):
    """Raised when an identity cannot be derived because a key part is empty."""

    def __init__(self, prefix: str) -> None:
        super().__init__(f"Cannot derive an external id for '{prefix}' without a source key.")
        self.prefix = prefix


class NaturalKeyConflict(ValueError):
    """Raised when a natural key is already owned by a row with a different external id."""

    def __init__(self, model: type, natural_key: Mapping[str, Any], owner_external_id: str) -> None:
        super().__init__(
            f"{model.__name__} {dict(natural_key)!r} already belongs to external id '{owner_external_id}'."
        )
        self.model = model
        self.natural_key = dict(natural_key)
        self.owner_external_id = owner_external_id


@dataclass(frozen=True)
class UpsertResult:
    """
    Outcome of :func:`upsert`.

    ``created`` is true when the row was inserted; ``changed`` when any
    attribute was written (always true for creations).
    """

    entity: Any
    created: bool
    changed: bool

    @property
    def action(self) -> str:
        if self.created:
            return "created"
        return "updated" if self.changed else "unchanged"


def external_id_for(prefix: str, *parts: Any) -> str:
    """Join a kind prefix and the legacy key parts: ``copy_<bibid>_<copyid>``."""

    if not parts:
        raise MissingExternalIdentifier(prefix)
    cleaned: list[str] = []
    for part in parts:
        text = "" if part is None else str(part).strip()
        if not text:
            raise MissingExternalIdentifier(prefix)
        cleaned.append(text)
    return "_".join([prefix, *cleaned])


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the epoch, reading naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def topic_external_id(name: str) -> str:
    """Identity of a subject term, stable for the exact normalized name."""
    encoded = base64.urlsafe_b64encode(name.encode("utf-8")).decode("ascii").rstrip("=")
    return f"topic_{encoded}"


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def values_equal(current: Any, incoming: Any) -> bool:
    """Compare a stored attribute with an incoming one, tolerant of driver round trips."""
    if current is None or incoming is None:
        return current is incoming
    if isinstance(current, datetime) and isinstance(incoming, datetime):
        return _normalize_datetime(current) == _normalize_datetime(incoming)
    if isinstance(current, float) or isinstance(incoming, float):
        try:
            return math.isclose(float(current), float(incoming), rel_tol=1e-9, abs_tol=1e-9)
        except (TypeError, ValueError):
            return False
    return current == incoming


def apply_values(entity: Any, values: Mapping[str, Any]) -> bool:
    """Write only the attributes that differ; return whether anything changed."""
    changed = False
    for key, value in values.items():
        if not values_equal(getattr(entity, key), value):
            setattr(entity, key, value)
            changed = True
    return changed


def find_by_external_id(session: Session, model: type, external_id: str, *, lock: bool = True):
    stmt = select(model).where(model.external_id == external_id)
    if lock:
        stmt = stmt.with_for_update()
    return session.scalars(stmt).first()


def _find_by_natural_key(session: Session, model: type, natural_key: Mapping[str, Any]):
    stmt = select(model).filter_by(**natural_key).with_for_update()
    return session.scalars(stmt).first()


def _resolve_existing(session, model, external_id, natural_key):
    entity = find_by_external_id(session, model, external_id)
    if entity is not None or not natural_key:
        return entity
    entity = _find_by_natural_key(session, model, natural_key)
    if entity is None:
        return None
    if entity.external_id not in (None, external_id):
        raise NaturalKeyConflict(model, natural_key, entity.external_id)
    return entity


def upsert(
    session: Session,
    model: type,
    external_id: str,
    values: Mapping[str, Any],
    *,
    create_values: Mapping[str, Any] | None = None,
    natural_key: Mapping[str, Any] | None = None,
) -> UpsertResult:
    """
    Update the ``model`` row owning ``external_id`` or create it.

    The identity lookup takes a row lock and the insert runs in a savepoint,
    so a concurrent insert of the same identity (or a collision on a natural
    unique key) is resolved by re-reading and updating the winning row.

    ``natural_key`` lets a pre-existing row without an external id (for
    example a category created by hand) be adopted instead of duplicated.
    ``create_values`` are applied on insert only.
    """

    if not external_id:
        raise MissingExternalIdentifier(model.__name__)

    entity = _resolve_existing(session, model, external_id, natural_key)
    if entity is not None:
        changed = apply_values(entity, values)
        if entity.external_id is None:
            entity.external_id = external_id
            changed = True
        return UpsertResult(entity=entity, created=False, changed=changed)

    attributes = dict(create_values or {})
    attributes.update(values)
    entity = model(external_id=external_id, **attributes)
    try:
        with session.begin_nested():
            session.add(entity)
            session.flush()
    except IntegrityError:
        existing = _resolve_existing(session, model, external_id, natural_key)
        if existing is None:
            raise
        changed = apply_values(existing, values)
        if existing.external_id is None:
            existing.external_id = external_id
            changed = True
        return UpsertResult(entity=existing, created=False, changed=changed)
    return UpsertResult(entity=entity, created=True, changed=True)
