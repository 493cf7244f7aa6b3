from __future__ import annotations

import pytest

from library_app.migration.pipeline.identity import topic_external_id
from library_app.migration.pipeline.subjects import (
    SUBJECT_NAME_LENGTH,
    SubjectCache,
    SubjectResolver,
    normalize_subject,
)
from library_app.models import Material, MaterialSubject, Subject, db


def _material(title: str) -> Material:
    material = Material(title=title, author="Anon")
    db.session.add(material)
    db.session.commit()
    return material


def _resolver() -> SubjectResolver:
    return SubjectResolver(db.session, SubjectCache())


def test_normalize_subject_trims_and_collapses_whitespace():
    assert normalize_subject("  History ") == "History"
    assert normalize_subject("World   War\tII") == "World War II"
    assert normalize_subject("   ") is None
    assert normalize_subject(None) is None


def test_normalize_subject_cuts_names_to_column_width():
    long_term = "Tema " + "x" * 400

    name = normalize_subject(long_term)

    assert len(name) == SUBJECT_NAME_LENGTH
    assert name.startswith("Tema x")
    assert normalize_subject(" " * 3 + "a" * 254 + " b") == "a" * 254


def test_overlong_terms_share_one_truncated_subject(app):
    resolver = _resolver()
    material = _material("Long subjects")
    prefix = "Historia " * 40

    subject_ids = resolver.associate(material.id, [prefix + "antigua", prefix + "moderna"])
    db.session.commit()

    subject = Subject.query.one()
    assert subject_ids == [subject.id]
    assert len(subject.name) <= SUBJECT_NAME_LENGTH
    assert subject.name == normalize_subject(prefix)


def test_whitespace_variants_resolve_to_one_subject(app):
    resolver = _resolver()
    first = _material("First")
    second = _material("Second")

    resolver.associate(first.id, ["  History "])
    resolver.associate(second.id, ["History"])
    db.session.commit()

    subjects = Subject.query.all()
    assert [subject.name for subject in subjects] == ["History"]
    links = MaterialSubject.query.filter_by(subject_id=subjects[0].id).all()
    assert {link.material_id for link in links} == {first.id, second.id}


def test_cache_serves_repeated_terms(app):
    cache = SubjectCache()
    resolver = SubjectResolver(db.session, cache)

    created = resolver.resolve("Poetry")
    again = resolver.resolve(" Poetry")

    assert created.created is True
    assert again.created is False
    assert again.id == created.id
    assert cache.hits == 1
    assert cache.misses == 1
    assert resolver.created == 1


def test_existing_subject_is_found_by_name(app):
    db.session.add(Subject(name="Botany"))
    db.session.commit()

    resolved = _resolver().resolve("Botany")

    assert resolved.created is False
    assert Subject.query.count() == 1
    assert Subject.query.one().external_id == topic_external_id("Botany")


def test_existing_subject_is_found_by_topic_identity(app):
    # Same identity, stored under a differently spelled name.
    db.session.add(Subject(name="botany (legacy)", external_id=topic_external_id("Botany")))
    db.session.commit()

    resolved = _resolver().resolve("Botany")

    assert resolved.created is False
    assert Subject.query.count() == 1


def test_associate_deduplicates_and_replaces_links(app):
    resolver = _resolver()
    material = _material("Atlas")

    ids = resolver.associate(material.id, ["Maps", "Maps ", "Geography", None, ""])
    db.session.commit()
    assert len(ids) == 2
    assert MaterialSubject.query.filter_by(material_id=material.id).count() == 2

    resolver.associate(material.id, ["Geography"])
    db.session.commit()
    names = {
        link.subject.name for link in MaterialSubject.query.filter_by(material_id=material.id).all()
    }
    assert names == {"Geography"}


def test_discarded_entries_are_not_served_after_rollback(app):
    cache = SubjectCache()
    resolver = SubjectResolver(db.session, cache)

    with pytest.raises(RuntimeError):
        with db.session.begin_nested():
            resolver.resolve("Ephemeral")
            raise RuntimeError("row failed")
    cache.discard_pending()

    assert cache.get("Ephemeral") is None
    assert resolver.resolve("Ephemeral").created is True


def test_committed_entries_survive_discard(app):
    cache = SubjectCache()
    resolver = SubjectResolver(db.session, cache)

    resolver.resolve("Durable")
    db.session.commit()
    cache.commit_pending()
    cache.discard_pending()

    assert cache.get("Durable") is not None
    assert cache.to_dict()["size"] == 1
