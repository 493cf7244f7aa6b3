from library_app.models import Category, LibraryInfo, Role
from scripts.init_database import init_database


def test_init_database_seeds_reference_data(app, capsys):
    init_database(app)

    assert {role.name for role in Role.query.all()} == {"librarian", "member", "guest"}
    assert Category.query.filter_by(external_id="default_uncategorized").count() == 1
    assert LibraryInfo.query.one().external_id == "settings_default"
    assert "Database initialization complete!" in capsys.readouterr().out


def test_init_database_is_repeatable(app):
    init_database(app)
    init_database(app)

    assert Role.query.count() == 3
    assert Category.query.count() == 6
    assert LibraryInfo.query.count() == 1


def test_hand_made_role_is_adopted(app):
    from library_app.models import db

    db.session.add(Role(name="member", display_name="Patron"))
    db.session.commit()

    init_database(app)

    member = Role.query.filter_by(name="member").one()
    assert member.external_id == "role_member"
    assert member.display_name == "Member"
    assert Role.query.count() == 3
