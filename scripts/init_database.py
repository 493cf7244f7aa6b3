# scripts/init_database.py

"""
Database initialization script.
This script creates all tables and seeds the reference data the migration
and the application expect before any legacy data arrives:
- Default roles (librarian, member, guest)
- Default categories (Fiction ... Uncategorized)
- The library information row
Seeding goes through the same external ids as the migration, so running this
script before or after ``flask legacy run`` never duplicates rows.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402
from library_app.migration.pipeline.identity import external_id_for, upsert  # noqa: E402
from library_app.migration.pipeline.stages import (  # noqa: E402
    DEFAULT_CATEGORIES,
    DEFAULT_ROLES,
    LIBRARY_INFO_EXTERNAL_ID,
    slugify,
)
from library_app.models import Category, LibraryInfo, Role, db  # noqa: E402
from library_app.models.library_info import DEFAULT_LIBRARY_EMAIL, DEFAULT_LIBRARY_NAME  # noqa: E402


def create_default_roles():
    """Create default roles"""
    created_roles = {}
    for name, display_name, description in DEFAULT_ROLES:
        result = upsert(
            db.session,
            Role,
            external_id_for("role", name),
            {"name": name, "display_name": display_name, "description": description},
            natural_key={"name": name},
        )
        created_roles[name] = result.entity

    db.session.commit()
    return created_roles


def create_default_categories():
    """Create default categories"""
    created_categories = {}
    for name, description in DEFAULT_CATEGORIES:
        result = upsert(
            db.session,
            Category,
            external_id_for("default", slugify(name)),
            {"name": name, "description": description},
            natural_key={"name": name},
        )
        created_categories[name] = result.entity

    db.session.commit()
    return created_categories


def create_library_info():
    """Create the library information row unless one exists"""
    existing = LibraryInfo.query.order_by(LibraryInfo.id).first()
    if existing:
        print("Library information already exists")
        return existing

    info = LibraryInfo(
        external_id=LIBRARY_INFO_EXTERNAL_ID,
        name=DEFAULT_LIBRARY_NAME,
        email=DEFAULT_LIBRARY_EMAIL,
    )
    db.session.add(info)
    db.session.commit()
    return info


def init_database(flask_app=None):
    """Initialize database with all default data"""
    flask_app = flask_app or app
    with flask_app.app_context():
        print("Creating database tables...")
        db.create_all()
        print("Migration tables (migration_runs, migration_issues) created alongside core schema.")
        print("Database tables created")

        print("Creating default roles...")
        roles = create_default_roles()
        print(f"Created {len(roles)} default roles")

        print("Creating default categories...")
        categories = create_default_categories()
        print(f"Created {len(categories)} default categories")

        print("Creating library information...")
        info = create_library_info()

        print("\nDatabase initialization complete!")
        print("\nDefault roles created:")
        for role_name, role in roles.items():
            print(f"  - {role_name}: {role.display_name}")
        print(f"\nLibrary: {info.name}")

        print("\nNext steps:")
        print("  1. Point LEGACY_DATABASE_URL (or MYSQL_*) at the legacy catalogue")
        print("  2. Run the migration: flask legacy run")
        print("  3. Check completeness: flask legacy verify")


if __name__ == "__main__":
    init_database()
