"""
Legacy catalogue migration package.

Registers the ``flask legacy`` command group on the application.
"""

from __future__ import annotations

from flask import Flask

from .cli import legacy_cli

MIGRATION_EXTENSION_KEY = "legacy_migration"

__all__ = ["init_migration", "MIGRATION_EXTENSION_KEY"]


def init_migration(app: Flask) -> None:
    """Mount the migration CLI and record its configuration on the app."""

    # Avoid duplicate registrations when running tests
    if legacy_cli.name in app.cli.commands:
        app.cli.commands.pop(legacy_cli.name)
    app.cli.add_command(legacy_cli)

    app.extensions[MIGRATION_EXTENSION_KEY] = {
        "source_configured": bool(app.config.get("LEGACY_DATABASE_URL")),
        "batch_size": app.config.get("MIGRATION_BATCH_SIZE"),
    }
    if not app.config.get("LEGACY_DATABASE_URL"):
        app.logger.info("Legacy migration source not configured; set LEGACY_DATABASE_URL or MYSQL_* to run it.")
