# config/validation.py

"""
Environment variable validation for the library application.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Mapping, Tuple

from .base import _legacy_database_url

SHIPPED_DEFAULT_PASSWORD = "changeme123"


def validate_environment(flask_env: str = None, environ: Mapping[str, str] = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable
        environ: Mapping to validate, defaults to ``os.environ``

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if environ is None:
        environ = os.environ
    if flask_env is None:
        flask_env = environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    secret_key = environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not environ.get("DATABASE_URL"):
        errors.append(
            "DATABASE_URL is required in production. "
            "Set it to the connection string of the library database."
        )

    if not _legacy_database_url(environ):
        errors.append(
            "LEGACY_DATABASE_URL (or MYSQL_HOST with MYSQL_USER/MYSQL_PASSWORD/MYSQL_DATABASE) "
            "is required in production to reach the legacy catalogue."
        )

    password = environ.get("MIGRATION_DEFAULT_PASSWORD", SHIPPED_DEFAULT_PASSWORD)
    if password == SHIPPED_DEFAULT_PASSWORD:
        errors.append(
            "MIGRATION_DEFAULT_PASSWORD must be changed from the shipped default before migrating "
            "patron accounts in production."
        )

    for name in ("MIGRATION_BATCH_SIZE", "MIGRATION_CONNECT_TIMEOUT"):
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            if int(raw) < 1:
                raise ValueError
        except ValueError:
            errors.append(f"{name} must be a positive integer (got {raw!r}).")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("See .env.example for required configuration.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
