# config/base.py
import os

from sqlalchemy.engine import URL


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=1):
    """Parse a positive integer setting, falling back to ``default``."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < minimum:
        return default
    return number


def _legacy_database_url(environ=os.environ):
    """
    Resolve the legacy catalogue URL.

    LEGACY_DATABASE_URL wins; otherwise a mysql+pymysql URL is composed from
    MYSQL_HOST / MYSQL_PORT / MYSQL_USER / MYSQL_PASSWORD / MYSQL_DATABASE.
    """
    explicit = environ.get("LEGACY_DATABASE_URL")
    if explicit:
        return explicit
    host = environ.get("MYSQL_HOST")
    if not host:
        return None
    url = URL.create(
        "mysql+pymysql",
        username=environ.get("MYSQL_USER") or "root",
        password=environ.get("MYSQL_PASSWORD") or None,
        host=host,
        port=_coerce_int(environ.get("MYSQL_PORT"), None),
        database=environ.get("MYSQL_DATABASE") or "espabiblio",
        query={"charset": "utf8mb4"},
    )
    return url.render_as_string(hide_password=False)


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if not SECRET_KEY:
        SECRET_KEY = "dev-secret-key-change-in-production"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Legacy migration configuration
    LEGACY_DATABASE_URL = _legacy_database_url()
    MIGRATION_BATCH_SIZE = _coerce_int(os.environ.get("MIGRATION_BATCH_SIZE"), 500)
    MIGRATION_DEFAULT_PASSWORD = os.environ.get("MIGRATION_DEFAULT_PASSWORD", "changeme123")
    MIGRATION_CONNECT_TIMEOUT = _coerce_int(os.environ.get("MIGRATION_CONNECT_TIMEOUT"), 60)
    MIGRATION_PROGRESS_INTERVAL = _coerce_int(os.environ.get("MIGRATION_PROGRESS_INTERVAL"), 100)
    MIGRATION_SAMPLE_SIZE = _coerce_int(os.environ.get("MIGRATION_SAMPLE_SIZE"), 10, minimum=0)
    MIGRATION_VERIFY_AFTER_RUN = _coerce_bool(os.environ.get("MIGRATION_VERIFY_AFTER_RUN"), default=True)

    # Project root (parent of config directory) hosts the instance folder
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    MIGRATION_LOG_PATH = os.environ.get("MIGRATION_LOG_PATH", os.path.join(instance_path, "migration.log"))


class DevelopmentConfig(Config):
    DEBUG = True

    # Ensure instance folder exists
    if not os.path.exists(Config.instance_path):
        os.makedirs(Config.instance_path, exist_ok=True)

    # Use absolute path for SQLite - Windows needs forward slashes in URI
    db_path = os.path.join(Config.instance_path, "library_dev.db")
    db_path_normalized = db_path.replace("\\", "/")
    db_uri = f"sqlite:///{db_path_normalized}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    LEGACY_DATABASE_URL = None
    MIGRATION_LOG_PATH = None
    MIGRATION_BATCH_SIZE = 500


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
