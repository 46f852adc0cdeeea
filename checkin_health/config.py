"""
Check-in Data Health
Configuration classes for the Flask app factory, selected by ``APP_ENV``.

Environment:
    DATABASE_URL        Postgres in production; SQLite file under instance/ otherwise
    TEST_DATABASE_URL   override for the test suite (default: in-memory SQLite)
    SECRET_KEY          required in production
    CORS_ORIGINS        comma-separated list, "*" outside production
    CHECKIN_TIMEZONE    zone whose calendar decides week boundaries and "today"
    REPORT_PAGE_SIZE    default page size of the check-in listing
    REDIS_URL           rate-limit storage (read by the app factory)
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'checkin_health_dev.db')}"


def _database_url(var: str, fallback: str | None = None) -> str | None:
    """Read a database URL, accepting the legacy ``postgres://`` scheme."""
    raw = os.getenv(var, "")
    if not raw:
        return fallback
    # SQLAlchemy 2.0 only knows the postgresql:// dialect name
    return raw.replace("postgres://", "postgresql://", 1)


_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)

    RATELIMIT_ENABLED = True
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    CHECKIN_TIMEZONE = os.getenv("CHECKIN_TIMEZONE", "America/Chicago")
    REPORT_PAGE_SIZE = int(os.getenv("REPORT_PAGE_SIZE", "50"))
    REPORT_MAX_PAGE_SIZE = 500


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL", _SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", "sqlite:///:memory:")
    # in-memory SQLite rejects pool sizing arguments
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    CHECKIN_TIMEZONE = "America/Chicago"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        # full-dataset scans must not pin a connection forever
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
