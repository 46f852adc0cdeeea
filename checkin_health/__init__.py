"""
Check-in Data Health
Flask application factory.

Usage:
    from checkin_health import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import json
import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event as _sa_event, engine as _sa_engine

from checkin_health.config import config
from checkin_health.models import db
from checkin_health.middleware.logging_config import configure_logging
from checkin_health.middleware.timing import init_request_timing
from checkin_health.middleware.basic_auth import init_basic_auth
from checkin_health.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    """Organization and user deletes cascade only when SQLite enforces FKs."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# No global limit; per-blueprint limits come from init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _init_cors(app):
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _require_json_bodies(app):
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)

    @app.before_request
    def _json_only():
        if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
            return None
        if request.data and "json" not in (request.content_type or ""):
            abort(415, description="Content-Type must be application/json")
        return None


def _register_cli(app):
    @app.cli.command("data-health-report")
    @click.option("--organization-id", default=None, help="Limit the scan to one organization.")
    @click.option("--status", type=click.Choice(["complete", "incomplete"]), default=None)
    @click.option("--start-date", default=None, help="Earliest week start (YYYY-MM-DD).")
    @click.option("--end-date", default=None, help="Latest week start (YYYY-MM-DD).")
    def data_health_report_cmd(organization_id, status, start_date, end_date):
        """Print the check-in Data Health Report as JSON."""
        from checkin_health.core.exceptions import ValidationError
        from checkin_health.services.checkin_store import CheckinFilters
        from checkin_health.services.integrity_scanner import compute_health_report
        from checkin_health.services.week_normalizer import to_calendar_date
        from checkin_health.utils.helpers import parse_date_input

        def _day(raw):
            value = parse_date_input(raw)
            return to_calendar_date(value, app.config["CHECKIN_TIMEZONE"]) if value else None

        try:
            filters = CheckinFilters(
                organization_id=organization_id,
                status=status,
                start_date=_day(start_date),
                end_date=_day(end_date),
            )
        except (ValueError, ValidationError) as exc:
            raise click.BadParameter(str(exc)) from exc
        report = compute_health_report(filters)
        click.echo(json.dumps(report.to_dict(), indent=2, sort_keys=True))


def _register_error_handlers(app):
    """JSON bodies for HTTP errors raised outside the blueprints."""

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def _unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500


def create_app(config_name=None):
    """
    Build the application.

    Args:
        config_name: "development", "testing" or "production".
                     Falls back to APP_ENV, then "development".
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # Logging first so extension setup is captured
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    # Gate before limiter: the limit key reads g.admin_actor
    init_basic_auth(app)
    limiter.init_app(app)
    _init_cors(app)
    init_request_timing(app)
    _require_json_bodies(app)

    from checkin_health.models import audit, checkin, directory  # noqa: F401

    with app.app_context():
        if (app.config.get("SQLALCHEMY_DATABASE_URI") or "").startswith("sqlite:///") and not app.testing:
            os.makedirs(app.instance_path, exist_ok=True)
        # Creates missing tables only; schema changes go through migrations
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    from checkin_health.blueprints.health_bp import health_bp
    from checkin_health.blueprints.data_management_bp import data_management_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(data_management_bp)

    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    return app
