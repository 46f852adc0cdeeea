"""
Structured logging configuration.

- Development: human-readable colored lines
- Production: one JSON object per line (log aggregator compatible)
- LOG_LEVEL sets the level, LOG_FORMAT=json|readable overrides the format

Every record emitted while a request is active is stamped with the request
id and the admin actor, so a repair logged deep inside the reconciler can be
joined to the HTTP request that caused it.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from ``extra=`` (or the context filter) into JSON output
CONTEXT_FIELDS = (
    "request_id",
    "actor",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "organization_id",
    "checkin_id",
)


class RequestContextFilter(logging.Filter):
    """Attach request_id / actor from ``flask.g`` when a request is active."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "actor", None) is None:
                record.actor = g.get("admin_actor")
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"]
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"req={request_id}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app) -> bool:
    explicit = os.getenv("LOG_FORMAT", "").strip().lower()
    if explicit in ("json", "readable"):
        return explicit == "json"
    return not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Default level is INFO in production and DEBUG elsewhere. Handlers are
    replaced, not appended, so building several apps in one process (tests)
    never duplicates output.
    """
    as_json = _wants_json(app)
    is_prod = not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)
    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # SQL echo and per-request werkzeug lines drown the repair log
    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if as_json else "readable")
