"""JSON error envelope for the data-management API.

Every non-2xx response from ``/api/v1/data-management`` has the shape::

    {"error": "<message for the console>", "code": "ERR_*", "details": {...}}

``details`` is omitted when empty.

    from checkin_health.utils.errors import E, api_error, api_error_from

    return api_error(E.VALIDATION_REQUIRED, "weekStartDate is required")
    return api_error_from(exc)      # exc: one of checkin_health.core.exceptions
"""

from __future__ import annotations

from flask import jsonify

from checkin_health.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    ReferenceNotFoundError,
    ValidationError,
)


class E:
    """Machine-readable error codes."""

    # 400: request could not be parsed
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 422: parsed, but a business rule rejected it
    VALIDATION_RULE = "ERR_VALIDATION_RULE"
    REFERENCE_UNRESOLVED = "ERR_REFERENCE_UNRESOLVED"

    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.REFERENCE_UNRESOLVED: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

SLOT_TAKEN_MESSAGE = "A check-in already exists for this user and week"


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a view or error handler.

    The status comes from *status*, else the code's default, else 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS.get(code, 400)


def api_error_from(exc: Exception):
    """Translate a service-layer exception into the error envelope.

    Subclasses are matched before their parents, so a
    ReferenceNotFoundError is reported as unresolved, not as a plain rule
    violation. Store failures hide driver detail from the client.
    """
    if isinstance(exc, ReferenceNotFoundError):
        return api_error(E.REFERENCE_UNRESOLVED, str(exc), details=exc.details)
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, SLOT_TAKEN_MESSAGE, details={"field": exc.field, "value": exc.value})
    if isinstance(exc, InternalError):
        return api_error(E.DATABASE, "Check-in store unavailable")
    return api_error(E.INTERNAL, "Internal server error")
