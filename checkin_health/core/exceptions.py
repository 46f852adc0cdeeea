"""
Exceptions raised by the check-in services.

The data-management blueprint turns each type into a JSON error through
``utils.errors.api_error_from``. Integrity anomalies are report rows, not
exceptions.

Usage:
    from checkin_health.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Checkin", checkin_id)
    raise ValidationError("weekStartDate is in the future", details={"weekStartDate": "2024-06-10"})
"""


class NotFoundError(Exception):
    """A check-in targeted by a repair does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ValidationError(Exception):
    """Input parsed but breaks a rule: future week, bad date, unknown status filter.

    ``details`` maps the offending field to the value that was rejected.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ReferenceNotFoundError(ValidationError):
    """An organization or user id that the directory cannot resolve."""

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        field = "organizationId" if resource == "Organization" else "userId"
        super().__init__(f"{resource} id={resource_id} does not exist", details={field: resource_id})


class ConflictError(Exception):
    """The (organization, user, week) slot is already taken by another check-in.

    ``field`` names the unique key and ``value`` the colliding tuple.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InternalError(Exception):
    """Store or directory failure (lost connection, lock timeout).

    Keeps SQLAlchemy exception types inside the service layer.
    """

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"{operation} failed{suffix}")
