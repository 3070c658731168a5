"""
core/errors.py -- Domain error taxonomy shared by services and the API layer.

Services raise these; api/main.py turns every AppError into the same
{"success": false, "message", "code", "errors"?} envelope. Anything that is
not an AppError is an internal error and is reported as a generic 500.

NotFound is deliberately used both for "does not exist" and "exists but is
outside the caller's department scope" so callers cannot probe for records
they are not allowed to see.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map to a client-facing HTTP status."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, errors: list[dict] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Access forbidden. Insufficient permissions."


class ValidationFailed(AppError):
    """Malformed input. errors carries [{"field": ..., "message": ...}]."""

    status_code = 400
    code = "validation_error"
    default_message = "Validation errors"


class Conflict(AppError):
    """Uniqueness violation. Reported as 400 with a fixed message per entity."""

    status_code = 400
    code = "conflict"
    default_message = "Resource already exists."


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found or access denied."
