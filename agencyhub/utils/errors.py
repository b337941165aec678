"""
Agency Hub
Coded JSON error bodies.

    {"error": "<message>", "code": "ERR_...", "details": {...}}

Blueprints build one directly with ``api_error`` or hand a service exception
to ``exception_error``, which picks the code from the exception type:

    return api_error(E.VALIDATION_INVALID, "If-Match must be a version number")

    @workflow_bp.errorhandler(NotFoundError)
    def _handle(error):
        return exception_error(error)
"""

from __future__ import annotations

from flask import jsonify

from agencyhub.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)


class E:
    """Machine-readable error codes."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    RULE_VIOLATION = "ERR_RULE_VIOLATION"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.RULE_VIOLATION: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_VERSION: 409,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(jsonify(body), status)``; status defaults from the code, then 400."""
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)


def exception_error(error: Exception):
    """Map a service-layer exception to its coded response."""
    if isinstance(error, NotFoundError):
        return api_error(E.NOT_FOUND, str(error))
    if isinstance(error, VersionConflictError):
        return api_error(
            E.CONFLICT_VERSION, str(error),
            details={"expected_version": error.expected, "current_version": error.actual},
        )
    if isinstance(error, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})
    if isinstance(error, ValidationError):
        return api_error(E.RULE_VIOLATION, str(error), details=error.details)
    return api_error(E.INTERNAL, "Internal server error")
