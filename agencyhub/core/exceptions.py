"""
Application-wide exception hierarchy.

Services raise these; blueprints register one handler per type and map them
to HTTP status codes:

    NotFoundError         → 404
    ValidationError       → 422
    ConflictError         → 409
    VersionConflictError  → 409  (stale If-Match / expected_version)

Usage:
    from agencyhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Step must be assigned before completion",
                          details={"step_id": "project_brief"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Workflow step").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Malformed input (missing field, wrong type) is answered with 400 directly
    in the blueprint; this one maps to 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class VersionConflictError(ConflictError):
    """Raised when a save carries a stale version of a versioned document."""

    def __init__(self, resource: str, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        Exception.__init__(
            self,
            f"{resource} was modified concurrently (expected version {expected}, current {actual})",
        )
        self.resource = resource
        self.field = "version"
        self.value = str(actual)
