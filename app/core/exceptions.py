"""
Platform-wide exception hierarchy.

Services raise these; the blueprint registers one handler per type and maps
each to a stable HTTP status and ``api_error`` code. Nothing here is retried
automatically.

Usage:
    from app.core.exceptions import NotFoundError, AssignmentFinalizedError

    raise NotFoundError(resource="TestAssignment", resource_id=42)
    raise AssignmentFinalizedError(assignment_id=42)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for genuinely missing records, tombstoned records, cross-tenant
    lookups and assignments hidden by the visibility filter alike, so a
    caller cannot probe for the existence of rows it may not see.

    Args:
        resource: Human-readable model name (e.g. "Test", "TestAssignment").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Examples: assigning a draft test, recording an unknown step status,
    a step index outside the test definition.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique record. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field pair) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class DuplicateAssignmentError(ConflictError):
    """An active assignment already exists for this (test, assignee) pair.

    Recoverable: the caller should load the existing assignment instead.
    """

    def __init__(self, test_id: int, assignee_id: int, existing_id: int | None = None) -> None:
        self.test_id = test_id
        self.assignee_id = assignee_id
        self.existing_id = existing_id
        super().__init__("TestAssignment", "(test_id, assignee_id)", f"({test_id}, {assignee_id})")


class AssignmentFinalizedError(Exception):
    """A ``done`` assignment was asked to change its ledger or notes.

    Recoverable only through an explicit reassign by a manager. Maps to HTTP 409.
    """

    def __init__(self, assignment_id: int, action: str | None = None) -> None:
        self.assignment_id = assignment_id
        self.action = action
        msg = f"TestAssignment id={assignment_id} is finalized"
        if action:
            msg += f"; '{action}' requires a reassign first"
        super().__init__(msg)


class ForbiddenError(Exception):
    """The caller's role does not allow the operation. Not retryable. Maps to HTTP 403.

    Args:
        action: Operation that was refused (e.g. "reassign").
        role: The caller's org role, if known.
    """

    def __init__(self, action: str, role: str | None = None) -> None:
        self.action = action
        self.role = role
        msg = f"Not allowed to {action}"
        if role:
            msg += f" with role '{role}'"
        super().__init__(msg)
