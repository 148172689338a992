"""
Engine-wide exception hierarchy.

Services and the transition engine raise these types; the application
factory registers one handler per type so every blueprint answers with the
same HTTP status and error envelope.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Demand", resource_id="dem-42")
    raise ValidationError("Justification is required", details={"justification": "required"})

A missing SLA rule (no config for a category/complexity pair) is not an
error: the evaluator reports "not breached" and carries on.
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Demand", "Person").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule, before anything is mutated.

    Examples: archiving without a justification, completing without a
    delivery summary, completing past the SLA without a delay justification,
    effort outside 0..10000 hours.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique key.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PersistenceError(Exception):
    """Raised when the persistence collaborator rejects or fails a write.

    Always retryable from the caller's point of view. The mutation
    coordinator restores the pre-call snapshot when it sees this.
    Maps to HTTP 503.
    """

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        self.detail = detail
        msg = f"Persistence failed during {operation}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
