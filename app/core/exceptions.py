"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once (see ``app.utils.errors.register_service_error_handlers``) and get
consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Stage", resource_id=42)
    raise ValidationError("Description is too short", details={"description": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Stage", "Deliverable").
        resource_id: The PK that was looked up. Included in logs and message.
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
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a rule
    (description too short, attachment of the wrong MIME class, bad index).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class AuthorizationError(Exception):
    """Raised when the caller may not perform an action.

    Covers both "not executor / team member of this stage" and "role
    lacks the required capability or permission". Maps to HTTP 403.

    Args:
        user_id: The acting user (logged, not returned to clients).
        action: Short action name, e.g. "submit_deliverable".
        reason: Human-readable explanation.
    """

    def __init__(self, reason: str, user_id: int | None = None, action: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        super().__init__(reason)


class TransitionError(Exception):
    """Raised when a stage, deliverable or checklist submission is not in a
    state that permits the requested action.

    Maps to HTTP 409.
    """

    def __init__(self, entity: str, action: str, current: str | None, reason: str | None = None) -> None:
        msg = f"Cannot '{action}' {entity} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.entity = entity
        self.action = action
        self.current_status = current
