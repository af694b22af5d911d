"""
Service-wide exception hierarchy.

All services raise these types; ``create_app`` registers one error handler
per type so every blueprint gets the same HTTP status codes and JSON body.

Two families:
  - Platform errors (NotFoundError, ValidationError, ConflictError,
    ExternalServiceError) shared by every module.
  - Lifecycle errors (InvalidTransition, GuardFailed, AlreadyConfigured,
    AlreadyFinalized) raised by the application state machine. A lifecycle
    error is always raised before anything is written, so the application
    snapshot is left exactly as it was loaded.

Usage:
    from app.core.exceptions import NotFoundError, GuardFailed

    raise NotFoundError(resource="Application", resource_id=42)
    raise GuardFailed("request_interview", "interview_documents_required",
                      "2 required document(s) not uploaded")
"""


class NotFoundError(Exception):
    """Raised when a referenced application, document type or document does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Application", "DocumentType").
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
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 400 in the factory error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a duplicate unique value or a lost concurrent update.

    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ExternalServiceError(Exception):
    """Raised when a collaborator call (blob store, draft generator) fails.

    Maps to HTTP 502. Never raised after a lifecycle commit: by then the
    failure is logged and the transition stands.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")


# ── Lifecycle errors ─────────────────────────────────────────────────────────


class LifecycleError(Exception):
    """Base for every rejected lifecycle event."""

    def __init__(
        self,
        event: str | None,
        current_status: str | None,
        reason: str | None = None,
        details: dict | None = None,
    ) -> None:
        msg = f"Cannot '{event}' application (status={current_status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.event = event
        self.current_status = current_status
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {
            "event": self.event,
            "current_status": self.current_status,
            "reason": self.reason,
        }
        if self.details:
            body.update(self.details)
        return body


class InvalidTransition(LifecycleError):
    """Event not permitted from the current status (includes terminal states)."""


class GuardFailed(LifecycleError):
    """Event permitted from this status but its preconditions are unmet."""


class AlreadyConfigured(LifecycleError):
    """Attempt to reconfigure a stage whose document set is locked."""


class AlreadyFinalized(LifecycleError):
    """Attempt to re-write a once-only field (interview result, a stamped timestamp)."""
