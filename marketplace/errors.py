"""
Domain error taxonomy.

Services raise these; the API layer maps each kind to an HTTP status
(see main.domain_error_handler). DependencyUnavailable raised by the cache
store is always recovered inside the cache layer and never reaches a handler.
"""


class DomainError(Exception):
    """Base class for every business-rule failure."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFound(DomainError):
    kind = "not_found"
    status_code = 404


class Forbidden(DomainError):
    kind = "forbidden"
    status_code = 403


class Conflict(DomainError):
    kind = "conflict"
    status_code = 409


class InvalidState(DomainError):
    kind = "invalid_state"
    status_code = 400


class ValidationFailed(DomainError):
    kind = "validation_failed"
    status_code = 422


class DependencyUnavailable(DomainError):
    kind = "dependency_unavailable"
    status_code = 503


# ── Specific failures ────────────────────────────────────────────────────


class SlotNotFound(NotFound):
    """No slot with the requested start time exists on that day."""


class SlotAlreadyBooked(Conflict):
    """The slot is held by another booking."""


class SlotMismatch(Conflict):
    """The slot is not held by the booking trying to release it."""


class SlotConflict(Conflict):
    """Another non-terminal booking occupies provider/date/time."""

    def __init__(self, message: str = "Provider is not available at this time"):
        super().__init__(message)


class InvalidStatus(ValidationFailed):
    """Target booking status is not part of the state machine."""


class InsufficientBalance(ValidationFailed):
    pass
