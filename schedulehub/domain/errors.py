"""Domain exceptions raised by scheduling services.

Every exception carries a human-readable message; the HTTP layer maps the
class to a status code.
"""

from __future__ import annotations

from typing import Optional


class SchedulingError(Exception):
    """Base class for all domain errors."""

    code = "scheduling_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(SchedulingError):
    code = "not_found"

    def __init__(self, entity: str, identifier: Optional[str] = None, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} not found")


class InvalidStateError(SchedulingError):
    code = "invalid_state"

    def __init__(self, message: str, *, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message)


class ExpiredError(SchedulingError):
    code = "expired"


class ValidationError(SchedulingError):
    code = "validation_error"

    def __init__(self, message: str, *, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ConflictError(SchedulingError):
    code = "conflict"


class CollaboratorError(SchedulingError):
    """Failure reported by an external service (calendar, ATS, email)."""

    code = "collaborator_error"
    retryable = False

    def __init__(self, service: str, message: str, *, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class RetryableCollaboratorError(CollaboratorError):
    """Network errors, timeouts, 429 and 5xx responses."""

    retryable = True


class TerminalCollaboratorError(CollaboratorError):
    """Auth failures and 4xx responses other than 429."""

    retryable = False


def collaborator_error_for_status(service: str, status_code: int, message: str) -> CollaboratorError:
    if status_code == 429 or status_code >= 500:
        return RetryableCollaboratorError(service, message, status_code=status_code)
    return TerminalCollaboratorError(service, message, status_code=status_code)


__all__ = [
    "CollaboratorError",
    "ConflictError",
    "ExpiredError",
    "InvalidStateError",
    "NotFoundError",
    "RetryableCollaboratorError",
    "SchedulingError",
    "TerminalCollaboratorError",
    "ValidationError",
    "collaborator_error_for_status",
]
