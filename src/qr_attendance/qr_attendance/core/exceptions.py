class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthorizationError(DomainError):
    """Raised when a caller lacks permission for an action.

    ``status_code`` is 401 for missing or bad credentials and 403 when the key
    is fine but the teacher is unknown or does not own the resource.
    """

    def __init__(self, message: str = "Unauthorized", status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(DomainError):
    """Raised when a teacher-facing lookup targets a missing resource."""


class QueueFullError(DomainError):
    """Handed to ``on_failure`` when the write queue rejects work at capacity."""
