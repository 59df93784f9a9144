"""
Exceptions raised by the scheduling engine.

Request errors: ValidationError, NotFoundError.
Transient (retryable) errors: ConflictError, UnavailableError.
"""


class RecallError(Exception):
    """Base exception for all scheduling engine errors."""
    pass


class ValidationError(RecallError):
    """Raised when a quality score, timestamp or request parameter is malformed."""
    pass


class NotFoundError(RecallError):
    """Raised when a card, deck or goal does not exist or is not visible."""
    pass


class ConflictError(RecallError):
    """Raised when concurrent writes to the same review state could not be serialized."""
    pass


class UnavailableError(RecallError):
    """Raised when the underlying store or repository failed or timed out."""
    pass


def is_retryable(exc: BaseException) -> bool:
    """True for errors a caller may retry (conflicts and outages)."""
    return isinstance(exc, (ConflictError, UnavailableError))
