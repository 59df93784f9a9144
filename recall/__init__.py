"""
Spaced-repetition scheduling engine.
"""

from recall.clock import FixedClock, SystemClock
from recall.engine import SchedulingEngine
from recall.exceptions import (
    ConflictError,
    NotFoundError,
    RecallError,
    UnavailableError,
    ValidationError,
    is_retryable,
)
from recall.schemas import SessionMode
from recall.session_builders import QuizSession, Scope

__all__ = [
    "FixedClock",
    "SystemClock",
    "SchedulingEngine",
    "ConflictError",
    "NotFoundError",
    "RecallError",
    "UnavailableError",
    "ValidationError",
    "is_retryable",
    "SessionMode",
    "QuizSession",
    "Scope",
]
