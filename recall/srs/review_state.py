"""
Review State - per (user, card) scheduling memory and log records.

Key concepts:
- ReviewState: the mutable scheduling memory of one learner for one card
- ReviewLogEntry: an immutable record of one grading event
- A card with no ReviewState has never been reviewed and is due immediately
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import math

from recall.exceptions import ValidationError
from recall.srs.constants import (
    DEFAULT_ALGORITHM,
    DEFAULT_DIFFICULTY,
    DEFAULT_EASE_FACTOR,
    DEFAULT_STABILITY,
    MAX_QUALITY,
    MIN_QUALITY,
    PASSING_QUALITY,
    QUALITY_CORRECT,
    QUALITY_INCORRECT,
)


@dataclass(frozen=True)
class ReviewState:
    """
    Scheduling state for a single (user, card) pair.

    Both parameter families are carried so a card can be moved between
    algorithms without losing history.
    """
    user_id: str
    card_id: str

    interval_days: float = 0.0
    ease_factor: float = DEFAULT_EASE_FACTOR  # SM-2, floored at 1.3
    stability: float = DEFAULT_STABILITY      # FSRS-style
    difficulty: float = DEFAULT_DIFFICULTY    # FSRS-style

    repetition_count: int = 0  # Consecutive passes since last lapse
    review_count: int = 0      # All graded events
    lapse_count: int = 0

    next_review_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None

    algorithm: str = DEFAULT_ALGORITHM
    version: int = 0  # Bumped on every write (compare-and-swap)


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    Immutable record of a single grading event and the state it produced.
    """
    id: Optional[int]
    user_id: str
    card_id: str
    quality: float
    is_correct: bool
    reviewed_at: datetime
    elapsed_days: float
    interval_days: float
    ease_factor: float
    stability: float
    difficulty: float
    repetition_count: int
    next_review_at: datetime
    algorithm: str
    practice_mode: str = "review"
    response_time_ms: Optional[int] = None


@dataclass(frozen=True)
class ReviewTally:
    """Review and success counts for one card over a time window."""
    reviewed: int = 0
    correct: int = 0


def new_review_state(user_id: str, card_id: str, algorithm: str = DEFAULT_ALGORITHM) -> ReviewState:
    """Default state for a card that has never been reviewed."""
    return ReviewState(user_id=user_id, card_id=card_id, algorithm=algorithm)


# ---- Quality helpers ----

def clamp_quality(quality: float) -> float:
    """
    Clamp a quality score into [0, 5].

    NaN is treated as total failure so update functions stay total.
    """
    quality = float(quality)
    if math.isnan(quality):
        return MIN_QUALITY
    return max(MIN_QUALITY, min(MAX_QUALITY, quality))


def normalize_quality(quality: Union[int, float, bool]) -> float:
    """
    Turn a raw score (0-5 number or boolean correctness) into a clamped quality.
    """
    if isinstance(quality, bool):
        return float(QUALITY_CORRECT if quality else QUALITY_INCORRECT)
    return clamp_quality(quality)


def is_passing(quality: float) -> bool:
    return quality >= PASSING_QUALITY


# ---- Time helpers ----

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Some backends (SQLite) hand back naive datetimes; those are UTC by
    construction because every write goes through to_utc().
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """
    Convert a caller-supplied timestamp to UTC, rejecting naive datetimes.
    """
    if not isinstance(value, datetime):
        raise ValidationError(f"Timestamp must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError("Timestamp must be timezone-aware")
    return value.astimezone(timezone.utc)


def elapsed_days_between(last_reviewed_at: Optional[datetime], reviewed_at: datetime) -> float:
    """
    Days elapsed since the previous review (0 for a first review).

    Raises:
        ValidationError: If the review predates the previous one
    """
    if last_reviewed_at is None:
        return 0.0
    delta = to_utc(reviewed_at) - ensure_utc(last_reviewed_at)
    elapsed = delta.total_seconds() / 86400.0
    if math.isnan(elapsed) or elapsed < 0:
        raise ValidationError(
            f"Review at {reviewed_at.isoformat()} predates the previous review "
            f"at {last_reviewed_at.isoformat()}"
        )
    return elapsed


def due_at(reviewed_at: datetime, interval_days: float) -> datetime:
    """next_review_at = reviewed_at + interval_days."""
    return to_utc(reviewed_at) + timedelta(days=interval_days)


def is_due(state: Optional[ReviewState], as_of: datetime) -> bool:
    """A card is due when it was never reviewed or its next review has passed."""
    if state is None or state.next_review_at is None:
        return True
    return ensure_utc(state.next_review_at) <= to_utc(as_of)
