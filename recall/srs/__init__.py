"""
Spaced-repetition core: update functions and the review state store.

Quick start:
    from recall import srs

    # Pure update (no I/O)
    state, event_data = srs.apply_review(state, quality=4, reviewed_at=now)

    # Persisted reviews
    store = srs.SqlReviewStore(srs.get_engine())
    entry = store.submit_review("user-1", "card-1", 5, now)
"""

# Constants and parameters
from recall.srs.constants import (
    ALGORITHM_FSRS,
    ALGORITHM_SM2,
    DEFAULT_ALGORITHM,
    MIN_EASE_FACTOR,
    PASSING_QUALITY,
    QualityGrade,
)

# State types
from recall.srs.review_state import (
    ReviewLogEntry,
    ReviewState,
    ReviewTally,
    is_due,
    new_review_state,
    normalize_quality,
)

# Core algorithm API
from recall.srs.scheduler import (
    ALGORITHMS,
    apply_review,
    get_update_function,
    register_algorithm,
    replay_reviews,
)

# Persistence
from recall.srs.database import get_engine, init_db, reset_db
from recall.srs.store import ReviewStore, SqlReviewStore
from recall.srs.memory_store import InMemoryReviewStore


__all__ = [
    # Constants
    "ALGORITHM_FSRS",
    "ALGORITHM_SM2",
    "DEFAULT_ALGORITHM",
    "MIN_EASE_FACTOR",
    "PASSING_QUALITY",
    "QualityGrade",

    # State
    "ReviewLogEntry",
    "ReviewState",
    "ReviewTally",
    "is_due",
    "new_review_state",
    "normalize_quality",

    # Algorithms
    "ALGORITHMS",
    "apply_review",
    "get_update_function",
    "register_algorithm",
    "replay_reviews",

    # Stores
    "get_engine",
    "init_db",
    "reset_db",
    "ReviewStore",
    "SqlReviewStore",
    "InMemoryReviewStore",
]
