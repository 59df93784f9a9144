"""
Scheduler - Review Update Logic

Pure scheduling and state updates (no database calls).

Main workflow:
1. Load review state (caller's responsibility)
2. Compute elapsed days since the previous review
3. Run the configured update function (SM-2 or FSRS-style)
4. Stamp last/next review timestamps
5. Return updated state + event data dict

This module handles ONLY the algorithm logic.
Persistence is handled by the store modules.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple, Union

from recall.exceptions import ValidationError
from recall.srs import fsrs_style, sm2
from recall.srs.constants import (
    ALGORITHM_FSRS,
    ALGORITHM_SM2,
    DEFAULT_ALGORITHM,
    MAX_INTERVAL_DAYS,
)
from recall.srs.review_state import (
    ReviewLogEntry,
    ReviewState,
    due_at,
    elapsed_days_between,
    is_passing,
    new_review_state,
    normalize_quality,
    to_utc,
)


UpdateFunction = Callable[[ReviewState, float, float], ReviewState]

ALGORITHMS: dict[str, UpdateFunction] = {
    ALGORITHM_SM2: sm2.update,
    ALGORITHM_FSRS: fsrs_style.update,
}


def get_update_function(algorithm: str) -> UpdateFunction:
    """
    Look up an update function by name.

    Raises:
        ValidationError: If the algorithm is not registered
    """
    try:
        return ALGORITHMS[algorithm]
    except KeyError:
        raise ValidationError(
            f"Unknown scheduling algorithm {algorithm!r}; "
            f"expected one of {sorted(ALGORITHMS)}"
        )


def register_algorithm(name: str, update: UpdateFunction) -> None:
    """Plug in an alternative update function (e.g. a full FSRS model)."""
    ALGORITHMS[name] = update


def apply_review(
    state: ReviewState,
    quality: Union[int, float, bool],
    reviewed_at: datetime,
    algorithm: str = DEFAULT_ALGORITHM
) -> Tuple[ReviewState, dict]:
    """
    Apply one graded review to a state and return the new state + event data.

    Caller is responsible for:
    1. Loading the state (or starting from new_review_state)
    2. Persisting the new state
    3. Appending the event to the review log

    Args:
        state: Current state (a default state for never-reviewed cards)
        quality: Quality score 0-5, or boolean correctness
        reviewed_at: Timezone-aware review timestamp
        algorithm: Registered algorithm name

    Returns:
        Tuple of (new_state, event_data)

    Raises:
        ValidationError: Naive timestamp, review older than the previous one,
            or unknown algorithm
    """
    update = get_update_function(algorithm)
    reviewed_at = to_utc(reviewed_at)
    q = normalize_quality(quality)
    elapsed = elapsed_days_between(state.last_reviewed_at, reviewed_at)

    updated = update(state, q, elapsed)
    interval = min(updated.interval_days, MAX_INTERVAL_DAYS)
    passed = is_passing(q)

    new_state = replace(
        updated,
        interval_days=interval,
        last_reviewed_at=reviewed_at,
        next_review_at=due_at(reviewed_at, interval),
        review_count=state.review_count + 1,
        lapse_count=state.lapse_count + (0 if passed else 1),
        algorithm=algorithm,
    )

    event_data = {
        'user_id': new_state.user_id,
        'card_id': new_state.card_id,
        'quality': q,
        'is_correct': passed,
        'reviewed_at': reviewed_at,
        'elapsed_days': elapsed,
        'interval_days': new_state.interval_days,
        'ease_factor': new_state.ease_factor,
        'stability': new_state.stability,
        'difficulty': new_state.difficulty,
        'repetition_count': new_state.repetition_count,
        'next_review_at': new_state.next_review_at,
        'algorithm': algorithm,
    }

    return new_state, event_data


def replay_reviews(
    user_id: str,
    card_id: str,
    entries: Iterable[ReviewLogEntry],
    algorithm: str = DEFAULT_ALGORITHM
) -> Optional[ReviewState]:
    """
    Rebuild a card's state by replaying its review log in chronological order.

    Returns None when there is nothing to replay (the card stays new).
    """
    ordered = sorted(
        (e for e in entries if e.user_id == user_id and e.card_id == card_id),
        key=lambda e: (e.reviewed_at, e.id or 0)
    )
    if not ordered:
        return None

    state = new_review_state(user_id, card_id, algorithm)
    for entry in ordered:
        state, _ = apply_review(state, entry.quality, entry.reviewed_at, algorithm)
    return state
