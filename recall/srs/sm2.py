"""
SM-2 Updates

Textbook SuperMemo-2 state transition.

Rules:
- Ease factor: EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3
- q < 3 (lapse): repetitions reset to 0, interval restarts at 1 day
- q >= 3: repetitions += 1; interval is 1 day, then 6 days,
  then ceil(previous_interval * EF')
"""

from __future__ import annotations
from dataclasses import replace
import math

from recall.srs.constants import (
    FIRST_INTERVAL_DAYS,
    LAPSE_INTERVAL_DAYS,
    MIN_EASE_FACTOR,
    PASSING_QUALITY,
    SECOND_INTERVAL_DAYS,
)
from recall.srs.review_state import ReviewState, clamp_quality


def update_ease_factor(ease_factor: float, quality: float) -> float:
    """
    Apply the SM-2 ease adjustment for a quality score.

    Args:
        ease_factor: Current ease factor
        quality: Clamped quality score (0-5)

    Returns:
        New ease factor, never below 1.3
    """
    penalty = 5.0 - quality
    new_ease = ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02))
    return max(MIN_EASE_FACTOR, new_ease)


def next_interval(repetition_count: int, previous_interval: float, ease_factor: float) -> float:
    """
    Interval for the given (already incremented) repetition count.
    """
    if repetition_count == 1:
        return float(FIRST_INTERVAL_DAYS)
    if repetition_count == 2:
        return float(SECOND_INTERVAL_DAYS)
    # Round away float noise (15 * 2.2 == 33.000000000000004) before ceil
    return float(math.ceil(round(previous_interval * ease_factor, 9)))


def update(state: ReviewState, quality: float, elapsed_days: float) -> ReviewState:
    """
    SM-2 review update. Pure; elapsed_days is accepted for contract
    compatibility but SM-2 does not use it.

    Args:
        state: Previous review state
        quality: Quality score (clamped into 0-5)
        elapsed_days: Days since previous review (unused)

    Returns:
        New state with interval, ease factor and repetition count updated
    """
    q = clamp_quality(quality)
    new_ease = update_ease_factor(state.ease_factor, q)

    if q < PASSING_QUALITY:
        return replace(
            state,
            ease_factor=new_ease,
            repetition_count=0,
            interval_days=float(LAPSE_INTERVAL_DAYS),
        )

    repetitions = state.repetition_count + 1
    return replace(
        state,
        ease_factor=new_ease,
        repetition_count=repetitions,
        interval_days=next_interval(repetitions, state.interval_days, new_ease),
    )
