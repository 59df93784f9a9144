"""
FSRS-style Updates

A lightweight stability/difficulty approximation of FSRS. It is not the
published FSRS model; the curve is a pluggable strategy whose only promises
are that it is monotonic in quality and bounded below.

Formulas:
    D' = max(0.1, D + 0.1 - (5 - q) * (0.02 + (5 - q) * 0.01))
    S' = max(0.1, S * exp(((q - 3) * elapsed_days) / (D' * 10)))
    interval = S' * D'
"""

from __future__ import annotations
from dataclasses import replace
import math

from recall.srs.constants import D_MIN, DIFFICULTY_SCALE, PASSING_QUALITY, S_MAX, S_MIN
from recall.srs.review_state import ReviewState, clamp_quality


def update_difficulty(difficulty: float, quality: float) -> float:
    penalty = 5.0 - quality
    return max(D_MIN, difficulty + 0.1 - penalty * (0.02 + penalty * 0.01))


def update_stability(stability: float, difficulty: float, quality: float, elapsed_days: float) -> float:
    """
    Grow (q > 3) or shrink (q < 3) stability in proportion to elapsed time.

    Same-day reviews (elapsed_days == 0) leave stability unchanged apart
    from the floor.
    """
    exponent = ((quality - PASSING_QUALITY) * elapsed_days) / (difficulty * DIFFICULTY_SCALE)
    # math.exp overflows past ~709
    exponent = min(exponent, 700.0)
    return min(S_MAX, max(S_MIN, stability * math.exp(exponent)))


def update(state: ReviewState, quality: float, elapsed_days: float) -> ReviewState:
    """
    FSRS-style review update. Pure and total over clamped inputs.

    Args:
        state: Previous review state
        quality: Quality score (clamped into 0-5)
        elapsed_days: Days since previous review (negative/NaN treated as 0)

    Returns:
        New state with stability, difficulty, interval and repetitions updated
    """
    q = clamp_quality(quality)
    elapsed = float(elapsed_days)
    if math.isnan(elapsed) or elapsed < 0:
        elapsed = 0.0

    new_difficulty = update_difficulty(max(D_MIN, state.difficulty), q)
    new_stability = update_stability(max(S_MIN, state.stability), new_difficulty, q, elapsed)

    repetitions = 0 if q < PASSING_QUALITY else state.repetition_count + 1

    return replace(
        state,
        difficulty=new_difficulty,
        stability=new_stability,
        interval_days=new_stability * new_difficulty,
        repetition_count=repetitions,
    )
