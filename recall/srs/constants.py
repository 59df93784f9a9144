"""
Scheduling Constants and Parameters

All configurable parameters for the SM-2 and FSRS-style update functions
in one place.
"""

from enum import IntEnum


# ---- Quality Scores ----

class QualityGrade(IntEnum):
    """Learner's self-assessed recall grade (0-5 scale)."""
    BLACKOUT = 0     # Total failure
    WRONG = 1        # Wrong, answer recognised once shown
    WRONG_EASY = 2   # Wrong, but the answer felt familiar
    HARD = 3         # Correct with serious difficulty
    GOOD = 4         # Correct after hesitation
    PERFECT = 5      # Perfect recall


MIN_QUALITY = 0.0
MAX_QUALITY = 5.0
PASSING_QUALITY = 3  # Below this a review is a lapse

# Simplified correct/incorrect mode
QUALITY_CORRECT = QualityGrade.PERFECT
QUALITY_INCORRECT = QualityGrade.WRONG_EASY


# ---- SM-2 Parameters ----

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
FIRST_INTERVAL_DAYS = 1   # After the first successful repetition
SECOND_INTERVAL_DAYS = 6  # After the second successful repetition
LAPSE_INTERVAL_DAYS = 1   # A failed review always restarts here


# ---- FSRS-style Parameters ----

S_MIN = 0.1              # Stability floor (days)
D_MIN = 0.1              # Difficulty floor
DEFAULT_STABILITY = S_MIN
DEFAULT_DIFFICULTY = 1.0
DIFFICULTY_SCALE = 10.0  # Divides the stability exponent
S_MAX = 36500.0          # Stability ceiling (days)


# ---- Shared ----

MAX_INTERVAL_DAYS = 36500.0  # Keeps next_review_at representable as a datetime


# ---- Algorithm names ----

ALGORITHM_SM2 = "sm2"
ALGORITHM_FSRS = "fsrs"
DEFAULT_ALGORITHM = ALGORITHM_SM2
