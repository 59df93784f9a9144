"""
Types for review analytics.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Union


TimezoneLike = Union[str, tzinfo, None]


@dataclass(frozen=True)
class DeckTally:
    """
    Reviews and correct answers logged against one deck in a window.
    """
    reviewed: int = 0
    correct: int = 0

    @property
    def success_rate(self) -> float:
        return self.correct / self.reviewed if self.reviewed else 0.0
