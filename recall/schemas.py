"""
Pydantic models for requests crossing the engine boundary.

Validation failures are re-raised as recall.exceptions.ValidationError by
the engine so callers deal with a single error taxonomy.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator


class SessionMode(str, Enum):
    """Which cards a quiz session draws from."""
    NEW = "new"                # Never reviewed
    ALL = "all"                # Everything in scope
    REVIEW_DUE = "review-due"  # Due now


class ReviewSubmission(BaseModel):
    """A single grading event submitted by a learner."""
    user_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    # float first: a lax bool would read the score 1 as True
    quality: Union[float, bool] = Field(..., description="0-5 score, or correctness")
    reviewed_at: datetime
    practice_mode: str = Field("review", min_length=1, max_length=50)
    response_time_ms: Optional[int] = Field(None, ge=0)

    @field_validator("quality")
    @classmethod
    def quality_is_finite(cls, value):
        if not isinstance(value, bool) and math.isnan(value):
            raise ValueError("quality must be a number, got NaN")
        return value

    @field_validator("reviewed_at")
    @classmethod
    def reviewed_at_is_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("reviewed_at must be timezone-aware")
        return value


class SessionRequest(BaseModel):
    """Parameters for building a quiz session."""
    user_id: str = Field(..., min_length=1)
    mode: SessionMode
    count: int = Field(..., ge=0)
    shuffle: bool = False
