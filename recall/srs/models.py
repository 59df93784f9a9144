"""
SQLAlchemy ORM Models for the Review Store

Defines ReviewState and ReviewLog tables.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ReviewStateModel(Base):
    """
    Persistent scheduling state for a single (user_id, card_id) pair.
    """
    __tablename__ = 'review_state'

    # Primary key: composite of user_id and card_id
    user_id = Column(String(255), primary_key=True, nullable=False)
    card_id = Column(String(255), primary_key=True, nullable=False)

    # Scheduling parameters
    interval_days = Column(Float, nullable=False, default=0.0)
    ease_factor = Column(Float, nullable=False)  # SM-2
    stability = Column(Float, nullable=False)  # FSRS-style
    difficulty = Column(Float, nullable=False)  # FSRS-style

    # Review tracking
    repetition_count = Column(Integer, nullable=False, default=0)
    review_count = Column(Integer, nullable=False, default=0)
    lapse_count = Column(Integer, nullable=False, default=0)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    next_review_at = Column(DateTime(timezone=True), nullable=True)

    algorithm = Column(String(50), nullable=False)

    # Compare-and-swap column
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index('idx_review_state_user_due', 'user_id', 'next_review_at'),
        Index('idx_review_state_card', 'card_id'),
    )

    def __repr__(self):
        return f"<ReviewState({self.user_id}, {self.card_id}, v{self.version})>"


class ReviewLogModel(Base):
    """
    Append-only log entry for a single grading event.
    """
    __tablename__ = 'review_log'

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(String(255), nullable=False)
    card_id = Column(String(255), nullable=False)

    # Grading
    quality = Column(Float, nullable=False)  # 0-5
    is_correct = Column(Boolean, nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=False)
    elapsed_days = Column(Float, nullable=False)

    # Resulting state snapshot
    interval_days = Column(Float, nullable=False)
    ease_factor = Column(Float, nullable=False)
    stability = Column(Float, nullable=False)
    difficulty = Column(Float, nullable=False)
    repetition_count = Column(Integer, nullable=False)
    next_review_at = Column(DateTime(timezone=True), nullable=False)
    algorithm = Column(String(50), nullable=False)

    # Context (optional, for analytics)
    practice_mode = Column(String(50), nullable=False, default="review")
    response_time_ms = Column(Integer, nullable=True)

    __table_args__ = (
        # Range queries for daily counters
        Index('idx_review_log_user_time', 'user_id', 'reviewed_at'),
        Index('idx_review_log_user_card', 'user_id', 'card_id'),
        Index('idx_review_log_card', 'card_id'),
    )

    def __repr__(self):
        return f"<ReviewLog(id={self.id}, {self.user_id}/{self.card_id}, q={self.quality})>"
