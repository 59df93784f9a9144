"""
Scheduling engine facade.

Wires a review store, a card/deck repository and a clock together and exposes
the caller-facing operations. Holds no mutable scheduling state of its own;
everything lives in the store.

Usage:
    engine = SchedulingEngine.from_settings()
    entry = engine.submit_review("user-1", "card-9", 4, datetime.now(timezone.utc))
    session = engine.build_session("user-1", Scope.deck("deck-1"), "review-due", 20)
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime
from typing import Optional, Union

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from recall import analytics
from recall.analytics.types import DeckTally, TimezoneLike
from recall.clock import SystemClock
from recall.config import Settings, load_settings
from recall.deck_repo import DeckRepository, MongoDeckRepository
from recall.exceptions import NotFoundError, ValidationError
from recall.schemas import ReviewSubmission, SessionMode, SessionRequest
from recall.session_builders import QuizSession, Scope, build_session, select_due
from recall.session_builders.quiz_builder import parse_mode
from recall.srs.database import get_engine
from recall.srs.review_state import ReviewLogEntry, ReviewState
from recall.srs.store import ReviewStore, SqlReviewStore

logger = logging.getLogger(__name__)


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ()))
        parts.append(f"{field}: {error.get('msg')}" if field else error.get("msg", ""))
    return "; ".join(parts)


class SchedulingEngine:
    """
    Caller-facing entry point of the scheduler.

    Args:
        store: Review state store (SqlReviewStore, InMemoryReviewStore, ...)
        repo: Card/deck repository
        clock: Object with now() returning an aware datetime
        default_timezone: Timezone for "today" when a caller passes none
        rng: Random source for shuffled sessions
        timeout: Per store call timeout in seconds (None = store default)
    """

    def __init__(
        self,
        store: ReviewStore,
        repo: DeckRepository,
        clock=None,
        default_timezone: TimezoneLike = "UTC",
        rng: Optional[random.Random] = None,
        timeout: Optional[float] = None
    ):
        self.store = store
        self.repo = repo
        self.clock = clock or SystemClock()
        self.default_timezone = analytics.resolve_timezone(default_timezone)
        self.rng = rng or random.Random()
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        repo: Optional[DeckRepository] = None,
        clock=None
    ) -> "SchedulingEngine":
        """
        Build an engine from environment configuration (SQL store + MongoDB repository).
        """
        settings = settings or load_settings()
        store = SqlReviewStore(
            get_engine(settings.database_url),
            algorithm=settings.algorithm,
            max_retries=settings.store_max_retries,
            default_timeout=settings.store_timeout_seconds,
        )
        logger.info(
            "Scheduling engine using %s (algorithm=%s)",
            store.engine.url.render_as_string(hide_password=True), settings.algorithm
        )
        return cls(
            store=store,
            repo=repo or MongoDeckRepository(),
            clock=clock,
            default_timezone=settings.default_timezone,
        )

    def _tz(self, tz: TimezoneLike):
        return self.default_timezone if tz is None else analytics.resolve_timezone(tz)

    def _require_card(self, card_id: str) -> None:
        if not self.repo.card_exists(card_id):
            raise NotFoundError(f"Card {card_id} not found")

    # ---- Reviews ----

    def submit_review(
        self,
        user_id: str,
        card_id: str,
        quality: Union[int, float, bool],
        reviewed_at: Optional[datetime] = None,
        practice_mode: str = "review",
        response_time_ms: Optional[int] = None
    ) -> ReviewLogEntry:
        """
        Grade a card for a learner and return the resulting log entry.

        Args:
            quality: 0-5 score (clamped) or boolean correctness
            reviewed_at: Aware timestamp of the answer (None = clock.now())

        Raises:
            ValidationError: NaN quality, naive timestamp, review older than the last one
            NotFoundError: Unknown card
            ConflictError / UnavailableError: From the store
        """
        try:
            request = ReviewSubmission(
                user_id=user_id,
                card_id=card_id,
                quality=quality,
                reviewed_at=reviewed_at if reviewed_at is not None else self.clock.now(),
                practice_mode=practice_mode,
                response_time_ms=response_time_ms,
            )
        except PydanticValidationError as exc:
            raise ValidationError(_validation_message(exc)) from exc

        self._require_card(request.card_id)
        return self.store.submit_review(
            request.user_id,
            request.card_id,
            request.quality,
            request.reviewed_at,
            practice_mode=request.practice_mode,
            response_time_ms=request.response_time_ms,
            timeout=self.timeout,
        )

    def get_state(self, user_id: str, card_id: str) -> Optional[ReviewState]:
        """Current state of a card, or None if the learner never reviewed it."""
        self._require_card(card_id)
        return self.store.get_state(user_id, card_id, timeout=self.timeout)

    def delete_card(self, card_id: str) -> int:
        """Cascade a deleted card: drop its states and log entries for every learner."""
        return self.store.purge_card(card_id)

    # ---- Selection ----

    def select_due(
        self,
        user_id: str,
        scope: Scope,
        as_of: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> list[str]:
        """Due cards in scope, most overdue first."""
        return select_due(
            self.store, self.repo, user_id, scope,
            as_of if as_of is not None else self.clock.now(),
            limit=limit, timeout=self.timeout
        )

    def build_session(
        self,
        user_id: str,
        scope: Scope,
        mode: Union[SessionMode, str],
        count: int,
        shuffle: bool = False
    ) -> QuizSession:
        """Build a quiz session of up to count cards."""
        session_mode = parse_mode(mode)
        try:
            request = SessionRequest(user_id=user_id, mode=session_mode, count=count, shuffle=shuffle)
        except PydanticValidationError as exc:
            raise ValidationError(_validation_message(exc)) from exc

        return build_session(
            self.store, self.repo, request.user_id, scope, request.mode, request.count,
            now=self.clock.now(), shuffle=request.shuffle, rng=self.rng, timeout=self.timeout
        )

    # ---- Counters ----

    def count_today(self, user_id: str, scope: Scope, tz: TimezoneLike = None) -> dict[str, int]:
        """Reviews per deck during the learner's current local day."""
        return analytics.count_today(
            self.store, self.repo, user_id, scope, self.clock.now(), self._tz(tz), self.timeout
        )

    def tally_today(self, user_id: str, scope: Scope, tz: TimezoneLike = None) -> dict[str, DeckTally]:
        return analytics.tally_today(
            self.store, self.repo, user_id, scope, self.clock.now(), self._tz(tz), self.timeout
        )

    def daily_activity(
        self,
        user_id: str,
        scope: Scope,
        start_date: date,
        end_date: Optional[date] = None,
        tz: TimezoneLike = None
    ) -> pd.DataFrame:
        """Per-day review counts from start_date to end_date (default: today)."""
        zone = self._tz(tz)
        if end_date is None:
            end_date = self.clock.now().astimezone(zone).date()
        return analytics.daily_activity(
            self.store, self.repo, user_id, scope, start_date, end_date, zone, self.timeout
        )
