"""
Review State Store - contract and SQLAlchemy backend.

Owns per-(user, card) ReviewState and the append-only review log.
submit_review() is the single write path: it reads the current state,
runs the configured update function, persists the new state and appends
the log entry in one transaction.

Concurrency:
- Writes for the same (user, card) are serialized by a per-key lock and,
  across processes, by compare-and-swap on review_state.version.
- Writes for different cards never share a lock.
- Purges wait for in-flight reviews of their card or user. A review whose
  state row vanished between attempts was purged by another process and
  fails with NotFoundError instead of recreating the state.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence, Union

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from recall.exceptions import ConflictError, NotFoundError, RecallError, UnavailableError
from recall.srs.constants import DEFAULT_ALGORITHM
from recall.srs.database import init_db, make_session_factory
from recall.srs.locks import Deadline, KeyedLocks, PurgeGates
from recall.srs.models import ReviewLogModel, ReviewStateModel
from recall.srs.review_state import (
    ReviewLogEntry,
    ReviewState,
    ReviewTally,
    ensure_utc,
    new_review_state,
    to_utc,
)
from recall.srs.scheduler import apply_review, get_update_function

logger = logging.getLogger(__name__)

Quality = Union[int, float, bool]

# Keep IN (...) lists well under driver parameter limits
_CHUNK_SIZE = 500


def _chunks(items: Sequence[str], size: int = _CHUNK_SIZE) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _unique(card_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(card_ids))


class ReviewStore(ABC):
    """
    Storage contract for review states and the review log.

    Every call accepts a timeout in seconds (None falls back to the store's
    default_timeout; a default of None means unbounded).
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, default_timeout: Optional[float] = None):
        get_update_function(algorithm)  # fail fast on unknown names
        self.algorithm = algorithm
        self.default_timeout = default_timeout

    def _deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(self.default_timeout if timeout is None else timeout)

    @abstractmethod
    def get_state(self, user_id: str, card_id: str, timeout: Optional[float] = None) -> Optional[ReviewState]:
        """State for a card, or None if it has never been reviewed."""

    @abstractmethod
    def get_states(
        self,
        user_id: str,
        card_ids: Iterable[str],
        timeout: Optional[float] = None
    ) -> dict[str, ReviewState]:
        """States for the reviewed subset of card_ids."""

    @abstractmethod
    def submit_review(
        self,
        user_id: str,
        card_id: str,
        quality: Quality,
        reviewed_at: datetime,
        *,
        practice_mode: str = "review",
        response_time_ms: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> ReviewLogEntry:
        """Grade a card: update its state and append a log entry atomically."""

    @abstractmethod
    def list_due(
        self,
        user_id: str,
        card_ids: Iterable[str],
        as_of: datetime,
        timeout: Optional[float] = None
    ) -> list[str]:
        """Cards in scope that are due at as_of (including never-reviewed ones)."""

    @abstractmethod
    def count_reviews(
        self,
        user_id: str,
        card_ids: Optional[Iterable[str]],
        start: datetime,
        end: datetime,
        timeout: Optional[float] = None
    ) -> dict[str, ReviewTally]:
        """Per-card review/correct counts for start <= reviewed_at < end."""

    @abstractmethod
    def list_reviews(
        self,
        user_id: str,
        card_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        timeout: Optional[float] = None
    ) -> list[ReviewLogEntry]:
        """Log entries in chronological order, optionally filtered."""

    @abstractmethod
    def replace_state(self, state: ReviewState, timeout: Optional[float] = None) -> ReviewState:
        """Overwrite a state (maintenance replays only); returns the stored version."""

    @abstractmethod
    def purge_card(self, card_id: str) -> int:
        """Delete a card's states and log entries for every user. Returns log rows removed."""

    @abstractmethod
    def purge_user(self, user_id: str) -> int:
        """Delete a user's states and log entries. Returns log rows removed."""


# ---- Row conversion ----

def _state_from_row(row: ReviewStateModel) -> ReviewState:
    return ReviewState(
        user_id=row.user_id,
        card_id=row.card_id,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        stability=row.stability,
        difficulty=row.difficulty,
        repetition_count=row.repetition_count,
        review_count=row.review_count,
        lapse_count=row.lapse_count,
        next_review_at=ensure_utc(row.next_review_at),
        last_reviewed_at=ensure_utc(row.last_reviewed_at),
        algorithm=row.algorithm,
        version=row.version,
    )


def _state_values(state: ReviewState) -> dict:
    return {
        'interval_days': state.interval_days,
        'ease_factor': state.ease_factor,
        'stability': state.stability,
        'difficulty': state.difficulty,
        'repetition_count': state.repetition_count,
        'review_count': state.review_count,
        'lapse_count': state.lapse_count,
        'next_review_at': state.next_review_at,
        'last_reviewed_at': state.last_reviewed_at,
        'algorithm': state.algorithm,
    }


def _entry_from_row(row: ReviewLogModel) -> ReviewLogEntry:
    return ReviewLogEntry(
        id=row.id,
        user_id=row.user_id,
        card_id=row.card_id,
        quality=row.quality,
        is_correct=bool(row.is_correct),
        reviewed_at=ensure_utc(row.reviewed_at),
        elapsed_days=row.elapsed_days,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        stability=row.stability,
        difficulty=row.difficulty,
        repetition_count=row.repetition_count,
        next_review_at=ensure_utc(row.next_review_at),
        algorithm=row.algorithm,
        practice_mode=row.practice_mode,
        response_time_ms=row.response_time_ms,
    )


class SqlReviewStore(ReviewStore):
    """
    Review store over any SQLAlchemy database.

    Args:
        engine: SQLAlchemy engine (see recall.srs.database.get_engine)
        algorithm: Update function used by submit_review
        max_retries: Compare-and-swap attempts before ConflictError
        default_timeout: Seconds allowed per call when the caller passes none
        create_tables: Create missing tables on construction
    """

    def __init__(
        self,
        engine: Engine,
        algorithm: str = DEFAULT_ALGORITHM,
        max_retries: int = 5,
        default_timeout: Optional[float] = None,
        create_tables: bool = True
    ):
        super().__init__(algorithm=algorithm, default_timeout=default_timeout)
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.engine = engine
        self.max_retries = max_retries
        self._session_factory = make_session_factory(engine)
        self._locks = KeyedLocks()
        self._gates = PurgeGates()
        if create_tables:
            init_db(engine)

    def _read(self, what: str, timeout: Optional[float], query):
        """Run a read-only callable(session) with error translation."""
        deadline = self._deadline(timeout)
        session = self._session_factory()
        try:
            result = query(session)
            deadline.check(what)
            return result
        except SQLAlchemyError as exc:
            logger.error("Review store read failed during %s: %s", what, exc)
            raise UnavailableError(f"Review store unavailable during {what}") from exc
        finally:
            session.close()

    # ---- Reads ----

    def get_state(self, user_id, card_id, timeout=None):
        def query(session):
            row = session.get(ReviewStateModel, (user_id, card_id))
            return _state_from_row(row) if row is not None else None
        return self._read("get_state", timeout, query)

    def get_states(self, user_id, card_ids, timeout=None):
        ids = _unique(card_ids)

        def query(session):
            states: dict[str, ReviewState] = {}
            for chunk in _chunks(ids):
                rows = session.execute(
                    select(ReviewStateModel).where(
                        ReviewStateModel.user_id == user_id,
                        ReviewStateModel.card_id.in_(chunk)
                    )
                ).scalars()
                for row in rows:
                    states[row.card_id] = _state_from_row(row)
            return states
        return self._read("get_states", timeout, query)

    def list_due(self, user_id, card_ids, as_of, timeout=None):
        ids = _unique(card_ids)
        as_of = to_utc(as_of)

        def query(session):
            not_due: set[str] = set()
            for chunk in _chunks(ids):
                not_due.update(session.execute(
                    select(ReviewStateModel.card_id).where(
                        ReviewStateModel.user_id == user_id,
                        ReviewStateModel.card_id.in_(chunk),
                        ReviewStateModel.next_review_at > as_of
                    )
                ).scalars())
            return [card_id for card_id in ids if card_id not in not_due]
        return self._read("list_due", timeout, query)

    def count_reviews(self, user_id, card_ids, start, end, timeout=None):
        start, end = to_utc(start), to_utc(end)
        ids = None if card_ids is None else _unique(card_ids)

        def tally_query(chunk):
            stmt = select(
                ReviewLogModel.card_id,
                func.count(ReviewLogModel.id),
                func.sum(case((ReviewLogModel.is_correct, 1), else_=0)),
            ).where(
                ReviewLogModel.user_id == user_id,
                ReviewLogModel.reviewed_at >= start,
                ReviewLogModel.reviewed_at < end,
            )
            if chunk is not None:
                stmt = stmt.where(ReviewLogModel.card_id.in_(chunk))
            return stmt.group_by(ReviewLogModel.card_id)

        def query(session):
            tallies: dict[str, ReviewTally] = {}
            chunks = [None] if ids is None else list(_chunks(ids))
            for chunk in chunks:
                for card_id, reviewed, correct in session.execute(tally_query(chunk)):
                    tallies[card_id] = ReviewTally(reviewed=int(reviewed), correct=int(correct or 0))
            return tallies
        return self._read("count_reviews", timeout, query)

    def list_reviews(self, user_id, card_ids=None, start=None, end=None, timeout=None):
        ids = None if card_ids is None else _unique(card_ids)

        def build(chunk):
            stmt = select(ReviewLogModel).where(ReviewLogModel.user_id == user_id)
            if chunk is not None:
                stmt = stmt.where(ReviewLogModel.card_id.in_(chunk))
            if start is not None:
                stmt = stmt.where(ReviewLogModel.reviewed_at >= to_utc(start))
            if end is not None:
                stmt = stmt.where(ReviewLogModel.reviewed_at < to_utc(end))
            return stmt

        def query(session):
            entries: list[ReviewLogEntry] = []
            chunks = [None] if ids is None else list(_chunks(ids))
            for chunk in chunks:
                entries.extend(_entry_from_row(row) for row in session.execute(build(chunk)).scalars())
            entries.sort(key=lambda e: (e.reviewed_at, e.id or 0))
            return entries
        return self._read("list_reviews", timeout, query)

    # ---- Writes ----

    def submit_review(
        self,
        user_id,
        card_id,
        quality,
        reviewed_at,
        *,
        practice_mode="review",
        response_time_ms=None,
        timeout=None
    ):
        deadline = self._deadline(timeout)
        reviewed_at = to_utc(reviewed_at)

        with self._gates.shared(self._gates.review_keys(user_id, card_id), deadline), \
                self._locks.hold((user_id, card_id), deadline):
            had_state = False
            for attempt in range(1, self.max_retries + 1):
                deadline.check("submit_review")
                entry, had_state = self._try_submit(
                    user_id, card_id, quality, reviewed_at,
                    practice_mode, response_time_ms, deadline, had_state
                )
                if entry is not None:
                    logger.debug(
                        "Review %s/%s q=%s -> interval %.2f days (attempt %d)",
                        user_id, card_id, entry.quality, entry.interval_days, attempt
                    )
                    return entry
                logger.warning(
                    "Concurrent write on %s/%s, retrying (attempt %d/%d)",
                    user_id, card_id, attempt, self.max_retries
                )

        raise ConflictError(
            f"Could not serialize review of card {card_id} for user {user_id} "
            f"after {self.max_retries} attempts"
        )

    def _try_submit(
        self,
        user_id: str,
        card_id: str,
        quality: Quality,
        reviewed_at: datetime,
        practice_mode: str,
        response_time_ms: Optional[int],
        deadline: Deadline,
        had_state: bool
    ) -> tuple[Optional[ReviewLogEntry], bool]:
        """
        One compare-and-swap attempt.

        Returns (entry, had_state); entry is None when another writer won.
        had_state is True when a previous attempt saw a stored state.
        """
        session = self._session_factory()
        try:
            row = session.get(ReviewStateModel, (user_id, card_id))
            if row is None:
                if had_state:
                    raise NotFoundError(
                        f"Review state for card {card_id} of user {user_id} was purged during review"
                    )
                previous = new_review_state(user_id, card_id, self.algorithm)
            else:
                previous = _state_from_row(row)

            new_state, event_data = apply_review(previous, quality, reviewed_at, self.algorithm)

            if row is None:
                session.add(ReviewStateModel(
                    user_id=user_id, card_id=card_id, version=1, **_state_values(new_state)
                ))
            else:
                result = session.execute(
                    update(ReviewStateModel)
                    .where(
                        ReviewStateModel.user_id == user_id,
                        ReviewStateModel.card_id == card_id,
                        ReviewStateModel.version == previous.version
                    )
                    .values(version=previous.version + 1, **_state_values(new_state))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.rollback()
                    return None, True

            log_row = ReviewLogModel(
                practice_mode=practice_mode,
                response_time_ms=response_time_ms,
                **event_data
            )
            session.add(log_row)
            session.flush()

            # State and log commit together or not at all
            deadline.check("submit_review")
            session.commit()
            return _entry_from_row(log_row), row is not None
        except IntegrityError:
            # Another writer inserted the first state for this key
            session.rollback()
            return None, had_state
        except RecallError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Review submission failed for %s/%s: %s", user_id, card_id, exc)
            raise UnavailableError("Review store unavailable during submit_review") from exc
        finally:
            session.close()

    def replace_state(self, state, timeout=None):
        deadline = self._deadline(timeout)
        key = (state.user_id, state.card_id)
        with self._gates.shared(self._gates.review_keys(*key), deadline), \
                self._locks.hold(key, deadline):
            for attempt in range(1, self.max_retries + 1):
                deadline.check("replace_state")
                stored = self._try_replace(state, deadline)
                if stored is not None:
                    return stored
                logger.warning(
                    "Concurrent write on %s/%s, retrying replace (attempt %d/%d)",
                    state.user_id, state.card_id, attempt, self.max_retries
                )

        raise ConflictError(
            f"Could not replace state of card {state.card_id} for user {state.user_id} "
            f"after {self.max_retries} attempts"
        )

    def _try_replace(self, state: ReviewState, deadline: Deadline) -> Optional[ReviewState]:
        """One compare-and-swap attempt of replace_state. None when another writer won."""
        session = self._session_factory()
        try:
            row = session.get(ReviewStateModel, (state.user_id, state.card_id))
            if row is None:
                version = 1
                session.add(ReviewStateModel(
                    user_id=state.user_id, card_id=state.card_id, version=version,
                    **_state_values(state)
                ))
            else:
                version = row.version + 1
                result = session.execute(
                    update(ReviewStateModel)
                    .where(
                        ReviewStateModel.user_id == state.user_id,
                        ReviewStateModel.card_id == state.card_id,
                        ReviewStateModel.version == row.version
                    )
                    .values(version=version, **_state_values(state))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.rollback()
                    return None
            session.flush()
            deadline.check("replace_state")
            session.commit()
            return replace(state, version=version)
        except IntegrityError:
            session.rollback()
            return None
        except RecallError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("State replacement failed for %s/%s: %s", state.user_id, state.card_id, exc)
            raise UnavailableError("Review store unavailable during replace_state") from exc
        finally:
            session.close()

    def _purge(self, what: str, gate, state_filter, log_filter) -> int:
        with self._gates.exclusive(gate):
            session = self._session_factory()
            try:
                session.execute(delete(ReviewStateModel).where(state_filter))
                removed = session.execute(delete(ReviewLogModel).where(log_filter)).rowcount
                session.commit()
                logger.info("Purged %s: %d review log rows", what, removed)
                return removed
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Purge of %s failed: %s", what, exc)
                raise UnavailableError(f"Review store unavailable while purging {what}") from exc
            finally:
                session.close()

    def purge_card(self, card_id):
        return self._purge(
            f"card {card_id}",
            ("card", card_id),
            ReviewStateModel.card_id == card_id,
            ReviewLogModel.card_id == card_id,
        )

    def purge_user(self, user_id):
        return self._purge(
            f"user {user_id}",
            ("user", user_id),
            ReviewStateModel.user_id == user_id,
            ReviewLogModel.user_id == user_id,
        )
