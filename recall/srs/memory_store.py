"""
In-process review store.

Thread-safe dict-backed implementation of the ReviewStore contract, for
tests and for embedding the engine without a database. Log entries are kept
per user in reviewed_at order so day-range counts bisect instead of scanning
the full history.
"""

from __future__ import annotations
import bisect
import itertools
import logging
import threading
from dataclasses import replace
from typing import Optional

from recall.srs.constants import DEFAULT_ALGORITHM
from recall.srs.locks import KeyedLocks, PurgeGates
from recall.srs.review_state import (
    ReviewLogEntry,
    ReviewState,
    ReviewTally,
    is_due,
    new_review_state,
    to_utc,
)
from recall.srs.scheduler import apply_review
from recall.srs.store import ReviewStore, _unique

logger = logging.getLogger(__name__)


class _UserLog:
    """One user's log entries sorted by (reviewed_at, id)."""

    def __init__(self):
        self.keys: list[tuple] = []
        self.entries: list[ReviewLogEntry] = []

    def add(self, entry: ReviewLogEntry) -> None:
        key = (entry.reviewed_at, entry.id)
        index = bisect.bisect_right(self.keys, key)
        self.keys.insert(index, key)
        self.entries.insert(index, entry)

    def window(self, start=None, end=None) -> list[ReviewLogEntry]:
        lo = 0 if start is None else bisect.bisect_left(self.keys, (start,))
        hi = len(self.keys) if end is None else bisect.bisect_left(self.keys, (end,))
        return self.entries[lo:hi]

    def remove_card(self, card_id: str) -> int:
        kept = [(k, e) for k, e in zip(self.keys, self.entries) if e.card_id != card_id]
        removed = len(self.entries) - len(kept)
        self.keys = [k for k, _ in kept]
        self.entries = [e for _, e in kept]
        return removed


class InMemoryReviewStore(ReviewStore):
    """
    Review store held in process memory.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, default_timeout: Optional[float] = None):
        super().__init__(algorithm=algorithm, default_timeout=default_timeout)
        self._states: dict[tuple[str, str], ReviewState] = {}
        self._logs: dict[str, _UserLog] = {}
        self._ids = itertools.count(1)
        self._data_lock = threading.Lock()  # guards the dicts, held briefly
        self._locks = KeyedLocks()
        self._gates = PurgeGates()

    # ---- Reads ----

    def get_state(self, user_id, card_id, timeout=None):
        with self._data_lock:
            return self._states.get((user_id, card_id))

    def get_states(self, user_id, card_ids, timeout=None):
        with self._data_lock:
            return {
                card_id: self._states[(user_id, card_id)]
                for card_id in _unique(card_ids)
                if (user_id, card_id) in self._states
            }

    def list_due(self, user_id, card_ids, as_of, timeout=None):
        as_of = to_utc(as_of)
        with self._data_lock:
            return [
                card_id for card_id in _unique(card_ids)
                if is_due(self._states.get((user_id, card_id)), as_of)
            ]

    def count_reviews(self, user_id, card_ids, start, end, timeout=None):
        wanted = None if card_ids is None else set(card_ids)
        with self._data_lock:
            log = self._logs.get(user_id)
            window = log.window(to_utc(start), to_utc(end)) if log else []

        counts: dict[str, list[int]] = {}
        for entry in window:
            if wanted is not None and entry.card_id not in wanted:
                continue
            tally = counts.setdefault(entry.card_id, [0, 0])
            tally[0] += 1
            tally[1] += int(entry.is_correct)
        return {card_id: ReviewTally(reviewed=r, correct=c) for card_id, (r, c) in counts.items()}

    def list_reviews(self, user_id, card_ids=None, start=None, end=None, timeout=None):
        wanted = None if card_ids is None else set(card_ids)
        with self._data_lock:
            log = self._logs.get(user_id)
            window = log.window(
                None if start is None else to_utc(start),
                None if end is None else to_utc(end),
            ) if log else []
        return [e for e in window if wanted is None or e.card_id in wanted]

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
        key = (user_id, card_id)

        with self._gates.shared(self._gates.review_keys(user_id, card_id), deadline), \
                self._locks.hold(key, deadline):
            with self._data_lock:
                previous = self._states.get(key)
            if previous is None:
                previous = new_review_state(user_id, card_id, self.algorithm)

            new_state, event_data = apply_review(previous, quality, reviewed_at, self.algorithm)
            deadline.check("submit_review")

            # State and log entry become visible together
            with self._data_lock:
                entry = ReviewLogEntry(
                    id=next(self._ids),
                    practice_mode=practice_mode,
                    response_time_ms=response_time_ms,
                    **event_data
                )
                self._states[key] = replace(new_state, version=previous.version + 1)
                self._logs.setdefault(user_id, _UserLog()).add(entry)

        logger.debug(
            "Review %s/%s q=%s -> interval %.2f days",
            user_id, card_id, entry.quality, entry.interval_days
        )
        return entry

    def replace_state(self, state, timeout=None):
        deadline = self._deadline(timeout)
        key = (state.user_id, state.card_id)
        with self._gates.shared(self._gates.review_keys(*key), deadline), \
                self._locks.hold(key, deadline):
            with self._data_lock:
                current = self._states.get(key)
                stored = replace(state, version=(current.version if current else 0) + 1)
                self._states[key] = stored
        return stored

    def purge_card(self, card_id):
        with self._gates.exclusive(("card", card_id)), self._data_lock:
            for key in [k for k in self._states if k[1] == card_id]:
                del self._states[key]
            removed = sum(log.remove_card(card_id) for log in self._logs.values())
        logger.info("Purged card %s: %d review log rows", card_id, removed)
        return removed

    def purge_user(self, user_id):
        with self._gates.exclusive(("user", user_id)), self._data_lock:
            for key in [k for k in self._states if k[0] == user_id]:
                del self._states[key]
            log = self._logs.pop(user_id, None)
        removed = len(log.entries) if log else 0
        logger.info("Purged user %s: %d review log rows", user_id, removed)
        return removed
