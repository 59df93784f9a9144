"""
Service layer for per-deck and per-day review counters.

All counts are re-queried from the review log on every call; nothing is
cached between calls, so several devices of one learner always agree.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

import pandas as pd

from recall.analytics.metrics import (
    build_local_day_index,
    compute_daily_activity,
    tally_by_deck,
)
from recall.analytics.queries import (
    date_range_window,
    load_review_events_df,
    local_day_window,
    resolve_timezone,
)
from recall.analytics.types import DeckTally, TimezoneLike
from recall.deck_repo import DeckRepository
from recall.session_builders.scope import Scope, resolve_scope
from recall.srs.store import ReviewStore


def tally_today(
    store: ReviewStore,
    repo: DeckRepository,
    user_id: str,
    scope: Scope,
    as_of: datetime,
    tz: TimezoneLike = None,
    timeout: Optional[float] = None
) -> dict[str, DeckTally]:
    """
    Reviews and correct answers per deck for the learner's local day.
    """
    zone = resolve_timezone(tz)
    start, end = local_day_window(as_of, zone)
    resolved = resolve_scope(repo, scope)
    tallies = store.count_reviews(user_id, resolved.card_ids, start, end, timeout=timeout)
    return tally_by_deck(tallies, resolved.card_decks, resolved.deck_ids)


def count_today(
    store: ReviewStore,
    repo: DeckRepository,
    user_id: str,
    scope: Scope,
    as_of: datetime,
    tz: TimezoneLike = None,
    timeout: Optional[float] = None
) -> dict[str, int]:
    """
    Number of reviews logged per deck during the learner's local day.

    Args:
        store: Review state store
        repo: Card/deck repository
        user_id: Learner
        scope: Deck or goal (every deck in scope is returned, zero included)
        as_of: Any instant inside the day to count
        tz: IANA timezone name or tzinfo of the learner (None = UTC)
        timeout: Store call timeout in seconds

    Returns:
        Dict of deck_id -> review count
    """
    tallies = tally_today(store, repo, user_id, scope, as_of, tz, timeout)
    return {deck_id: tally.reviewed for deck_id, tally in tallies.items()}


def daily_activity(
    store: ReviewStore,
    repo: DeckRepository,
    user_id: str,
    scope: Scope,
    start_date: date,
    end_date: date,
    tz: TimezoneLike = None,
    timeout: Optional[float] = None
) -> pd.DataFrame:
    """
    Activity calendar: reviews and correct answers per local day.

    Returns:
        DataFrame indexed by date (start_date..end_date, every day present)
        with int columns `reviewed` and `correct`
    """
    zone = resolve_timezone(tz)
    start, end = date_range_window(start_date, end_date, zone)
    resolved = resolve_scope(repo, scope)
    events_df = load_review_events_df(store, user_id, resolved.card_ids, start, end, timeout)
    day_index = build_local_day_index(start_date, end_date)
    return compute_daily_activity(events_df, day_index, zone)
