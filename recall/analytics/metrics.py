"""
Metric computations over review tallies and event frames.
"""

from __future__ import annotations

from datetime import date, tzinfo
from typing import Iterable, Mapping

import pandas as pd

from recall.analytics.types import DeckTally
from recall.srs.review_state import ReviewTally


def tally_by_deck(
    tallies: Mapping[str, ReviewTally],
    card_decks: Mapping[str, str],
    deck_ids: Iterable[str]
) -> dict[str, DeckTally]:
    """
    Roll per-card tallies up to their decks. Every deck in deck_ids is present.
    """
    reviewed = {deck_id: 0 for deck_id in deck_ids}
    correct = dict(reviewed)
    for card_id, tally in tallies.items():
        deck_id = card_decks.get(card_id)
        if deck_id is None:
            continue
        reviewed[deck_id] = reviewed.get(deck_id, 0) + tally.reviewed
        correct[deck_id] = correct.get(deck_id, 0) + tally.correct
    return {
        deck_id: DeckTally(reviewed=reviewed[deck_id], correct=correct[deck_id])
        for deck_id in reviewed
    }


def build_local_day_index(start_date: date, end_date: date) -> pd.DatetimeIndex:
    """
    Dense index of local calendar days, start_date..end_date inclusive.
    """
    return pd.date_range(start=start_date, end=end_date, freq="D", name="date")


def compute_daily_activity(
    events_df: pd.DataFrame,
    day_index: pd.DatetimeIndex,
    tz: tzinfo
) -> pd.DataFrame:
    """
    Reviews and correct answers per local day, zero-filled over day_index.
    """
    empty = pd.DataFrame(
        {"reviewed": 0, "correct": 0}, index=day_index, dtype="int64"
    )
    if events_df.empty or len(day_index) == 0:
        return empty

    local_day = (
        events_df["reviewed_at"].dt.tz_convert(tz).dt.tz_localize(None).dt.normalize()
    )
    grouped = events_df.assign(day=local_day).groupby("day").agg(
        reviewed=("card_id", "size"),
        correct=("is_correct", "sum"),
    )
    daily = grouped.reindex(day_index, fill_value=0).astype("int64")
    daily.index.name = day_index.name
    return daily
