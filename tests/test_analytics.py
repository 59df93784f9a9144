"""
Daily counters and the activity calendar.
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pandas as pd
import pytest

from recall.analytics import DeckTally, count_today, daily_activity, local_day_window, tally_today
from recall.exceptions import ValidationError
from recall.session_builders import Scope

NEW_YORK = ZoneInfo("America/New_York")


def _local(year, month, day, hour, minute=0, tz=NEW_YORK):
    return datetime(year, month, day, hour, minute, tzinfo=tz)


@pytest.fixture
def evening_reviews(store):
    """
    Three reviews on 2024-03-04 (09:00, 14:00, 23:59 New York) and one at
    00:01 the next local day. 23:59 EST is already 2024-03-05 in UTC.
    """
    store.submit_review("u1", "c1", 5, _local(2024, 3, 4, 9))
    store.submit_review("u1", "c2", 1, _local(2024, 3, 4, 14))
    store.submit_review("u1", "c6", 4, _local(2024, 3, 4, 23, 59))
    store.submit_review("u1", "c3", 4, _local(2024, 3, 5, 0, 1))
    return store


def test_count_today_uses_local_calendar_day(evening_reviews, repo):
    as_of = _local(2024, 3, 4, 15)

    counts = count_today(evening_reviews, repo, "u1", Scope.goal("g1"), as_of, "America/New_York")

    assert counts == {"d1": 2, "d2": 1}
    assert sum(counts.values()) == 3


def test_count_today_in_utc_differs(evening_reviews, repo):
    as_of = datetime(2024, 3, 4, 20, 0, tzinfo=timezone.utc)
    counts = count_today(evening_reviews, repo, "u1", Scope.goal("g1"), as_of, "UTC")
    assert counts == {"d1": 2, "d2": 0}


def test_next_local_day(evening_reviews, repo):
    as_of = _local(2024, 3, 5, 8)
    assert count_today(evening_reviews, repo, "u1", Scope.deck("d1"), as_of, NEW_YORK) == {"d1": 1}


def test_every_deck_in_scope_is_reported(store, repo):
    counts = count_today(store, repo, "u1", Scope.goal("g1"), _local(2024, 3, 4, 12), NEW_YORK)
    assert counts == {"d1": 0, "d2": 0}


def test_other_users_are_not_counted(evening_reviews, repo):
    evening_reviews.submit_review("u2", "c1", 4, _local(2024, 3, 4, 10))
    counts = count_today(evening_reviews, repo, "u2", Scope.deck("d1"), _local(2024, 3, 4, 15), NEW_YORK)
    assert counts == {"d1": 1}


def test_tally_today_counts_correct_answers(evening_reviews, repo):
    tallies = tally_today(evening_reviews, repo, "u1", Scope.deck("d1"), _local(2024, 3, 4, 15), NEW_YORK)

    assert tallies == {"d1": DeckTally(reviewed=2, correct=1)}
    assert tallies["d1"].success_rate == pytest.approx(0.5)


def test_shared_card_counts_once_under_first_deck(store, repo):
    repo.link_card("c1", "d2")
    store.submit_review("u1", "c1", 4, _local(2024, 3, 4, 10))

    counts = count_today(store, repo, "u1", Scope.goal("g1"), _local(2024, 3, 4, 15), NEW_YORK)
    assert counts == {"d1": 1, "d2": 0}


def test_dst_day_window_is_23_hours():
    start, end = local_day_window(_local(2024, 3, 10, 12), NEW_YORK)

    assert start == datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)
    assert end == datetime(2024, 3, 11, 4, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=23)


def test_late_review_on_dst_day(store, repo):
    store.submit_review("u1", "c1", 4, _local(2024, 3, 10, 0, 30))
    store.submit_review("u1", "c2", 4, _local(2024, 3, 10, 23, 30))

    counts = count_today(store, repo, "u1", Scope.deck("d1"), _local(2024, 3, 10, 12), NEW_YORK)
    assert counts == {"d1": 2}


def test_unknown_timezone(store, repo):
    with pytest.raises(ValidationError):
        count_today(store, repo, "u1", Scope.deck("d1"), _local(2024, 3, 4, 12), "Mars/Olympus_Mons")


def test_daily_activity_is_dense(evening_reviews, repo):
    frame = daily_activity(
        evening_reviews, repo, "u1", Scope.goal("g1"),
        date(2024, 3, 3), date(2024, 3, 6), "America/New_York"
    )

    assert list(frame.columns) == ["reviewed", "correct"]
    assert list(frame.index) == list(pd.date_range("2024-03-03", "2024-03-06", freq="D"))
    assert frame["reviewed"].tolist() == [0, 3, 1, 0]
    assert frame["correct"].tolist() == [0, 2, 1, 0]


def test_daily_activity_without_reviews(store, repo):
    frame = daily_activity(store, repo, "u1", Scope.deck("d1"), date(2024, 3, 1), date(2024, 3, 2))

    assert len(frame) == 2
    assert frame["reviewed"].sum() == 0


def test_daily_activity_rejects_reversed_range(store, repo):
    with pytest.raises(ValidationError):
        daily_activity(store, repo, "u1", Scope.deck("d1"), date(2024, 3, 5), date(2024, 3, 1))
