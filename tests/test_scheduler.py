"""
apply_review / replay_reviews: timestamps, boolean grading, algorithm registry.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from recall.exceptions import ValidationError
from recall.srs import scheduler
from recall.srs.constants import MAX_INTERVAL_DAYS
from recall.srs.review_state import ReviewLogEntry, new_review_state

T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def test_apply_review_stamps_timestamps():
    state, event = scheduler.apply_review(new_review_state("u1", "c1"), 5, T0)

    assert state.last_reviewed_at == T0
    assert state.next_review_at == T0 + timedelta(days=1)
    assert state.review_count == 1
    assert state.lapse_count == 0
    assert event["elapsed_days"] == 0.0
    assert event["is_correct"] is True
    assert event["next_review_at"] == state.next_review_at


def test_next_review_equals_last_plus_interval_across_reviews():
    state = new_review_state("u1", "c1", "fsrs")
    at = T0
    for quality in [4, 5, 2, 3, 5]:
        state, _ = scheduler.apply_review(state, quality, at, "fsrs")
        assert state.next_review_at == state.last_reviewed_at + timedelta(days=state.interval_days)
        at = state.next_review_at


def test_elapsed_days_measured_from_last_review():
    state, _ = scheduler.apply_review(new_review_state("u1", "c1"), 4, T0)
    _, event = scheduler.apply_review(state, 4, T0 + timedelta(hours=36))
    assert event["elapsed_days"] == pytest.approx(1.5)


def test_review_before_previous_is_rejected():
    state, _ = scheduler.apply_review(new_review_state("u1", "c1"), 4, T0)
    with pytest.raises(ValidationError):
        scheduler.apply_review(state, 4, T0 - timedelta(minutes=1))


def test_naive_timestamp_is_rejected():
    with pytest.raises(ValidationError):
        scheduler.apply_review(new_review_state("u1", "c1"), 4, datetime(2024, 3, 4, 12, 0))


def test_non_utc_timestamp_is_normalized():
    cet = timezone(timedelta(hours=1))
    state, _ = scheduler.apply_review(new_review_state("u1", "c1"), 4, T0.astimezone(cet))
    assert state.last_reviewed_at == T0
    assert state.last_reviewed_at.utcoffset() == timedelta(0)


@pytest.mark.parametrize("correct,quality,passed", [(True, 5.0, True), (False, 2.0, False)])
def test_boolean_grading(correct, quality, passed):
    state, event = scheduler.apply_review(new_review_state("u1", "c1"), correct, T0)

    assert event["quality"] == quality
    assert event["is_correct"] is passed
    assert state.lapse_count == (0 if passed else 1)


def test_interval_is_capped():
    state = replace(
        new_review_state("u1", "c1"),
        repetition_count=5, interval_days=30000.0, ease_factor=2.5, last_reviewed_at=T0
    )
    updated, _ = scheduler.apply_review(state, 5, T0 + timedelta(days=30000))
    assert updated.interval_days == MAX_INTERVAL_DAYS


def test_unknown_algorithm():
    with pytest.raises(ValidationError):
        scheduler.get_update_function("leitner")


def test_register_algorithm(monkeypatch):
    monkeypatch.setattr(scheduler, "ALGORITHMS", dict(scheduler.ALGORITHMS))
    scheduler.register_algorithm("flat", lambda s, q, e: replace(s, interval_days=3.0))

    state, event = scheduler.apply_review(new_review_state("u1", "c1"), 4, T0, "flat")
    assert state.interval_days == 3.0
    assert event["algorithm"] == "flat"


def _entry(card_id, quality, at):
    return ReviewLogEntry(
        id=None, user_id="u1", card_id=card_id, quality=quality, is_correct=quality >= 3,
        reviewed_at=at, elapsed_days=0.0, interval_days=0.0, ease_factor=2.5, stability=0.1,
        difficulty=1.0, repetition_count=0, next_review_at=at, algorithm="sm2",
    )


def test_replay_reviews_matches_live_updates():
    qualities = [5, 4, 5, 1, 4]
    state = new_review_state("u1", "c1")
    entries = []
    at = T0
    for quality in qualities:
        entries.append(_entry("c1", quality, at))
        state, _ = scheduler.apply_review(state, quality, at)
        at = at + timedelta(days=2)

    # Order and foreign cards in the input do not matter
    noise = [_entry("c2", 0, T0)]
    replayed = scheduler.replay_reviews("u1", "c1", list(reversed(entries)) + noise)

    assert replayed == state


def test_replay_under_another_algorithm():
    entries = [_entry("c1", 4, T0), _entry("c1", 5, T0 + timedelta(days=3))]
    replayed = scheduler.replay_reviews("u1", "c1", entries, "fsrs")

    assert replayed.algorithm == "fsrs"
    assert replayed.review_count == 2


def test_replay_nothing():
    assert scheduler.replay_reviews("u1", "c1", []) is None
