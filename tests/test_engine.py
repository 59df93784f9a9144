"""
SchedulingEngine facade: boundary validation and end-to-end flows.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from recall import (
    NotFoundError,
    SchedulingEngine,
    Scope,
    SessionMode,
    ValidationError,
)
from recall.config import load_settings
from recall.srs.store import SqlReviewStore

T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def test_submit_review_defaults_to_clock(engine, clock):
    entry = engine.submit_review("u1", "c1", 5)

    assert entry.reviewed_at == clock.now()
    assert engine.get_state("u1", "c1").next_review_at == clock.now() + timedelta(days=1)


def test_submit_review_unknown_card(engine):
    with pytest.raises(NotFoundError):
        engine.submit_review("u1", "missing", 4, T0)
    with pytest.raises(NotFoundError):
        engine.get_state("u1", "missing")


@pytest.mark.parametrize("quality", [float("nan"), "excellent", None])
def test_submit_review_bad_quality(engine, quality):
    with pytest.raises(ValidationError):
        engine.submit_review("u1", "c1", quality, T0)
    assert engine.get_state("u1", "c1") is None


def test_submit_review_naive_timestamp(engine):
    with pytest.raises(ValidationError):
        engine.submit_review("u1", "c1", 4, datetime(2024, 3, 4, 12, 0))


def test_submit_review_negative_response_time(engine):
    with pytest.raises(ValidationError):
        engine.submit_review("u1", "c1", 4, T0, response_time_ms=-5)


def test_out_of_range_quality_is_clamped(engine):
    entry = engine.submit_review("u1", "c1", 12, T0)
    assert entry.quality == 5.0


def test_boolean_quality(engine):
    assert engine.submit_review("u1", "c1", True, T0).quality == 5.0
    assert engine.submit_review("u1", "c2", False, T0).quality == 2.0


def test_integer_one_is_a_score_not_a_boolean(engine):
    entry = engine.submit_review("u1", "c1", 1, T0)
    assert entry.quality == 1.0
    assert entry.is_correct is False


def test_review_then_select_reflects_new_due_date(engine, clock):
    scope = Scope.deck("d1")
    assert engine.select_due("u1", scope) == ["c1", "c2", "c3", "c4", "c5"]

    engine.submit_review("u1", "c1", 5)
    engine.submit_review("u1", "c2", 5)
    assert engine.select_due("u1", scope) == ["c3", "c4", "c5"]

    clock.advance(days=1)
    assert engine.select_due("u1", scope, limit=3) == ["c3", "c4", "c5"]
    assert engine.select_due("u1", scope) == ["c3", "c4", "c5", "c1", "c2"]


def test_build_session(engine):
    engine.submit_review("u1", "c1", 5)

    session = engine.build_session("u1", Scope.deck("d1"), "new", 3)
    assert session.mode is SessionMode.NEW
    assert session.card_ids == ("c2", "c3", "c4")

    shuffled = engine.build_session("u1", Scope.deck("d1"), "new", 3, shuffle=True)
    assert sorted(shuffled.card_ids) == ["c2", "c3", "c4"]


@pytest.mark.parametrize("mode,count", [("later", 3), ("all", -2), ("all", None)])
def test_build_session_validation(engine, mode, count):
    with pytest.raises(ValidationError):
        engine.build_session("u1", Scope.deck("d1"), mode, count)


def test_count_today_default_timezone(store, repo, clock):
    engine = SchedulingEngine(store, repo, clock=clock, default_timezone="Asia/Tokyo")
    clock.set(datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc))  # 23:00 in Tokyo
    engine.submit_review("u1", "c1", 4)

    clock.advance(hours=2)  # 01:00 on 2024-03-05 in Tokyo
    assert engine.count_today("u1", Scope.deck("d1")) == {"d1": 0}
    assert engine.count_today("u1", Scope.deck("d1"), tz="UTC") == {"d1": 1}


def test_tally_and_activity(engine):
    engine.submit_review("u1", "c1", 5)
    engine.submit_review("u1", "c6", 2)

    tallies = engine.tally_today("u1", Scope.goal("g1"))
    assert tallies["d1"].correct == 1
    assert tallies["d2"].reviewed == 1
    assert tallies["d2"].correct == 0

    frame = engine.daily_activity("u1", Scope.goal("g1"), date(2024, 3, 3))
    assert frame["reviewed"].tolist() == [0, 2]


def test_delete_card_cascades(engine, repo):
    engine.submit_review("u1", "c1", 4)
    engine.submit_review("u2", "c1", 4)

    assert engine.delete_card("c1") == 2
    repo.remove_card("c1")

    assert engine.count_today("u1", Scope.deck("d1")) == {"d1": 0}
    assert engine.select_due("u1", Scope.deck("d1")) == ["c2", "c3", "c4", "c5"]


def test_from_settings(monkeypatch, tmp_path, repo, clock):
    monkeypatch.delenv("TEST_MODE", raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'engine.sqlite'}")
    monkeypatch.setenv("SCHEDULER_ALGORITHM", "fsrs")
    monkeypatch.setenv("DEFAULT_TIMEZONE", "Europe/Amsterdam")

    engine = SchedulingEngine.from_settings(load_settings(), repo=repo, clock=clock)
    entry = engine.submit_review("u1", "c1", 4)

    assert isinstance(engine.store, SqlReviewStore)
    assert engine.store.default_timeout == 10.0
    assert entry.algorithm == "fsrs"
    assert engine.default_timezone.key == "Europe/Amsterdam"
