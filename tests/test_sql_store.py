"""
SQLAlchemy backend specifics: compare-and-swap, retries, file databases.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete, update

from recall.exceptions import ConflictError, NotFoundError, UnavailableError
from recall.srs import scheduler
from recall.srs import store as store_module
from recall.srs.models import ReviewLogModel, ReviewStateModel
from recall.srs.store import SqlReviewStore

T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def _bump_version(engine):
    """Simulate another process committing a write to (u1, c1)."""
    with engine.begin() as conn:
        conn.execute(
            update(ReviewStateModel)
            .where(ReviewStateModel.user_id == "u1", ReviewStateModel.card_id == "c1")
            .values(version=ReviewStateModel.version + 1)
        )


def test_lost_cas_is_retried(file_sql_store, monkeypatch):
    store = file_sql_store
    store.submit_review("u1", "c1", 5, T0)
    calls = []

    def racing_apply(*args, **kwargs):
        result = scheduler.apply_review(*args, **kwargs)
        if not calls:
            _bump_version(store.engine)
        calls.append(1)
        return result

    monkeypatch.setattr(store_module, "apply_review", racing_apply)

    entry = store.submit_review("u1", "c1", 4, T0 + timedelta(days=1))

    assert len(calls) == 2
    assert entry.repetition_count == 2
    state = store.get_state("u1", "c1")
    assert state.version == 3  # 1 (first review) + 1 (other writer) + 1 (retry)
    assert len(store.list_reviews("u1")) == 2


def test_conflict_after_retries_exhausted(file_sql_store, monkeypatch):
    store = SqlReviewStore(file_sql_store.engine, max_retries=3)
    store.submit_review("u1", "c1", 5, T0)
    before = store.get_state("u1", "c1")

    def always_racing_apply(*args, **kwargs):
        result = scheduler.apply_review(*args, **kwargs)
        _bump_version(store.engine)
        return result

    monkeypatch.setattr(store_module, "apply_review", always_racing_apply)

    with pytest.raises(ConflictError):
        store.submit_review("u1", "c1", 4, T0 + timedelta(days=1))

    after = store.get_state("u1", "c1")
    assert after.version == before.version + 3
    assert after.review_count == before.review_count
    assert len(store.list_reviews("u1")) == 1


def test_max_retries_must_be_positive(sql_store):
    with pytest.raises(ValueError):
        SqlReviewStore(sql_store.engine, max_retries=0)


def test_concurrent_reviews_serialize(file_sql_store):
    store = file_sql_store
    errors = []

    def review(card_id):
        try:
            for _ in range(5):
                store.submit_review("u1", card_id, 4, T0)
        except Exception as exc:  # surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=review, args=(card_id,)) for card_id in ["c1", "c1", "c2", "c3"]]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert store.get_state("u1", "c1").review_count == 10
    assert store.get_state("u1", "c1").version == 10
    assert store.get_state("u1", "c2").review_count == 5
    assert len(store.list_reviews("u1")) == 20


def test_state_survives_new_store_instance(file_sql_store):
    file_sql_store.submit_review("u1", "c1", 5, T0)

    reopened = SqlReviewStore(file_sql_store.engine)
    state = reopened.get_state("u1", "c1")

    assert state.next_review_at == T0 + timedelta(days=1)
    assert state.next_review_at.tzinfo is not None


def test_state_purged_by_another_process_is_not_recreated(file_sql_store, monkeypatch):
    store = file_sql_store
    store.submit_review("u1", "c1", 5, T0)

    def purging_apply(*args, **kwargs):
        result = scheduler.apply_review(*args, **kwargs)
        with store.engine.begin() as conn:
            conn.execute(delete(ReviewStateModel).where(ReviewStateModel.card_id == "c1"))
            conn.execute(delete(ReviewLogModel).where(ReviewLogModel.card_id == "c1"))
        return result

    monkeypatch.setattr(store_module, "apply_review", purging_apply)

    with pytest.raises(NotFoundError):
        store.submit_review("u1", "c1", 4, T0 + timedelta(days=1))

    assert store.get_state("u1", "c1") is None
    assert store.list_reviews("u1") == []


def test_replace_state_retries_lost_cas(file_sql_store, monkeypatch):
    store = file_sql_store
    store.submit_review("u1", "c1", 4, T0)
    rebuilt = scheduler.replay_reviews("u1", "c1", store.list_reviews("u1"), "fsrs")
    calls = []
    state_values = store_module._state_values

    def racing_values(state):
        if not calls:
            _bump_version(store.engine)
        calls.append(1)
        return state_values(state)

    monkeypatch.setattr(store_module, "_state_values", racing_values)

    stored = store.replace_state(rebuilt)

    assert len(calls) == 2
    assert stored.version == 3  # 1 (review) + 1 (other writer) + 1 (retry)
    state = store.get_state("u1", "c1")
    assert state.version == 3
    assert state.algorithm == "fsrs"


def test_replace_state_conflict_after_retries_exhausted(file_sql_store, monkeypatch):
    store = SqlReviewStore(file_sql_store.engine, max_retries=2)
    store.submit_review("u1", "c1", 4, T0)
    rebuilt = scheduler.replay_reviews("u1", "c1", store.list_reviews("u1"), "fsrs")
    state_values = store_module._state_values

    def always_racing_values(state):
        _bump_version(store.engine)
        return state_values(state)

    monkeypatch.setattr(store_module, "_state_values", always_racing_values)

    with pytest.raises(ConflictError):
        store.replace_state(rebuilt)

    assert store.get_state("u1", "c1").algorithm == "sm2"


def test_missing_state_table_is_unavailable(sql_store):
    sql_store.submit_review("u1", "c1", 4, T0)
    state = sql_store.get_state("u1", "c1")
    ReviewStateModel.__table__.drop(sql_store.engine)

    with pytest.raises(UnavailableError):
        sql_store.get_state("u1", "c1")
    with pytest.raises(UnavailableError):
        sql_store.get_states("u1", ["c1", "c2"])
    with pytest.raises(UnavailableError):
        sql_store.list_due("u1", ["c1"], T0)
    with pytest.raises(UnavailableError):
        sql_store.replace_state(state)
    with pytest.raises(UnavailableError):
        sql_store.submit_review("u1", "c2", 4, T0)

    assert len(sql_store.list_reviews("u1")) == 1


def test_missing_log_table_is_unavailable(sql_store):
    sql_store.submit_review("u1", "c1", 4, T0)
    ReviewLogModel.__table__.drop(sql_store.engine)

    with pytest.raises(UnavailableError):
        sql_store.submit_review("u1", "c2", 4, T0)
    with pytest.raises(UnavailableError):
        sql_store.count_reviews("u1", ["c1"], T0, T0 + timedelta(days=1))
    with pytest.raises(UnavailableError):
        sql_store.list_reviews("u1")
    with pytest.raises(UnavailableError):
        sql_store.purge_card("c1")

    # Failed writes left the state table untouched
    assert sql_store.get_state("u1", "c2") is None
    assert sql_store.get_state("u1", "c1").review_count == 1
