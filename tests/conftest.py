import random
from datetime import datetime, timezone

import pytest

from recall.clock import FixedClock
from recall.deck_repo import InMemoryDeckRepository
from recall.engine import SchedulingEngine
from recall.srs.database import create_store_engine
from recall.srs.memory_store import InMemoryReviewStore
from recall.srs.store import SqlReviewStore


T0 = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def repo():
    """
    Two decks and a goal linking both:
        d1: c1..c5
        d2: c6..c8
        g1: d1, d2
    """
    repo = InMemoryDeckRepository()
    repo.add_deck("d1", ["c1", "c2", "c3", "c4", "c5"])
    repo.add_deck("d2", ["c6", "c7", "c8"])
    repo.add_goal("g1", ["d1", "d2"])
    return repo


@pytest.fixture
def memory_store():
    return InMemoryReviewStore()


@pytest.fixture
def sql_store():
    engine = create_store_engine("sqlite://")
    yield SqlReviewStore(engine)
    engine.dispose()


@pytest.fixture
def file_sql_store(tmp_path):
    """SQLite file database; safe to share between threads."""
    engine = create_store_engine(f"sqlite:///{tmp_path / 'reviews.sqlite'}")
    yield SqlReviewStore(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every backend of the review store contract."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def engine(store, repo, clock):
    return SchedulingEngine(store, repo, clock=clock, rng=random.Random(7))
