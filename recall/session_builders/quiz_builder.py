"""
Quiz Session Builder

Turns a scope and a mode into an ordered list of cards for one sitting:
1. review-due: cards due now, most overdue first
2. all: every card in scope, in due order
3. new: never-reviewed cards, by card id

Session Logic:
- Select by mode
- Truncate to count
- Shuffle (optional) only what survived truncation
"""

from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from recall.deck_repo import DeckRepository
from recall.exceptions import ValidationError
from recall.schemas import SessionMode
from recall.session_builders.due_selector import check_limit, order_cards, select_due
from recall.session_builders.scope import Scope, resolve_scope
from recall.srs.store import ReviewStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuizSession:
    """An ordered set of cards for one sitting. Not persisted."""
    user_id: str
    scope: Scope
    mode: SessionMode
    count: int
    card_ids: tuple[str, ...]
    shuffled: bool
    built_at: datetime

    def __len__(self) -> int:
        return len(self.card_ids)

    def __iter__(self):
        return iter(self.card_ids)


def parse_mode(mode: Union[SessionMode, str]) -> SessionMode:
    try:
        return SessionMode(mode)
    except ValueError:
        raise ValidationError(
            f"Unknown session mode {mode!r}; expected one of {[m.value for m in SessionMode]}"
        )


def _select_all(store, repo, user_id, scope, timeout) -> list[str]:
    resolved = resolve_scope(repo, scope)
    states = store.get_states(user_id, resolved.card_ids, timeout=timeout)
    return order_cards(resolved.card_ids, states)


def _select_new(store, repo, user_id, scope, timeout) -> list[str]:
    resolved = resolve_scope(repo, scope)
    reviewed = store.get_states(user_id, resolved.card_ids, timeout=timeout)
    return sorted(card_id for card_id in resolved.card_ids if card_id not in reviewed)


def build_session(
    store: ReviewStore,
    repo: DeckRepository,
    user_id: str,
    scope: Scope,
    mode: Union[SessionMode, str],
    count: int,
    now: datetime,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
    timeout: Optional[float] = None
) -> QuizSession:
    """
    Build a quiz session.

    Args:
        store: Review state store
        repo: Card/deck repository
        user_id: Learner
        scope: Deck or goal
        mode: "new", "all" or "review-due"
        count: Target number of cards (fewer is fine)
        now: Reference time for review-due mode
        shuffle: Randomize presentation order after selection
        rng: Random source for the shuffle (module random if None)
        timeout: Per store call timeout in seconds

    Returns:
        QuizSession with min(count, available) cards
    """
    session_mode = parse_mode(mode)
    check_limit(count, "count")

    if session_mode is SessionMode.REVIEW_DUE:
        card_ids = select_due(store, repo, user_id, scope, now, limit=count, timeout=timeout)
    elif session_mode is SessionMode.ALL:
        card_ids = _select_all(store, repo, user_id, scope, timeout)[:count]
    else:
        card_ids = _select_new(store, repo, user_id, scope, timeout)[:count]

    if shuffle and len(card_ids) > 1:
        (rng or random).shuffle(card_ids)

    logger.debug(
        "Built %s session for %s on %s %s: %d/%d cards",
        session_mode.value, user_id, scope.kind, scope.id, len(card_ids), count
    )

    return QuizSession(
        user_id=user_id,
        scope=scope,
        mode=session_mode,
        count=count,
        card_ids=tuple(card_ids),
        shuffled=shuffle,
        built_at=now,
    )
