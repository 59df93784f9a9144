"""
Due-Card Selector

Orders due cards most-overdue first:
- never-reviewed cards sort as due at the earliest possible time
- then ascending next_review_at
- ties broken by card id so results are reproducible

Truncation to `limit` happens only after ordering.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Iterable, Optional

from recall.deck_repo import DeckRepository
from recall.exceptions import ValidationError
from recall.session_builders.scope import Scope, resolve_scope
from recall.srs.review_state import ReviewState, ensure_utc
from recall.srs.store import ReviewStore

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def due_order_key(card_id: str, state: Optional[ReviewState]) -> tuple[datetime, str]:
    """Sort key shared by the selector and the session builder."""
    if state is None or state.next_review_at is None:
        return (_EARLIEST, card_id)
    return (ensure_utc(state.next_review_at), card_id)


def order_cards(card_ids: Iterable[str], states: dict[str, ReviewState]) -> list[str]:
    """Sort card ids by due_order_key (no DB calls)."""
    return sorted(set(card_ids), key=lambda card_id: due_order_key(card_id, states.get(card_id)))


def check_limit(limit: Optional[int], name: str = "limit") -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ValidationError(f"{name} must be a non-negative integer, got {limit!r}")


def select_due(
    store: ReviewStore,
    repo: DeckRepository,
    user_id: str,
    scope: Scope,
    as_of: datetime,
    limit: Optional[int] = None,
    timeout: Optional[float] = None
) -> list[str]:
    """
    Select due cards for a learner within a deck or goal.

    Args:
        store: Review state store
        repo: Card/deck repository used to resolve the scope
        user_id: Learner
        scope: Deck or goal
        as_of: Timezone-aware reference time
        limit: Maximum number of cards (None = all)
        timeout: Per store call timeout in seconds

    Returns:
        Ordered list of card ids
    """
    check_limit(limit)
    resolved = resolve_scope(repo, scope)
    due_ids = store.list_due(user_id, resolved.card_ids, as_of, timeout=timeout)
    if not due_ids:
        return []

    states = store.get_states(user_id, due_ids, timeout=timeout)
    ordered = order_cards(due_ids, states)
    return ordered if limit is None else ordered[:limit]
