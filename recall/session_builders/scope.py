"""
Scopes: a single deck or every deck linked to a goal.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Literal

from recall.deck_repo import DeckRepository
from recall.exceptions import NotFoundError, ValidationError


ScopeKind = Literal["deck", "goal"]


@dataclass(frozen=True)
class Scope:
    """Where a selection, session or counter draws its cards from."""
    kind: ScopeKind
    id: str

    @classmethod
    def deck(cls, deck_id: str) -> "Scope":
        return cls("deck", deck_id)

    @classmethod
    def goal(cls, goal_id: str) -> "Scope":
        return cls("goal", goal_id)

    def __post_init__(self):
        if self.kind not in ("deck", "goal"):
            raise ValidationError(f"Unknown scope kind {self.kind!r}")
        if not self.id:
            raise ValidationError("Scope id must not be empty")


@dataclass(frozen=True)
class ResolvedScope:
    """
    Cards of a scope with the deck each one is counted under.

    card_ids keeps resolution order and holds each card once.
    """
    scope: Scope
    deck_ids: tuple[str, ...]
    card_ids: tuple[str, ...]
    card_decks: dict[str, str]


def resolve_scope(repo: DeckRepository, scope: Scope) -> ResolvedScope:
    """
    Expand a scope into its cards.

    A goal may reach the same card through two decks; the card is kept once,
    under the first deck (in goal link order) that contains it.

    Raises:
        NotFoundError: Unknown deck/goal, or a goal with no linked decks
    """
    if scope.kind == "deck":
        deck_ids = [scope.id]
    else:
        deck_ids = list(dict.fromkeys(repo.decks_in_goal(scope.id)))
        if not deck_ids:
            raise NotFoundError(f"No decks linked to goal {scope.id}")

    card_decks: dict[str, str] = {}
    for deck_id in deck_ids:
        for card_id in repo.cards_in_deck(deck_id):
            card_decks.setdefault(card_id, deck_id)

    return ResolvedScope(
        scope=scope,
        deck_ids=tuple(deck_ids),
        card_ids=tuple(card_decks),
        card_decks=card_decks,
    )
