"""
Card/deck repository access.

The scheduler only needs to know which cards exist, which cards a deck holds
and which decks a goal links. Two backends:
- MongoDeckRepository: MongoDB collections `cards`, `decks`, `goal_deck_links`
- InMemoryDeckRepository: plain dicts, for tests and embedding
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from recall.config import load_settings
from recall.exceptions import NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

# Collections
CARDS_COLLECTION = "cards"
DECKS_COLLECTION = "decks"
GOAL_LINKS_COLLECTION = "goal_deck_links"

# Global connection pool (reused across requests)
_client: Optional[MongoClient] = None


class DeckRepository(ABC):
    """Read-only view of cards, decks and goals."""

    @abstractmethod
    def card_exists(self, card_id: str) -> bool:
        ...

    @abstractmethod
    def cards_in_deck(self, deck_id: str) -> list[str]:
        """Card ids in a deck. Raises NotFoundError for an unknown deck."""

    @abstractmethod
    def decks_in_goal(self, goal_id: str) -> list[str]:
        """Deck ids linked to a goal, in link order. Raises NotFoundError for an unknown goal."""


# ---- In-memory backend ----

class InMemoryDeckRepository(DeckRepository):
    """
    Dict-backed repository.
    """

    def __init__(self):
        self._card_deck: dict[str, str] = {}
        self._deck_cards: dict[str, list[str]] = {}
        self._goal_decks: dict[str, list[str]] = {}

    def add_deck(self, deck_id: str, card_ids: Iterable[str] = ()) -> None:
        self._deck_cards.setdefault(deck_id, [])
        for card_id in card_ids:
            self.add_card(card_id, deck_id)

    def add_card(self, card_id: str, deck_id: str) -> None:
        previous = self._card_deck.get(card_id)
        if previous is not None and previous != deck_id:
            self._deck_cards[previous].remove(card_id)
        self._card_deck[card_id] = deck_id
        cards = self._deck_cards.setdefault(deck_id, [])
        if card_id not in cards:
            cards.append(card_id)

    def link_card(self, card_id: str, deck_id: str) -> None:
        """Show an existing card in another deck as well (card keeps its owner)."""
        if card_id not in self._card_deck:
            raise NotFoundError(f"Card {card_id} not found")
        cards = self._deck_cards.setdefault(deck_id, [])
        if card_id not in cards:
            cards.append(card_id)

    def remove_card(self, card_id: str) -> None:
        self._card_deck.pop(card_id, None)
        for cards in self._deck_cards.values():
            if card_id in cards:
                cards.remove(card_id)

    def add_goal(self, goal_id: str, deck_ids: Iterable[str]) -> None:
        self._goal_decks[goal_id] = list(dict.fromkeys(deck_ids))

    def card_exists(self, card_id):
        return card_id in self._card_deck

    def cards_in_deck(self, deck_id):
        if deck_id not in self._deck_cards:
            raise NotFoundError(f"Deck {deck_id} not found")
        return list(self._deck_cards[deck_id])

    def decks_in_goal(self, goal_id):
        if goal_id not in self._goal_decks:
            raise NotFoundError(f"Goal {goal_id} not found")
        return list(self._goal_decks[goal_id])


# ---- MongoDB backend ----

def get_database(mongo_uri: Optional[str] = None, db_name: Optional[str] = None) -> Database:
    """
    Get the MongoDB database holding cards, decks and goal links.

    Uses a persistent connection pool that's reused across requests.
    """
    global _client

    settings = load_settings()
    mongo_uri = mongo_uri or settings.mongo_uri
    if not mongo_uri:
        raise ValueError("MONGO_URI not found in environment variables")

    if _client is None:
        _client = MongoClient(
            mongo_uri,
            maxPoolSize=10,  # Connection pool size
            minPoolSize=1,   # Keep at least 1 connection alive
            maxIdleTimeMS=60000  # Keep connections alive for 60 seconds
        )
    return _client[db_name or settings.mongo_db_name]


class MongoDeckRepository(DeckRepository):
    """
    Repository over MongoDB.

    Documents:
        cards:            {"_id": card_id, "deck_id": deck_id, ...content}
        decks:            {"_id": deck_id, ...}
        goal_deck_links:  {"goal_id": goal_id, "deck_id": deck_id}
    """

    def __init__(self, database: Optional[Database] = None):
        self.db = database if database is not None else get_database()

    def _call(self, what: str, func):
        try:
            return func()
        except PyMongoError as exc:
            logger.error("Deck repository call %s failed: %s", what, exc)
            raise UnavailableError(f"Deck repository unavailable during {what}") from exc

    def card_exists(self, card_id):
        return self._call(
            "card_exists",
            lambda: self.db[CARDS_COLLECTION].count_documents({"_id": card_id}, limit=1) > 0
        )

    def cards_in_deck(self, deck_id):
        def query():
            if self.db[DECKS_COLLECTION].count_documents({"_id": deck_id}, limit=1) == 0:
                raise NotFoundError(f"Deck {deck_id} not found")
            cursor = self.db[CARDS_COLLECTION].find(
                {"deck_id": deck_id}, {"_id": 1}
            ).sort("_id", ASCENDING)
            return [str(doc["_id"]) for doc in cursor]
        return self._call("cards_in_deck", query)

    def decks_in_goal(self, goal_id):
        def query():
            cursor = self.db[GOAL_LINKS_COLLECTION].find(
                {"goal_id": goal_id}, {"deck_id": 1}
            ).sort("_id", ASCENDING)
            deck_ids = [str(doc["deck_id"]) for doc in cursor]
            if not deck_ids:
                raise NotFoundError(f"No decks linked to goal {goal_id}")
            return list(dict.fromkeys(deck_ids))
        return self._call("decks_in_goal", query)
