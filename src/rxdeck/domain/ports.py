"""
Ports (interfaces) for card persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import Card, Deck, ReviewLog


class CardStore(ABC):
    """
    Port for durable decks, cards and the review log.

    Every method raises `PersistenceError` when the backend fails.

    Implementations:
        - SqliteCardStore: Local SQLite database.
    """

    @abstractmethod
    async def get_cards_for_deck(self, deck_id: str) -> list[Card]:
        """Return every card owned by the deck."""
        pass

    @abstractmethod
    async def get_due_cards(self, deck_id: str, now: int) -> list[Card]:
        """
        Return the deck's cards whose due_date <= now.

        Ordered by due_date so first-N truncation is stable.
        """
        pass

    @abstractmethod
    async def update_card(self, card: Card) -> None:
        """
        Persist content and scheduling fields of an existing card.

        Does not write difficulty_score; use update_card_difficulty.
        """
        pass

    @abstractmethod
    async def update_card_difficulty(self, card_id: str, delta: int) -> None:
        """Increment a card's lifetime difficulty score by delta."""
        pass

    @abstractmethod
    async def log_review(self, log: ReviewLog) -> None:
        """Append a review log entry."""
        pass

    @abstractmethod
    async def get_card(self, card_id: str) -> Card | None:
        pass

    @abstractmethod
    async def get_decks(self) -> list[Deck]:
        """Return all decks, newest first."""
        pass

    @abstractmethod
    async def get_deck(self, deck_id: str) -> Deck | None:
        pass

    @abstractmethod
    async def add_deck(self, deck: Deck) -> None:
        """Insert or replace a deck."""
        pass

    @abstractmethod
    async def add_cards(self, cards: list[Card]) -> None:
        """Insert or replace cards, including their difficulty score."""
        pass

    @abstractmethod
    async def get_review_logs(self, card_id: str) -> list[ReviewLog]:
        """Return a card's review log, oldest first."""
        pass

    @abstractmethod
    async def record_grade(
        self,
        card_id: str,
        difficulty_delta: int,
        card: Card | None,
        log: ReviewLog,
    ) -> None:
        """
        Persist one grade atomically.

        Applies the difficulty increment (when delta is non-zero), writes
        `card`'s schedule (when given) and appends `log`. Either all of it is
        committed or none of it is.
        """
        pass
