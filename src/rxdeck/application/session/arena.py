"""
Indexed arena holding one session's cards.

A dense list keeps the randomized session order; an id -> index map gives
keyed lookup into the same objects, so both views agree after in-place
mutation.
"""

from collections.abc import Iterable, Iterator

from rxdeck.domain.models import Card, SessionCard, SessionStats, SessionStatus

_ORDER = {
    SessionStatus.UNSEEN: 0,
    SessionStatus.ACTIVE: 1,
    SessionStatus.EASY_POOL: 2,
}


class SessionArena:
    def __init__(self, cards: Iterable[Card] = ()):
        self._cards: list[SessionCard] = []
        self._index: dict[str, int] = {}
        for card in cards:
            self.add(card)

    def add(self, card: Card) -> SessionCard:
        if card.id in self._index:
            raise ValueError(f"Card {card.id} already in session")
        session_card = SessionCard(card=card)
        self._index[card.id] = len(self._cards)
        self._cards.append(session_card)
        return session_card

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[SessionCard]:
        return iter(self._cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._index

    def get(self, card_id: str) -> SessionCard | None:
        idx = self._index.get(card_id)
        return self._cards[idx] if idx is not None else None

    def with_status(self, status: SessionStatus) -> list[SessionCard]:
        """Cards in the given lifecycle state, in session order."""
        return [c for c in self._cards if c.session_state == status]

    def count(self, status: SessionStatus) -> int:
        return sum(1 for c in self._cards if c.session_state == status)

    def move(self, card: SessionCard, status: SessionStatus) -> None:
        """Advance a card along unseen -> active -> easyPool. Never backwards."""
        if _ORDER[status] < _ORDER[card.session_state]:
            raise ValueError(
                f"Illegal session transition for {card.id}: "
                f"{card.session_state.value} -> {status.value}"
            )
        card.session_state = status

    def fill_batch(self, batch_size: int) -> list[SessionCard]:
        """
        Promote unseen cards to active until the batch holds batch_size
        cards or nothing unseen remains. Returns the promoted cards.
        """
        needed = batch_size - self.count(SessionStatus.ACTIVE)
        if needed <= 0:
            return []

        promoted = self.with_status(SessionStatus.UNSEEN)[:needed]
        for card in promoted:
            self.move(card, SessionStatus.ACTIVE)
        return promoted

    def stats(self) -> SessionStats:
        return SessionStats(
            active=self.count(SessionStatus.ACTIVE),
            confident=self.count(SessionStatus.EASY_POOL),
            unseen=self.count(SessionStatus.UNSEEN),
        )
