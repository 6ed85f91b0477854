"""
Admission filter for cross-session eligibility.

Builds the admitted set for a session by:
1. Fetching a deck's cards whose persistent due date has elapsed
2. Partitioning them by scheduler state
3. Capping new and review partitions (first-N, store order)
4. Merging learning -> review -> new
"""

import logging
from dataclasses import dataclass

from rxdeck.application.utils.time import now_ms
from rxdeck.domain.constants import DEFAULT_NEW_CARDS_PER_DAY, DEFAULT_REVIEWS_PER_DAY
from rxdeck.domain.models import Card, CardState
from rxdeck.domain.ports import CardStore

logger = logging.getLogger(__name__)


@dataclass
class AdmissionResult:
    """Result of filtering a deck's due cards."""

    learning: list[Card]  # learning + relearning, uncapped
    review: list[Card]  # capped at reviews_per_day
    new: list[Card]  # capped at new_cards_per_day
    skipped_new: int  # due but over the new-card cap
    skipped_review: int  # due but over the review cap

    @property
    def admitted(self) -> list[Card]:
        """Cards in priority order: learning, review, new."""
        return [*self.learning, *self.review, *self.new]

    def __len__(self) -> int:
        return len(self.learning) + len(self.review) + len(self.new)


def admit(
    due: list[Card],
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY,
    reviews_per_day: int = DEFAULT_REVIEWS_PER_DAY,
) -> AdmissionResult:
    """
    Partition already-due cards and apply the daily caps.

    Truncation keeps the first N cards in the order given; there is no
    priority reordering inside a partition.
    """
    learning: list[Card] = []
    review: list[Card] = []
    new: list[Card] = []

    for card in due:
        if card.state in (CardState.LEARNING, CardState.RELEARNING):
            learning.append(card)
        elif card.state == CardState.REVIEW:
            review.append(card)
        else:
            new.append(card)

    new_cap = max(0, new_cards_per_day)
    review_cap = max(0, reviews_per_day)

    return AdmissionResult(
        learning=learning,
        review=review[:review_cap],
        new=new[:new_cap],
        skipped_new=max(0, len(new) - new_cap),
        skipped_review=max(0, len(review) - review_cap),
    )


async def due_cards(
    store: CardStore,
    deck_id: str,
    now: int | None = None,
    new_cards_per_day: int = DEFAULT_NEW_CARDS_PER_DAY,
    reviews_per_day: int = DEFAULT_REVIEWS_PER_DAY,
) -> AdmissionResult:
    """
    Fetch a deck's due cards from the store and admit them.

    Args:
        store: Card store (port).
        deck_id: Deck to filter.
        now: Epoch ms; defaults to the current time.
        new_cards_per_day: Cap on admitted new cards.
        reviews_per_day: Cap on admitted review cards.

    Returns:
        AdmissionResult with per-partition lists and overflow counts.
    """
    if now is None:
        now = now_ms()

    due = [c for c in await store.get_due_cards(deck_id, now) if c.due_date <= now]
    result = admit(due, new_cards_per_day, reviews_per_day)

    logger.debug(
        f"Admission for {deck_id}: learning={len(result.learning)} "
        f"review={len(result.review)} (+{result.skipped_review} capped) "
        f"new={len(result.new)} (+{result.skipped_new} capped)"
    )
    return result
