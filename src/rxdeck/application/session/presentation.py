"""Card face orientation for the presentation boundary."""

import random

from rxdeck.domain.models import Card, CardFace, StudyMode

GENERIC_LABEL = "Generic Name"
BRAND_LABEL = "Brand Name"


def card_face(card: Card, mode: StudyMode, rng: random.Random | None = None) -> CardFace:
    """
    Orient a card for display.

    `mixed` flips a coin per call, so call it once per card shown and keep
    the result until the card is graded.
    """
    mode = StudyMode(mode)
    if mode == StudyMode.GENERIC_TO_BRAND:
        generic_first = True
    elif mode == StudyMode.BRAND_TO_GENERIC:
        generic_first = False
    else:
        generic_first = (rng or random).random() <= 0.5

    if generic_first:
        return CardFace(
            front_text=card.generic,
            back_text=card.brand,
            front_label=GENERIC_LABEL,
            back_label=BRAND_LABEL,
        )
    return CardFace(
        front_text=card.brand,
        back_text=card.generic,
        front_label=BRAND_LABEL,
        back_label=GENERIC_LABEL,
    )
