from unittest.mock import MagicMock

from rxdeck.application.session.presentation import card_face
from rxdeck.domain.models import StudyMode


def test_generic_to_brand(make_card):
    face = card_face(make_card(generic="metoprolol", brand="Lopresor"), StudyMode.GENERIC_TO_BRAND)
    assert face.front_text == "metoprolol"
    assert face.back_text == "Lopresor"
    assert face.front_label == "Generic Name"
    assert face.back_label == "Brand Name"


def test_brand_to_generic(make_card):
    face = card_face(make_card(generic="metoprolol", brand="Lopresor"), "brand_to_generic")
    assert face.front_text == "Lopresor"
    assert face.front_label == "Brand Name"
    assert face.back_text == "metoprolol"


def test_mixed_flips_on_rng(make_card):
    card = make_card(generic="apixaban", brand="Eliquis")
    rng = MagicMock()

    rng.random.return_value = 0.5
    assert card_face(card, StudyMode.MIXED, rng).front_text == "apixaban"

    rng.random.return_value = 0.51
    assert card_face(card, StudyMode.MIXED, rng).front_text == "Eliquis"
