"""Service for creating, importing and seeding decks."""

import logging
from dataclasses import dataclass, field, replace
from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml  # type: ignore
from ulid import ULID

from rxdeck.application.config import AppConfig
from rxdeck.application.utils.time import Clock, now_ms
from rxdeck.application.utils.yaml_io import load_yaml, load_yaml_file
from rxdeck.domain.constants import PRELOADED_DATA_FILE
from rxdeck.domain.models import Card, CardState, Deck
from rxdeck.domain.ports import CardStore

logger = logging.getLogger(__name__)


def generate_id(prefix: str) -> str:
    """Generate a sortable unique id using ULID."""
    return f"{prefix}_{ULID()}"


@dataclass(frozen=True)
class DrugPair:
    """A generic/brand pair already split by an upstream extractor."""

    generic: str
    brand: str
    notes: str = ""
    tags: tuple[str, ...] = ()


@dataclass
class DeckSummary:
    deck: Deck
    total: int
    due: int  # raw due count; daily caps are applied at session start


@dataclass
class SeedReport:
    decks_created: list[str] = field(default_factory=list)
    cards_created: int = 0
    cards_updated: int = 0


def parse_pairs(raw_cards: Any) -> list[DrugPair]:
    """
    Turn a list of {generic, brand, notes?, tags?} mappings into pairs.

    Entries with a blank generic or brand are skipped.
    """
    if not isinstance(raw_cards, list):
        raise ValueError("'cards' must be a list of {generic, brand} mappings")

    pairs: list[DrugPair] = []
    for i, item in enumerate(raw_cards):
        if not isinstance(item, dict):
            logger.warning(f"Skipping card #{i}: not a mapping")
            continue

        generic = str(item.get("generic") or "").strip()
        brand = str(item.get("brand") or "").strip()
        if not generic or not brand:
            logger.warning(f"Skipping card #{i}: missing generic or brand")
            continue

        tags = item.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]

        pairs.append(
            DrugPair(
                generic=generic,
                brand=brand,
                notes=str(item.get("notes") or ""),
                tags=tuple(str(t) for t in tags),
            )
        )
    return pairs


def load_pairs_file(path: Path) -> tuple[str, list[DrugPair]]:
    """
    Read a deck file of the form:

        deck: Antibiotics
        cards:
          - generic: cefazolin
            brand: Ancef

    Returns (deck name, pairs). The deck name defaults to the file stem.
    """
    try:
        meta = load_yaml_file(path)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(meta, dict):
        raise ValueError(f"{path} must contain a mapping with a 'cards' list")

    name = str(meta.get("deck") or path.stem).strip()
    return name, parse_pairs(meta.get("cards", []))


class DeckService:
    """Creates decks and cards with fresh scheduling fields."""

    def __init__(
        self,
        store: CardStore,
        config: AppConfig | None = None,
        clock: Clock = now_ms,
    ):
        self._store = store
        self._config = config or AppConfig.model_construct()
        self._clock = clock

    def new_card(
        self,
        deck_id: str,
        pair: DrugPair,
        card_id: str | None = None,
        now: int | None = None,
    ) -> Card:
        """A new card, due immediately, seeded with the configured ease."""
        if now is None:
            now = self._clock()
        ease = self._config.initial_ease_factor
        return Card(
            id=card_id or generate_id("card"),
            deck_id=deck_id,
            generic=pair.generic,
            brand=pair.brand,
            notes=pair.notes,
            tags=list(pair.tags),
            difficulty_score=0,
            due_date=now,
            interval_days=0.0,
            ease_factor=ease,
            repetitions=0,
            lapses=0,
            state=CardState.NEW,
            created_at=now,
            updated_at=now,
        )

    async def import_pairs(self, name: str, pairs: list[DrugPair]) -> tuple[Deck, list[Card]]:
        if not name.strip():
            raise ValueError("Deck name must not be empty")
        if not pairs:
            raise ValueError("No pairs to import")

        now = self._clock()
        deck = Deck(id=generate_id("deck"), name=name.strip(), created_at=now)
        cards = [self.new_card(deck.id, p, now=now) for p in pairs]

        await self._store.add_deck(deck)
        await self._store.add_cards(cards)
        logger.info(f"Imported deck '{deck.name}' with {len(cards)} cards")
        return deck, cards

    async def import_file(self, path: Path) -> tuple[Deck, list[Card]]:
        name, pairs = load_pairs_file(path)
        return await self.import_pairs(name, pairs)

    async def sync_preloaded_decks(self, data: str | None = None) -> SeedReport:
        """
        Ensure the bundled decks exist.

        Card ids are deterministic (card_<deck>_<index>), so re-running only
        updates changed text and never resets scheduling fields.
        """
        if data is None:
            data = (files("rxdeck") / "data" / PRELOADED_DATA_FILE).read_text(encoding="utf-8")
        meta = load_yaml(data) or {}

        report = SeedReport()
        now = self._clock()

        for entry in meta.get("decks", []):
            deck_id = entry["id"]
            if await self._store.get_deck(deck_id) is None:
                await self._store.add_deck(Deck(id=deck_id, name=entry["name"], created_at=now))
                report.decks_created.append(deck_id)

            existing = {c.id: c for c in await self._store.get_cards_for_deck(deck_id)}
            fresh: list[Card] = []

            for i, pair in enumerate(parse_pairs(entry.get("cards", []))):
                stable_id = f"card_{deck_id}_{i}"
                card = existing.get(stable_id)
                if card is None:
                    fresh.append(self.new_card(deck_id, pair, card_id=stable_id, now=now))
                elif card.generic != pair.generic or card.brand != pair.brand:
                    await self._store.update_card(
                        replace(card, generic=pair.generic, brand=pair.brand, updated_at=now)
                    )
                    report.cards_updated += 1

            if fresh:
                await self._store.add_cards(fresh)
                report.cards_created += len(fresh)

        logger.info(
            f"Seeded decks: created={len(report.decks_created)} "
            f"cards_created={report.cards_created} cards_updated={report.cards_updated}"
        )
        return report

    async def deck_summaries(self, now: int | None = None) -> list[DeckSummary]:
        if now is None:
            now = self._clock()
        summaries = []
        for deck in await self._store.get_decks():
            total = len(await self._store.get_cards_for_deck(deck.id))
            due = len(await self._store.get_due_cards(deck.id, now))
            summaries.append(DeckSummary(deck=deck, total=total, due=due))
        return summaries

    async def search_cards(self, deck_id: str, query: str | None = None) -> list[Card]:
        """Cards of a deck sorted by generic name, optionally filtered by substring."""
        cards = await self._store.get_cards_for_deck(deck_id)
        if query:
            q = query.lower()
            cards = [
                c
                for c in cards
                if q in c.generic.lower() or q in c.brand.lower() or q in c.notes.lower()
            ]
        return sorted(cards, key=lambda c: c.generic.lower())
