"""
Domain models for decks, cards and study sessions.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum


class Grade(IntEnum):
    """Operator-supplied recall quality, ordinal 1-4."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class SessionStatus(str, Enum):
    """Lifecycle of a card inside one session: unseen -> active -> easy_pool."""

    UNSEEN = "unseen"
    ACTIVE = "active"
    EASY_POOL = "easyPool"


class StudyMode(str, Enum):
    GENERIC_TO_BRAND = "generic_to_brand"
    BRAND_TO_GENERIC = "brand_to_generic"
    MIXED = "mixed"


@dataclass(frozen=True)
class Deck:
    id: str
    name: str
    created_at: int  # epoch ms


@dataclass(frozen=True)
class ScheduleUpdate:
    """
    Persistent scheduling fields produced by the interval scheduler.

    Attributes:
        state: Card state after the grade.
        due_date: Epoch ms when the card is next admitted.
        interval_days: Real-valued review interval (never rounded).
        ease_factor: SM-2 ease, floored at MIN_EASE_FACTOR.
        repetitions: Successful reviews since the last lapse.
        lapses: Lifetime count of "Again" grades.
    """

    state: CardState
    due_date: int
    interval_days: float
    ease_factor: float
    repetitions: int
    lapses: int


@dataclass
class Card:
    """
    A generic/brand pair with its persistent scheduling fields.

    `difficulty_score` is a lifetime counter of Again/Hard grades. It is never
    reset and only moves through the store's difficulty increment.
    """

    id: str
    deck_id: str
    generic: str
    brand: str
    notes: str = ""
    tags: list[str] = field(default_factory=list)

    difficulty_score: int = 0

    # SM-2 fields
    due_date: int = 0
    interval_days: float = 0.0
    ease_factor: float = 2.5
    repetitions: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW

    created_at: int = 0
    updated_at: int = 0

    def with_schedule(self, update: ScheduleUpdate, updated_at: int) -> "Card":
        """Return a copy carrying the scheduler's output."""
        return replace(
            self,
            state=update.state,
            due_date=update.due_date,
            interval_days=update.interval_days,
            ease_factor=update.ease_factor,
            repetitions=update.repetitions,
            lapses=update.lapses,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class ReviewLog:
    """
    A single append-only review entry.

    Attributes:
        card_id: The card that was graded.
        grade: Button pressed (1=Again, 2=Hard, 3=Good, 4=Easy).
        studied_at: Epoch ms of the grade.
        previous_interval: Interval in days before the grade, if known.
        new_interval: Interval in days the scheduler derived, if known.
    """

    card_id: str
    grade: Grade
    studied_at: int
    previous_interval: float | None = None
    new_interval: float | None = None


@dataclass
class SessionCard:
    """
    Ephemeral per-session projection of a Card.

    Owned by exactly one session and discarded when it ends.
    """

    card: Card
    session_state: SessionStatus = SessionStatus.UNSEEN
    session_due_time: int = 0  # epoch ms, 0 = immediately eligible
    session_confident: bool = False
    session_good_streak: int = 0
    last_shown_at: int = 0
    graded_count: int = 0

    @property
    def id(self) -> str:
        return self.card.id

    @property
    def difficulty_score(self) -> int:
        return self.card.difficulty_score


@dataclass(frozen=True)
class CardFace:
    """What the presentation boundary renders for the current card."""

    front_text: str
    back_text: str
    front_label: str
    back_label: str


@dataclass(frozen=True)
class SessionStats:
    active: int  # current batch
    confident: int  # easy pool ("done")
    unseen: int  # left

    @property
    def total(self) -> int:
        return self.active + self.confident + self.unseen
