"""
Session queue manager: owns one study session.

Keeps a bounded active batch, promotes confident cards into an easy pool
for spaced reinforcement, and picks the next card by due time, recency
and difficulty-weighted sampling. Persistent bookkeeping (difficulty,
schedule, review log) is written through the CardStore port as one
transaction per grade.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Literal

from rxdeck.application.admission import due_cards
from rxdeck.application.config import AppConfig
from rxdeck.application.scheduler import SchedulerSettings, format_delay, schedule
from rxdeck.application.session.arena import SessionArena
from rxdeck.application.session.presentation import card_face
from rxdeck.application.utils.time import Clock, now_ms
from rxdeck.domain.constants import (
    CONFIDENT_STREAK,
    DEFAULT_BATCH_SIZE,
    DEFAULT_PROMOTION_THRESHOLD,
    DEFAULT_REINFORCEMENT_INTERVAL,
    SESSION_DELAY_AGAIN,
    SESSION_DELAY_EASY,
    SESSION_DELAY_GOOD,
    SESSION_DELAY_HARD,
)
from rxdeck.domain.models import (
    Card,
    CardFace,
    Grade,
    ReviewLog,
    ScheduleUpdate,
    SessionCard,
    SessionStats,
    SessionStatus,
    StudyMode,
)
from rxdeck.domain.ports import CardStore

logger = logging.getLogger(__name__)

SessionScope = Literal["all", "due"]

SESSION_DELAYS: dict[Grade, int] = {
    Grade.AGAIN: SESSION_DELAY_AGAIN,
    Grade.HARD: SESSION_DELAY_HARD,
    Grade.GOOD: SESSION_DELAY_GOOD,
    Grade.EASY: SESSION_DELAY_EASY,
}


@dataclass(frozen=True)
class SessionPolicy:
    """Batching and reinforcement knobs for one session."""

    batch_size: int = DEFAULT_BATCH_SIZE
    reinforcement_interval: int = DEFAULT_REINFORCEMENT_INTERVAL
    promotion_threshold: int = DEFAULT_PROMOTION_THRESHOLD
    reschedule_policy: Literal["first", "every", "never"] = "first"
    delays: dict[Grade, int] = field(default_factory=lambda: dict(SESSION_DELAYS))

    @classmethod
    def from_config(cls, config: AppConfig) -> "SessionPolicy":
        return cls(
            batch_size=config.batch_size,
            reinforcement_interval=config.reinforcement_interval,
            promotion_threshold=config.promotion_threshold,
            reschedule_policy=config.reschedule_policy,
        )


@dataclass
class GradeOutcome:
    """What happened when a grade was applied."""

    card_id: str
    grade: Grade
    feedback: str  # e.g. "Good • 15m"
    session_due_time: int
    promoted: list[str]  # ids moved to the easy pool by this grade
    schedule: ScheduleUpdate | None  # persisted schedule, None if not written
    next_card: SessionCard | None


def weighted_pick(cards: list[SessionCard], rng: random.Random) -> SessionCard:
    """
    Cumulative-weight sampling with weight difficulty_score + 1.

    The table is rebuilt per call because pool composition changes between
    picks.
    """
    weights = [max(0, c.difficulty_score) + 1 for c in cards]
    remaining = rng.random() * sum(weights)
    for card, weight in zip(cards, weights):
        remaining -= weight
        if remaining <= 0:
            return card
    return cards[0]


class StudySession:
    """
    Owns the Session State for one deck and one sitting.

    Not shared across sessions. All transitions run to completion; the store
    write is awaited before the in-memory state changes and is all-or-nothing,
    so a failed grade leaves both the session and the store as they were.
    """

    def __init__(
        self,
        store: CardStore,
        config: AppConfig | None = None,
        *,
        mode: StudyMode | None = None,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ):
        """
        Args:
            store: Open card store handle; the session does not close it.
            config: Resolved configuration; defaults are used if omitted.
            mode: Face orientation; falls back to config.study_mode.
            rng: Random source for shuffling and selection.
            clock: Epoch-ms time source.
        """
        self._store = store
        self._config = config or AppConfig.model_construct()
        self.policy = SessionPolicy.from_config(self._config)
        self._sched = SchedulerSettings.from_config(self._config)
        self.mode = StudyMode(mode or self._config.study_mode)
        self._rng = rng or random.Random()
        self._clock = clock

        self.deck_id: str | None = None
        self._arena = SessionArena()
        self._current: SessionCard | None = None
        self._face: CardFace | None = None
        self._last_shown_id: str | None = None
        self._since_reinforcement = 0

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def start(self, deck_id: str, scope: SessionScope = "all") -> SessionCard | None:
        """
        Snapshot a deck from the store and select the first card.

        scope="all" drills every card of the deck; scope="due" drills only
        the admitted set (learning, then review, then new), shuffled within
        each partition so the priority order survives.
        """
        if scope == "due":
            result = await due_cards(
                self._store,
                deck_id,
                now=self._clock(),
                new_cards_per_day=self._config.new_cards_per_day,
                reviews_per_day=self._config.reviews_per_day,
            )
            cards = []
            for part in (result.learning, result.review, result.new):
                part = list(part)
                self._rng.shuffle(part)
                cards.extend(part)
        else:
            cards = list(await self._store.get_cards_for_deck(deck_id))
            self._rng.shuffle(cards)

        self.deck_id = deck_id
        first = self.load(cards)
        logger.info(
            f"Session started for {deck_id} ({scope}): {len(self._arena)} cards, "
            f"batch={self.stats.active}"
        )
        return first

    def load(self, cards: list[Card]) -> SessionCard | None:
        """Build session state from cards already in session order."""
        self._arena = SessionArena(cards)
        self._current = None
        self._face = None
        self._last_shown_id = None
        self._since_reinforcement = 0
        self.fill_batch()
        return self.pick_next()

    def fill_batch(self) -> list[SessionCard]:
        """Top the active batch back up from unseen cards."""
        return self._arena.fill_batch(self.policy.batch_size)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def pick_next(self) -> SessionCard | None:
        """
        Select the card to show next. First match wins:

        1. reinforcement from the easy pool every N shown cards (weighted)
        2. active cards whose session due time has passed
        3. active cards other than the one just shown
        4. the single remaining active card, even if just shown
        5. any easy-pool card once the active batch is empty
        6. nothing: the session is complete
        """
        now = self._clock()
        active = self._arena.with_status(SessionStatus.ACTIVE)
        pool = self._arena.with_status(SessionStatus.EASY_POOL)

        chosen: SessionCard | None = None
        if self._since_reinforcement >= self.policy.reinforcement_interval and pool:
            chosen = weighted_pick(pool, self._rng)
            self._since_reinforcement = 0
            logger.debug(f"Reinforcement pick {chosen.id} from pool of {len(pool)}")
        else:
            fresh = [c for c in active if c.id != self._last_shown_id]
            due = [c for c in fresh if c.session_due_time <= now]
            if due:
                chosen = self._rng.choice(due)
            elif fresh:
                chosen = self._rng.choice(fresh)
            elif active:
                chosen = active[0]
            elif pool:
                chosen = self._rng.choice(pool)

        self._current = chosen
        if chosen is None:
            self._face = None
            logger.info(f"Session complete for {self.deck_id}")
            return None

        self._last_shown_id = chosen.id
        self._face = card_face(chosen.card, self.mode, self._rng)
        return chosen

    # ------------------------------------------------------------------
    # Grading
    # ------------------------------------------------------------------

    async def apply_grade(self, grade: Grade | int) -> GradeOutcome | None:
        """
        Grade the current card, persist bookkeeping, then select the next card.

        Raises:
            PersistenceError: A store write failed. Session state is unchanged
                and the same grade may be retried.
        """
        card = self._current
        if card is None:
            logger.warning("Grade received with no current card; ignoring")
            return None

        grade = Grade(grade)
        now = self._clock()
        delay = self.policy.delays[grade]
        missed = grade in (Grade.AGAIN, Grade.HARD)

        update = schedule(card.card, grade, self._sched, now)
        persist = self._should_reschedule(card)
        rescheduled = card.card.with_schedule(update, now) if persist else None

        # One atomic store write first: nothing below runs if it fails.
        await self._store.record_grade(
            card.id,
            1 if missed else 0,
            rescheduled,
            ReviewLog(
                card_id=card.id,
                grade=grade,
                studied_at=now,
                previous_interval=card.card.interval_days,
                new_interval=update.interval_days if persist else None,
            ),
        )

        if rescheduled is not None:
            card.card = rescheduled
        if missed:
            card.card.difficulty_score += 1
            card.session_good_streak = 0
        elif grade == Grade.GOOD:
            card.session_good_streak += 1
        else:
            card.session_confident = True
        if card.session_good_streak >= CONFIDENT_STREAK:
            card.session_confident = True

        card.session_due_time = now + delay
        card.last_shown_at = now
        card.graded_count += 1

        promoted = self._promote_confident(card)
        self._since_reinforcement += 1

        return GradeOutcome(
            card_id=card.id,
            grade=grade,
            feedback=f"{grade.name.title()} • {format_delay(delay)}",
            session_due_time=card.session_due_time,
            promoted=promoted,
            schedule=update if persist else None,
            next_card=self.pick_next(),
        )

    def _should_reschedule(self, card: SessionCard) -> bool:
        policy = self.policy.reschedule_policy
        if policy == "every":
            return True
        if policy == "first":
            return card.graded_count == 0
        return False

    def _promote_confident(self, card: SessionCard) -> list[str]:
        """
        Move every confident active card to the easy pool once more than
        promotion_threshold of them are confident, then refill the batch.
        """
        if card.session_state != SessionStatus.ACTIVE or not card.session_confident:
            return []

        confident = [
            c for c in self._arena.with_status(SessionStatus.ACTIVE) if c.session_confident
        ]
        if len(confident) <= self.policy.promotion_threshold:
            return []

        for c in confident:
            self._arena.move(c, SessionStatus.EASY_POOL)
        refilled = self.fill_batch()
        logger.info(
            f"Promoted {len(confident)} confident cards to easy pool; "
            f"refilled {len(refilled)} from unseen"
        )
        return [c.id for c in confident]

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def current(self) -> SessionCard | None:
        return self._current

    @property
    def face(self) -> CardFace | None:
        return self._face

    @property
    def is_complete(self) -> bool:
        return self._current is None

    @property
    def stats(self) -> SessionStats:
        return self._arena.stats()

    @property
    def cards(self) -> SessionArena:
        return self._arena

    @property
    def since_reinforcement(self) -> int:
        return self._since_reinforcement
