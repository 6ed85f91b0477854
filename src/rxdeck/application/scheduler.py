"""
Interval scheduler: a simplified SM-2 over four grades.

This is a pure computation module with no I/O. Callers persist the result.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from rxdeck.application.utils.time import now_ms, round_half_up
from rxdeck.domain.constants import (
    AGAIN_EASE_PENALTY,
    DEFAULT_EASY_BONUS,
    DEFAULT_LEARNING_STEPS,
    EASY_EASE_BONUS,
    FALLBACK_LEARNING_STEP,
    GRADUATING_INTERVAL_DAYS,
    HARD_EASE_PENALTY,
    HARD_INTERVAL_MULTIPLIER,
    LEARNING_HARD_STEP_MULTIPLIER,
    MIN_EASE_FACTOR,
    MS_PER_DAY,
    MS_PER_HOUR,
    MS_PER_MINUTE,
)
from rxdeck.domain.models import Card, CardState, Grade, ScheduleUpdate


@dataclass(frozen=True)
class SchedulerSettings:
    """The subset of AppConfig the scheduler reads."""

    learning_steps: Sequence[float] = tuple(DEFAULT_LEARNING_STEPS)
    easy_bonus: float = DEFAULT_EASY_BONUS

    @classmethod
    def from_config(cls, config) -> "SchedulerSettings":
        return cls(learning_steps=tuple(config.learning_steps), easy_bonus=config.easy_bonus)

    @property
    def first_step_minutes(self) -> float:
        return self.learning_steps[0] if self.learning_steps else FALLBACK_LEARNING_STEP


def schedule(
    card: Card,
    grade: Grade,
    settings: SchedulerSettings | None = None,
    now: int | None = None,
) -> ScheduleUpdate:
    """
    Derive the next persistent schedule for a card from a grade.

    Never mutates `card`. Deterministic for a given `now` (epoch ms).

    - Again (any state): back to learning, lapse counted, ease -0.2.
    - new/learning/relearning: Good/Easy graduates to a 1 day review,
      Hard repeats the first learning step stretched by 1.5.
    - review: interval multiplied by 1.2 (Hard), ease (Good) or
      ease * easy_bonus (Easy).
    """
    settings = settings or SchedulerSettings()
    if now is None:
        now = now_ms()
    grade = Grade(grade)

    ease = card.ease_factor

    if grade == Grade.AGAIN:
        return ScheduleUpdate(
            state=CardState.LEARNING,
            due_date=now + _minutes(settings.first_step_minutes),
            interval_days=0.0,
            ease_factor=max(MIN_EASE_FACTOR, ease - AGAIN_EASE_PENALTY),
            repetitions=0,
            lapses=card.lapses + 1,
        )

    if card.state == CardState.REVIEW:
        interval = card.interval_days
        if grade == Grade.HARD:
            interval = interval * HARD_INTERVAL_MULTIPLIER
            ease = max(MIN_EASE_FACTOR, ease - HARD_EASE_PENALTY)
        elif grade == Grade.GOOD:
            interval = interval * ease
        else:
            interval = interval * ease * settings.easy_bonus
            ease = ease + EASY_EASE_BONUS

        return ScheduleUpdate(
            state=CardState.REVIEW,
            due_date=now + _days(interval),
            interval_days=interval,
            ease_factor=ease,
            repetitions=card.repetitions + 1,
            lapses=card.lapses,
        )

    # new / learning / relearning share the learning ladder
    if grade >= Grade.GOOD:
        return ScheduleUpdate(
            state=CardState.REVIEW,
            due_date=now + _days(GRADUATING_INTERVAL_DAYS),
            interval_days=GRADUATING_INTERVAL_DAYS,
            ease_factor=ease,
            repetitions=1,
            lapses=card.lapses,
        )

    return ScheduleUpdate(
        state=CardState.LEARNING,
        due_date=now + _minutes(settings.first_step_minutes * LEARNING_HARD_STEP_MULTIPLIER),
        interval_days=card.interval_days,
        ease_factor=ease,
        repetitions=card.repetitions,
        lapses=card.lapses,
    )


def describe_next_interval(
    card: Card,
    grade: Grade,
    settings: SchedulerSettings | None = None,
    now: int | None = None,
) -> str:
    """
    Render the prospective delay for a grade without committing it.

    Returns e.g. "1m", "15m", "3h" or "5d". Minutes never go below 1.
    """
    if now is None:
        now = now_ms()
    update = schedule(card, grade, settings, now)
    return format_delay(update.due_date - now)


def preview_all(
    card: Card, settings: SchedulerSettings | None = None, now: int | None = None
) -> dict[Grade, str]:
    """Prospective delay for every grade, for showing under the grade buttons."""
    if now is None:
        now = now_ms()
    return {g: describe_next_interval(card, g, settings, now) for g in Grade}


def format_delay(diff_ms: float) -> str:
    if diff_ms < MS_PER_HOUR:
        return f"{max(1, round_half_up(diff_ms / MS_PER_MINUTE))}m"
    if diff_ms < MS_PER_DAY:
        return f"{round_half_up(diff_ms / MS_PER_HOUR)}h"
    return f"{round_half_up(diff_ms / MS_PER_DAY)}d"


def _minutes(value: float) -> int:
    return int(round(value * MS_PER_MINUTE))


def _days(value: float) -> int:
    return int(round(value * MS_PER_DAY))
