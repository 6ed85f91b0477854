"""Tests for StudySession: batching, selection, grading and persistence order."""

import random
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from rxdeck.application.config import AppConfig
from rxdeck.application.session.queue_manager import StudySession, weighted_pick
from rxdeck.domain.constants import MS_PER_MINUTE
from rxdeck.domain.errors import PersistenceError
from rxdeck.domain.models import CardState, Grade, ReviewLog, SessionCard, SessionStatus


def _config(**overrides) -> AppConfig:
    return AppConfig.model_construct(**overrides)


def _session(store, clock, seed: int = 1, **overrides) -> StudySession:
    return StudySession(store, _config(**overrides), rng=random.Random(seed), clock=clock)


@pytest.fixture
def mock_store():
    return AsyncMock()


# --- Initialization ---


def test_load_fills_batch_of_ten(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    first = session.load([make_card(f"c{i}") for i in range(12)])

    stats = session.stats
    assert (stats.active, stats.confident, stats.unseen) == (10, 0, 2)
    assert first is not None
    assert first.session_state == SessionStatus.ACTIVE
    assert session.face is not None


def test_empty_deck_is_complete(mock_store, clock):
    session = _session(mock_store, clock)
    assert session.load([]) is None
    assert session.is_complete
    assert session.face is None


@pytest.mark.asyncio
async def test_start_all_uses_every_card(mock_store, clock, make_card):
    mock_store.get_cards_for_deck.return_value = [make_card(f"c{i}") for i in range(4)]
    session = _session(mock_store, clock)

    await session.start("deck_1")

    mock_store.get_cards_for_deck.assert_awaited_once_with("deck_1")
    assert sorted(c.id for c in session.cards) == ["c0", "c1", "c2", "c3"]
    assert session.deck_id == "deck_1"


@pytest.mark.asyncio
async def test_start_due_keeps_partition_priority(mock_store, clock, make_card):
    mock_store.get_due_cards.return_value = [
        make_card("n1", state=CardState.NEW),
        make_card("n2", state=CardState.NEW),
        make_card("r1", state=CardState.REVIEW),
        make_card("l1", state=CardState.LEARNING),
        make_card("r2", state=CardState.REVIEW),
        make_card("l2", state=CardState.RELEARNING),
    ]
    session = _session(mock_store, clock, new_cards_per_day=1)

    await session.start("deck_1", scope="due")

    states = [c.card.state for c in session.cards]
    assert len(states) == 5  # one new card capped away
    assert set(states[:2]) == {CardState.LEARNING, CardState.RELEARNING}
    assert states[2:4] == [CardState.REVIEW, CardState.REVIEW]
    assert states[4] == CardState.NEW


# --- Selection ---


@pytest.mark.asyncio
async def test_never_repeats_previous_card(mock_store, clock, make_card):
    session = _session(mock_store, clock, seed=3)
    session.load([make_card(f"c{i}") for i in range(3)])
    rng = random.Random(11)

    previous = session.current.id
    for _ in range(200):
        clock.advance(rng.choice([0, MS_PER_MINUTE, 20 * MS_PER_MINUTE]))
        outcome = await session.apply_grade(rng.choice(list(Grade)))
        assert outcome.next_card.id != previous
        previous = outcome.next_card.id


def test_single_active_card_is_shown_again(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("only")])

    assert session.current.id == "only"
    assert session.pick_next().id == "only"


def test_weighted_pick_favours_difficult_cards(make_card):
    easy = SessionCard(card=make_card("A", difficulty_score=0))
    hard = SessionCard(card=make_card("B", difficulty_score=3))
    rng = random.Random(1234)

    picks = {"A": 0, "B": 0}
    for _ in range(20_000):
        picks[weighted_pick([easy, hard], rng).id] += 1

    ratio = picks["B"] / picks["A"]
    assert 3.6 < ratio < 4.4


@pytest.mark.parametrize("seed", range(10))
@pytest.mark.asyncio
async def test_elapsed_session_delay_beats_fresh_cards(mock_store, clock, make_card, seed):
    session = _session(mock_store, clock, seed=seed)
    session.load([make_card(f"c{i}") for i in range(3)])

    missed = session.current.id
    await session.apply_grade(Grade.AGAIN)  # back in 1m
    await session.apply_grade(Grade.GOOD)  # back in 15m
    clock.advance(2 * MS_PER_MINUTE)
    outcome = await session.apply_grade(Grade.GOOD)

    # Only the missed card's delay has elapsed; the other active card is not due yet
    assert outcome.next_card.id == missed


# --- Grading bookkeeping ---


@pytest.mark.asyncio
async def test_again_records_difficulty_schedule_and_log_together(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("a"), make_card("b")])
    card = session.current

    outcome = await session.apply_grade(Grade.AGAIN)

    mock_store.record_grade.assert_awaited_once()
    card_id, delta, saved, log = mock_store.record_grade.await_args.args
    assert (card_id, delta) == (card.id, 1)
    assert saved.state == CardState.LEARNING
    assert saved.lapses == 1
    assert log == ReviewLog(
        card_id=card.id,
        grade=Grade.AGAIN,
        studied_at=clock.now,
        previous_interval=0.0,
        new_interval=0.0,
    )
    assert [c[0] for c in mock_store.mock_calls] == ["record_grade"]

    assert card.difficulty_score == 1
    assert card.session_due_time == clock.now + MS_PER_MINUTE
    assert outcome.feedback == "Again • 1m"
    assert outcome.next_card.id != card.id


@pytest.mark.asyncio
async def test_good_does_not_touch_difficulty(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("a"), make_card("b")])
    card = session.current

    outcome = await session.apply_grade(Grade.GOOD)

    assert mock_store.record_grade.await_args.args[1] == 0
    assert card.difficulty_score == 0
    assert card.session_good_streak == 1
    assert outcome.feedback == "Good • 15m"
    assert outcome.session_due_time == clock.now + 15 * MS_PER_MINUTE


@pytest.mark.asyncio
async def test_hard_feedback_and_streak_reset(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("only")])
    card = session.current

    await session.apply_grade(Grade.GOOD)
    outcome = await session.apply_grade(Grade.HARD)

    assert outcome.feedback == "Hard • 3m"
    assert card.session_good_streak == 0
    assert card.session_confident is False
    assert [c.args[1] for c in mock_store.record_grade.await_args_list] == [0, 1]


@pytest.mark.asyncio
async def test_two_goods_make_card_confident(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("only")])
    card = session.current

    await session.apply_grade(Grade.GOOD)
    assert card.session_confident is False
    await session.apply_grade(Grade.GOOD)
    assert card.session_confident is True


@pytest.mark.asyncio
async def test_easy_feedback_and_confidence(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("a"), make_card("b")])
    card = session.current

    outcome = await session.apply_grade(Grade.EASY)

    assert outcome.feedback == "Easy • 1h"
    assert card.session_confident is True
    assert card.session_state == SessionStatus.ACTIVE


@pytest.mark.parametrize(
    "policy, expected_updates", [("first", 1), ("every", 3), ("never", 0)]
)
@pytest.mark.asyncio
async def test_reschedule_policy(mock_store, clock, make_card, policy, expected_updates):
    session = _session(mock_store, clock, reschedule_policy=policy)
    session.load([make_card("only")])

    outcomes = [await session.apply_grade(Grade.GOOD) for _ in range(3)]

    calls = mock_store.record_grade.await_args_list
    assert len(calls) == 3
    assert sum(c.args[2] is not None for c in calls) == expected_updates
    assert sum(o.schedule is not None for o in outcomes) == expected_updates


@pytest.mark.asyncio
async def test_never_policy_logs_without_new_interval(mock_store, clock, make_card):
    session = _session(mock_store, clock, reschedule_policy="never")
    session.load([make_card("only", interval_days=0.0)])

    await session.apply_grade(Grade.GOOD)

    log = mock_store.record_grade.await_args.args[3]
    assert log.previous_interval == 0.0
    assert log.new_interval is None
    assert session.current.card.state == CardState.NEW


@pytest.mark.asyncio
async def test_first_grade_updates_in_memory_schedule(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("only")])

    outcome = await session.apply_grade(Grade.GOOD)

    assert session.current.card.state == CardState.REVIEW
    assert session.current.card.interval_days == 1
    assert outcome.schedule.interval_days == 1


@pytest.mark.asyncio
async def test_grade_without_current_card_is_noop(mock_store, clock):
    session = _session(mock_store, clock)
    session.load([])

    assert await session.apply_grade(Grade.GOOD) is None
    assert mock_store.mock_calls == []


# --- Failure handling ---


@pytest.mark.asyncio
async def test_store_failure_leaves_session_unchanged(mock_store, clock, make_card):
    session = _session(mock_store, clock)
    session.load([make_card("a"), make_card("b")])
    card = session.current
    mock_store.record_grade.side_effect = PersistenceError("disk full")

    with pytest.raises(PersistenceError):
        await session.apply_grade(Grade.AGAIN)

    assert session.current is card
    assert card.difficulty_score == 0
    assert card.graded_count == 0
    assert card.session_due_time == 0
    assert card.card.state == CardState.NEW
    assert session.since_reinforcement == 0

    # Retrying the same grade succeeds once the store recovers
    mock_store.record_grade.side_effect = None
    outcome = await session.apply_grade(Grade.AGAIN)
    assert outcome.card_id == card.id
    assert card.difficulty_score == 1


@pytest.mark.asyncio
async def test_retry_after_failed_log_write_counts_difficulty_once(store, clock, make_card):
    await store.add_cards([make_card("only")])
    session = _session(store, clock)
    session.load([await store.get_card("only")])

    failing_log = patch.object(
        store, "_insert_log", side_effect=sqlite3.OperationalError("disk I/O error")
    )
    with failing_log, pytest.raises(PersistenceError):
        await session.apply_grade(Grade.AGAIN)

    persisted = await store.get_card("only")
    assert persisted.difficulty_score == 0
    assert persisted.state == CardState.NEW
    assert persisted.lapses == 0
    assert await store.get_review_logs("only") == []
    assert session.current.difficulty_score == 0

    await session.apply_grade(Grade.AGAIN)

    persisted = await store.get_card("only")
    assert persisted.difficulty_score == 1
    assert session.current.difficulty_score == 1
    assert persisted.state == CardState.LEARNING
    assert persisted.lapses == 1
    assert len(await store.get_review_logs("only")) == 1


# --- Promotion and reinforcement ---


@pytest.mark.asyncio
async def test_six_easy_cards_promote_together(mock_store, clock, make_card):
    session = _session(mock_store, clock, seed=5)
    session.load([make_card(f"c{i}") for i in range(16)])
    graded = []

    for _ in range(5):
        graded.append(session.current.id)
        outcome = await session.apply_grade(Grade.EASY)
        assert outcome.promoted == []
        assert session.stats.confident == 0

    graded.append(session.current.id)
    outcome = await session.apply_grade(Grade.EASY)

    assert len(set(graded)) == 6
    assert sorted(outcome.promoted) == sorted(graded)
    stats = session.stats
    assert (stats.active, stats.confident, stats.unseen) == (10, 6, 0)
    for card_id in graded:
        assert session.cards.get(card_id).session_state == SessionStatus.EASY_POOL


@pytest.mark.asyncio
async def test_reinforcement_every_third_grade(mock_store, clock, make_card):
    session = _session(mock_store, clock, promotion_threshold=0)
    session.load([make_card(f"c{i}") for i in range(5)])

    first = session.current.id
    outcome = await session.apply_grade(Grade.EASY)
    assert outcome.promoted == [first]

    await session.apply_grade(Grade.AGAIN)
    outcome = await session.apply_grade(Grade.AGAIN)

    assert outcome.next_card.id == first
    assert outcome.next_card.session_state == SessionStatus.EASY_POOL
    assert session.since_reinforcement == 0


@pytest.mark.asyncio
async def test_pool_serves_cards_when_active_is_empty(mock_store, clock, make_card):
    session = _session(mock_store, clock, promotion_threshold=0)
    session.load([make_card("only")])

    outcome = await session.apply_grade(Grade.EASY)

    assert session.stats.active == 0
    assert outcome.next_card.id == "only"
    assert not session.is_complete



@pytest.mark.asyncio
async def test_difficulty_counts_every_missed_grade(store, clock, make_card):
    await store.add_cards([make_card("only")])
    session = _session(store, clock)
    session.load([await store.get_card("only")])

    await session.apply_grade(Grade.AGAIN)
    await session.apply_grade(Grade.HARD)
    await session.apply_grade(Grade.GOOD)

    assert session.current.difficulty_score == 2
    assert (await store.get_card("only")).difficulty_score == 2
    assert len(await store.get_review_logs("only")) == 3
