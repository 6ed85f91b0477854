"""
SQLite Card Store: infrastructure adapter for the CardStore port.

One connection per process, opened on construction or `__enter__` and
closed on `close()` / `__exit__`.
"""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from rxdeck.domain.errors import PersistenceError
from rxdeck.domain.models import Card, CardState, Deck, Grade, ReviewLog
from rxdeck.domain.ports import CardStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS decks (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    deck_id TEXT NOT NULL,
    generic TEXT NOT NULL,
    brand TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    tags JSON NOT NULL DEFAULT '[]',
    difficulty_score INTEGER NOT NULL DEFAULT 0,
    due_date INTEGER NOT NULL,
    interval_days REAL NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    repetitions INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    state TEXT NOT NULL DEFAULT 'new',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    FOREIGN KEY(deck_id) REFERENCES decks(id)
);

CREATE TABLE IF NOT EXISTS review_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    card_id TEXT NOT NULL,
    grade INTEGER NOT NULL,
    studied_at INTEGER NOT NULL,
    previous_interval REAL,
    new_interval REAL
);

CREATE INDEX IF NOT EXISTS idx_cards_deck ON cards(deck_id);
CREATE INDEX IF NOT EXISTS idx_cards_due ON cards(deck_id, due_date);
CREATE INDEX IF NOT EXISTS idx_review_log_card ON review_log(card_id);
"""

_CARD_COLUMNS = (
    "id, deck_id, generic, brand, notes, tags, difficulty_score, due_date, interval_days, "
    "ease_factor, repetitions, lapses, state, created_at, updated_at"
)


class SqliteCardStore(CardStore):
    """
    Stores decks, cards and the review log in a local SQLite file.

    Every sqlite3 failure surfaces as PersistenceError.
    """

    def __init__(self, path: Path | str = ":memory:"):
        self.path = path
        self.conn: sqlite3.Connection | None = None
        self.open()

    def open(self) -> None:
        if self.conn is not None:
            return
        with self._guard("open"):
            if str(self.path) != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            if str(self.path) != ":memory:":
                self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.executescript(SCHEMA)
            self.conn.commit()
        logger.debug(f"Opened card store at {self.path}")

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.debug(f"Closed card store at {self.path}")

    def __enter__(self) -> "SqliteCardStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _guard(self, op: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"Card store {op} failed: {e}")
            raise PersistenceError(f"{op} failed: {e}") from e

    def _db(self) -> sqlite3.Connection:
        if self.conn is None:
            raise PersistenceError("Card store is closed")
        return self.conn

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def get_cards_for_deck(self, deck_id: str) -> list[Card]:
        with self._guard("get_cards_for_deck"):
            rows = self._db().execute(
                f"SELECT {_CARD_COLUMNS} FROM cards WHERE deck_id = ? ORDER BY rowid",
                (deck_id,),
            ).fetchall()
        return [self._row_to_card(r) for r in rows]

    async def get_due_cards(self, deck_id: str, now: int) -> list[Card]:
        with self._guard("get_due_cards"):
            rows = self._db().execute(
                f"SELECT {_CARD_COLUMNS} FROM cards "
                "WHERE deck_id = ? AND due_date <= ? ORDER BY due_date, rowid",
                (deck_id, now),
            ).fetchall()
        return [self._row_to_card(r) for r in rows]

    async def get_card(self, card_id: str) -> Card | None:
        with self._guard("get_card"):
            row = self._db().execute(
                f"SELECT {_CARD_COLUMNS} FROM cards WHERE id = ?", (card_id,)
            ).fetchone()
        return self._row_to_card(row) if row else None

    async def add_cards(self, cards: list[Card]) -> None:
        if not cards:
            return
        db = self._db()
        with self._guard("add_cards"):
            db.executemany(
                f"INSERT INTO cards ({_CARD_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET "
                "deck_id=excluded.deck_id, generic=excluded.generic, brand=excluded.brand, "
                "notes=excluded.notes, tags=excluded.tags, "
                "difficulty_score=excluded.difficulty_score, due_date=excluded.due_date, "
                "interval_days=excluded.interval_days, ease_factor=excluded.ease_factor, "
                "repetitions=excluded.repetitions, lapses=excluded.lapses, "
                "state=excluded.state, updated_at=excluded.updated_at",
                [self._card_to_row(c) for c in cards],
            )
            db.commit()

    async def update_card(self, card: Card) -> None:
        db = self._db()
        with self._guard("update_card"), db:
            self._write_schedule(db, card)

    async def update_card_difficulty(self, card_id: str, delta: int) -> None:
        db = self._db()
        with self._guard("update_card_difficulty"), db:
            self._bump_difficulty(db, card_id, delta)

    # ------------------------------------------------------------------
    # Review log
    # ------------------------------------------------------------------

    async def log_review(self, log: ReviewLog) -> None:
        db = self._db()
        with self._guard("log_review"), db:
            self._insert_log(db, log)

    async def record_grade(
        self,
        card_id: str,
        difficulty_delta: int,
        card: Card | None,
        log: ReviewLog,
    ) -> None:
        db = self._db()
        # `with db` commits once on success and rolls back every statement on error
        with self._guard("record_grade"), db:
            if difficulty_delta:
                self._bump_difficulty(db, card_id, difficulty_delta)
            if card is not None:
                self._write_schedule(db, card)
            self._insert_log(db, log)

    def _write_schedule(self, db: sqlite3.Connection, card: Card) -> None:
        cur = db.execute(
            """
            UPDATE cards
            SET generic = ?, brand = ?, notes = ?, tags = ?,
                due_date = ?, interval_days = ?, ease_factor = ?,
                repetitions = ?, lapses = ?, state = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                card.generic,
                card.brand,
                card.notes,
                json.dumps(list(card.tags)),
                card.due_date,
                card.interval_days,
                card.ease_factor,
                card.repetitions,
                card.lapses,
                CardState(card.state).value,
                card.updated_at,
                card.id,
            ),
        )
        if cur.rowcount == 0:
            raise PersistenceError(f"update_card failed: card {card.id} not found")

    def _bump_difficulty(self, db: sqlite3.Connection, card_id: str, delta: int) -> None:
        cur = db.execute(
            "UPDATE cards SET difficulty_score = difficulty_score + ? WHERE id = ?",
            (delta, card_id),
        )
        if cur.rowcount == 0:
            logger.warning(f"Difficulty update skipped: card {card_id} not found")

    def _insert_log(self, db: sqlite3.Connection, log: ReviewLog) -> None:
        db.execute(
            "INSERT INTO review_log "
            "(card_id, grade, studied_at, previous_interval, new_interval) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                log.card_id,
                int(log.grade),
                log.studied_at,
                log.previous_interval,
                log.new_interval,
            ),
        )

    async def get_review_logs(self, card_id: str) -> list[ReviewLog]:
        with self._guard("get_review_logs"):
            rows = self._db().execute(
                "SELECT card_id, grade, studied_at, previous_interval, new_interval "
                "FROM review_log WHERE card_id = ? ORDER BY id ASC",
                (card_id,),
            ).fetchall()
        return [
            ReviewLog(
                card_id=r["card_id"],
                grade=Grade(r["grade"]),
                studied_at=r["studied_at"],
                previous_interval=r["previous_interval"],
                new_interval=r["new_interval"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Decks
    # ------------------------------------------------------------------

    async def get_decks(self) -> list[Deck]:
        with self._guard("get_decks"):
            rows = self._db().execute(
                "SELECT id, name, created_at FROM decks ORDER BY created_at DESC, name"
            ).fetchall()
        return [Deck(id=r["id"], name=r["name"], created_at=r["created_at"]) for r in rows]

    async def get_deck(self, deck_id: str) -> Deck | None:
        with self._guard("get_deck"):
            row = self._db().execute(
                "SELECT id, name, created_at FROM decks WHERE id = ?", (deck_id,)
            ).fetchone()
        if row:
            return Deck(id=row["id"], name=row["name"], created_at=row["created_at"])
        return None

    async def add_deck(self, deck: Deck) -> None:
        db = self._db()
        with self._guard("add_deck"):
            db.execute(
                "INSERT INTO decks (id, name, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                (deck.id, deck.name, deck.created_at),
            )
            db.commit()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            deck_id=row["deck_id"],
            generic=row["generic"],
            brand=row["brand"],
            notes=row["notes"] or "",
            tags=json.loads(row["tags"]) if row["tags"] else [],
            difficulty_score=row["difficulty_score"] or 0,
            due_date=row["due_date"],
            interval_days=row["interval_days"],
            ease_factor=row["ease_factor"],
            repetitions=row["repetitions"],
            lapses=row["lapses"],
            state=CardState(row["state"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _card_to_row(card: Card) -> tuple:
        return (
            card.id,
            card.deck_id,
            card.generic,
            card.brand,
            card.notes,
            json.dumps(list(card.tags)),
            card.difficulty_score,
            card.due_date,
            card.interval_days,
            card.ease_factor,
            card.repetitions,
            card.lapses,
            CardState(card.state).value,
            card.created_at,
            card.updated_at,
        )
