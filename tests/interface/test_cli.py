"""Tests for CLI commands against a throwaway SQLite database."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from rxdeck.domain.errors import PersistenceError
from rxdeck.interface.cli import app

runner = CliRunner()


@pytest.fixture
def db(mock_home, tmp_path):
    return tmp_path / "rx.sqlite3"


@pytest.fixture
def deck_file(tmp_path):
    f = tmp_path / "antibiotics.yaml"
    f.write_text(
        "deck: Antibiotics\n"
        "cards:\n"
        "  - generic: cefazolin\n"
        "    brand: Ancef\n"
        "  - generic: piperacillin-tazobactam\n"
        "    brand: Tazocin\n"
    )
    return f


def _import(db, deck_file) -> str:
    result = runner.invoke(app, ["--db", str(db), "import", str(deck_file)])
    assert result.exit_code == 0, result.output
    return result.stdout.strip().split()[-1]


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("decks", "import", "seed", "due", "preview", "study", "cards", "serve"):
        assert command in result.stdout


# --- Decks ---


def test_decks_empty(db):
    result = runner.invoke(app, ["--db", str(db), "decks"])
    assert result.exit_code == 0
    assert "No decks yet" in result.stdout


def test_seed_then_list(db):
    result = runner.invoke(app, ["--db", str(db), "seed"])
    assert result.exit_code == 0
    assert "Decks created: 2" in result.stdout
    assert "cards created: 146" in result.stdout

    result = runner.invoke(app, ["--db", str(db), "decks"])
    assert "Hamilton Health Sciences" in result.stdout
    assert "(100 due / 100 cards)" in result.stdout
    assert "Cardiovascular Drugs (Canada)" in result.stdout

    again = runner.invoke(app, ["--db", str(db), "seed"])
    assert "Decks created: 0, cards created: 0, cards updated: 0" in again.stdout


def test_import_and_list_cards(db, deck_file):
    deck_id = _import(db, deck_file)
    assert deck_id.startswith("deck_")

    result = runner.invoke(app, ["--db", str(db), "cards", deck_id])
    assert result.exit_code == 0
    assert "cefazolin -> Ancef" in result.stdout
    assert "2 cards" in result.stdout

    result = runner.invoke(app, ["--db", str(db), "cards", deck_id, "--search", "taz"])
    assert "Tazocin" in result.stdout
    assert "Ancef" not in result.stdout


def test_import_missing_file(db, tmp_path):
    result = runner.invoke(app, ["--db", str(db), "import", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_import_without_pairs(db, tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("deck: Empty\ncards:\n  - {generic: '', brand: X}\n")
    result = runner.invoke(app, ["--db", str(db), "import", str(f)])
    assert result.exit_code == 1
    assert "No pairs to import" in result.output


def test_cards_unknown_deck(db):
    result = runner.invoke(app, ["--db", str(db), "cards", "deck_missing"])
    assert result.exit_code == 1
    assert "Deck not found" in result.output


# --- Scheduling ---


def test_due_shows_partitions(db, deck_file):
    deck_id = _import(db, deck_file)

    result = runner.invoke(app, ["--db", str(db), "due", deck_id, "--new-cards-per-day", "1"])

    assert result.exit_code == 0
    assert "Learning: 0" in result.stdout
    assert "New: 1 (+1 over limit)" in result.stdout


def test_preview_new_card(db):
    runner.invoke(app, ["--db", str(db), "seed"])

    result = runner.invoke(app, ["--db", str(db), "preview", "card_deck_hamilton_v1_0"])

    assert result.exit_code == 0
    assert "acetaminophen -> Tylenol (new)" in result.stdout
    assert "Again: 1m  Hard: 2m  Good: 1d  Easy: 1d" in result.stdout


def test_preview_unknown_card(db):
    result = runner.invoke(app, ["--db", str(db), "preview", "card_missing"])
    assert result.exit_code == 1
    assert "Card not found" in result.output


# --- Study loop ---


def test_study_grades_and_quits(db, deck_file):
    deck_id = _import(db, deck_file)

    result = runner.invoke(
        app,
        ["--db", str(db), "study", deck_id, "--mode", "generic_to_brand", "--seed", "1"],
        input="\n9\n3\nq\n",
    )

    assert result.exit_code == 0, result.output
    assert "Generic Name:" in result.stdout
    assert "Good • 15m" in result.stdout
    assert "Graded 1 cards." in result.stdout

    # The graded card graduated to review, so only one card is still due
    due = runner.invoke(app, ["--db", str(db), "due", deck_id])
    assert "Review: 0" in due.stdout
    assert "New: 1" in due.stdout


def test_study_unknown_deck(db):
    result = runner.invoke(app, ["--db", str(db), "study", "deck_missing"], input="q\n")
    assert result.exit_code == 1
    assert "Deck not found" in result.output


# --- Errors ---


@patch("rxdeck.application.factory.open_store")
def test_store_failure_exits_1(mock_open_store, db):
    store = AsyncMock()
    store.get_decks.side_effect = PersistenceError("disk I/O error")
    mock_open_store.return_value = MagicMock()
    mock_open_store.return_value.__enter__.return_value = store

    result = runner.invoke(app, ["--db", str(db), "decks"])

    assert result.exit_code == 1
    assert "Storage error: disk I/O error" in result.output


# --- Config / server ---


def test_config_show(db):
    result = runner.invoke(app, ["--db", str(db), "config", "show"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["db_path"] == str(db)
    assert data["batch_size"] == 10
    assert data["learning_steps"] == [1.0, 10.0]
    assert data["study_mode"] == "mixed"


@patch("uvicorn.run")
def test_serve_command(mock_run):
    result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    mock_run.assert_called_once_with("rxdeck.server:app", host="127.0.0.1", port=9000, reload=False)
