import pytest

from rxdeck.domain.models import Card, CardState
from rxdeck.infrastructure.store.sqlite_store import SqliteCardStore

T0 = 1_700_000_000_000  # fixed epoch ms used as "now" across tests


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_card():
    """Factory for cards with sensible defaults; override any field by keyword."""

    def _make(card_id: str = "c1", **overrides) -> Card:
        fields = dict(
            id=card_id,
            deck_id="deck_1",
            generic=f"generic-{card_id}",
            brand=f"Brand-{card_id}",
            due_date=T0,
            state=CardState.NEW,
            created_at=T0,
            updated_at=T0,
        )
        fields.update(overrides)
        return Card(**fields)

    return _make


@pytest.fixture
def store():
    """In-memory SQLite card store."""
    s = SqliteCardStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("RXDECK_DB_PATH", "RXDECK_LEARNING_STEPS", "RXDECK_STUDY_MODE", "RXDECK_MAX_SESSIONS"):
        monkeypatch.delenv(var, raising=False)
    return home
