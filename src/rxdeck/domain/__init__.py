# Domain Package
from .errors import PersistenceError
from .models import (
    Card,
    CardFace,
    CardState,
    Deck,
    Grade,
    ReviewLog,
    ScheduleUpdate,
    SessionCard,
    SessionStats,
    SessionStatus,
    StudyMode,
)
from .ports import CardStore

__all__ = [
    "Card",
    "CardFace",
    "CardState",
    "CardStore",
    "Deck",
    "Grade",
    "PersistenceError",
    "ReviewLog",
    "ScheduleUpdate",
    "SessionCard",
    "SessionStats",
    "SessionStatus",
    "StudyMode",
]
