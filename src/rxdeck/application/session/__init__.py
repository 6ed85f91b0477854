# Application Session Package
from .arena import SessionArena
from .presentation import card_face
from .queue_manager import GradeOutcome, SessionPolicy, StudySession, weighted_pick

__all__ = [
    "GradeOutcome",
    "SessionArena",
    "SessionPolicy",
    "StudySession",
    "card_face",
    "weighted_pick",
]
