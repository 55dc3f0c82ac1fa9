"""Study session engine: ordering, timing, reveal and answer rendering."""

from backend.study.clock import AsyncioScheduler, ManualScheduler, Scheduler
from backend.study.cloze import AnswerFace, answer_face
from backend.study.models import StudyCard, StudyDeck
from backend.study.ordering import playback_sequence, shuffle
from backend.study.session import (
    Direction,
    OrderMode,
    Phase,
    SessionConfig,
    SessionState,
    StudySession,
    StudyView,
    derive_view,
)

__all__ = [
    "AnswerFace",
    "AsyncioScheduler",
    "Direction",
    "ManualScheduler",
    "OrderMode",
    "Phase",
    "Scheduler",
    "SessionConfig",
    "SessionState",
    "StudyCard",
    "StudyDeck",
    "StudySession",
    "StudyView",
    "answer_face",
    "derive_view",
    "playback_sequence",
    "shuffle",
]
