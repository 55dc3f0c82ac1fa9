"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from backend.config import settings

Difficulty = Literal["easy", "medium", "difficult", "expert"]
BloomLevel = Literal["remember", "understand", "apply"]
DeckFormat = Literal["qa", "cloze", "mcq"]
InputType = Literal["text", "markdown"]

# --- Decks ---


class CardResponse(BaseModel):
    id: int
    order: int
    question: str
    answer: str


class DeckResponse(BaseModel):
    """A deck with its cards in canonical order."""

    id: int
    topic: str
    difficulty: str
    bloom_level: str
    format: str
    input_type: str
    card_count: int
    created_at: datetime
    updated_at: datetime
    cards: list[CardResponse]


class DeckSummary(BaseModel):
    id: int
    topic: str
    difficulty: str
    format: str
    card_count: int
    updated_at: datetime


class TopicGroup(BaseModel):
    topic: str
    decks: list[DeckSummary]


class DeckListResponse(BaseModel):
    """All decks grouped by topic, plus the deck to offer for "study now"."""

    groups: list[TopicGroup]
    most_recent_id: int | None = None


class GenerateDeckRequest(BaseModel):
    """Request to generate a new deck from a topic description or outline."""

    topic: str
    difficulty: Difficulty = "medium"
    question_count: int = Field(default=10, ge=1, le=settings.max_cards_per_deck)
    bloom_level: BloomLevel = "understand"
    format: DeckFormat = "qa"
    input_type: InputType = "text"


class GenerateDeckResponse(BaseModel):
    deck: DeckResponse
    remaining_requests: int


class CardCreateRequest(BaseModel):
    question: str = ""
    answer: str = ""


class CardUpdateRequest(BaseModel):
    question: str | None = None
    answer: str | None = None


class MoveCardRequest(BaseModel):
    direction: Literal["up", "down"]


# --- Study sessions ---


class StudyConfigRequest(BaseModel):
    """Session options; seconds_per_question outside the allowed range is rejected."""

    order_mode: Literal["ordered", "random"] = "ordered"
    timed: bool = False
    seconds_per_question: int = Field(
        default=settings.default_seconds_per_question,
        ge=settings.min_seconds_per_question,
        le=settings.max_seconds_per_question,
    )


class StudyStartRequest(StudyConfigRequest):
    deck_id: int


class AdvanceRequest(BaseModel):
    direction: Literal["next", "previous"]


class GotoRequest(BaseModel):
    index: int


class StudyCardResponse(BaseModel):
    """The question side of the current card."""

    id: int
    order: int
    question: str


class AnswerFaceResponse(BaseModel):
    """The revealed side; ``answer`` is the part to highlight."""

    before: str
    answer: str
    after: str
    text: str


class StudyViewResponse(BaseModel):
    """Read model of a study session, re-sent after every command."""

    session_id: str
    deck_id: int
    topic: str
    format: str
    order_mode: str
    phase: str  # not_started, in_progress, finished
    current_index: int
    position: int
    total: int
    progress_percent: int
    card: StudyCardResponse | None = None
    revealed: bool
    answer: AnswerFaceResponse | None = None
    timed: bool
    remaining_seconds: int | None = None
    seconds_per_question: int | None = None
    time_fraction: float | None = None
    can_previous: bool
    can_next: bool
    can_reveal: bool
    can_finish: bool
