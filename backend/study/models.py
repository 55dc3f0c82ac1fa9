"""Frozen deck snapshots read by the study engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backend.models.deck import Deck


@dataclass(frozen=True)
class StudyCard:
    """One question/answer pair as it was when the session started."""

    id: int
    order: int
    question: str
    answer: str


@dataclass(frozen=True)
class StudyDeck:
    """Read-only copy of a deck.

    Edits made to the stored deck after the snapshot is taken are not seen by
    a running session; a new session has to be started to pick them up.
    """

    id: int
    topic: str
    difficulty: str = "medium"
    bloom_level: str = "understand"
    format: str = "qa"
    cards: tuple[StudyCard, ...] = ()

    @classmethod
    def from_model(cls, deck: Deck) -> StudyDeck:
        """Snapshot an ORM deck (its cards must already be loaded)."""
        return cls(
            id=deck.id,
            topic=deck.topic,
            difficulty=deck.difficulty,
            bloom_level=deck.bloom_level,
            format=deck.format,
            cards=tuple(
                StudyCard(id=c.id, order=c.order, question=c.question, answer=c.answer)
                for c in deck.cards
            ),
        )
