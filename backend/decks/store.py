"""Deck Store: persistence and editing of decks and their cards.

Card ``order`` values are kept unique within a deck. Adding appends after
the current maximum, deleting renumbers the remaining cards 1..n, and moving
swaps positions with the neighbouring card.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.config import utcnow
from backend.models.card import Card
from backend.models.deck import Deck

logger = logging.getLogger(__name__)

DIFFICULTIES = ("easy", "medium", "difficult", "expert")
BLOOM_LEVELS = ("remember", "understand", "apply")
FORMATS = ("qa", "cloze", "mcq")
INPUT_TYPES = ("text", "markdown")


class DeckNotFoundError(LookupError):
    def __init__(self, deck_id: int) -> None:
        super().__init__(f"Deck {deck_id} not found")
        self.deck_id = deck_id


class CardNotFoundError(LookupError):
    def __init__(self, deck_id: int, card_id: int) -> None:
        super().__init__(f"Card {card_id} not found in deck {deck_id}")
        self.deck_id = deck_id
        self.card_id = card_id


def sorted_cards(deck: Deck) -> list[Card]:
    """Return the deck's cards in canonical order."""
    return sorted(deck.cards, key=lambda card: card.order)


def _touch(deck: Deck) -> None:
    # Card edits don't change any deck column, so onupdate never fires for them.
    deck.updated_at = utcnow()


def _find_card(deck: Deck, card_id: int) -> Card:
    for card in deck.cards:
        if card.id == card_id:
            return card
    raise CardNotFoundError(deck.id, card_id)


async def load_deck(db: AsyncSession, deck_id: int) -> Deck:
    """Fetch a deck with its cards loaded.

    Raises:
        DeckNotFoundError: If no deck has this id.
    """
    stmt = select(Deck).where(Deck.id == deck_id).options(selectinload(Deck.cards))
    deck = (await db.execute(stmt)).scalar_one_or_none()
    if deck is None:
        raise DeckNotFoundError(deck_id)
    return deck


async def save_deck(db: AsyncSession, deck: Deck) -> Deck:
    """Insert or update a deck and return it with cards loaded."""
    _touch(deck)
    db.add(deck)
    await db.commit()
    return await load_deck(db, deck.id)


async def create_deck(
    db: AsyncSession,
    topic: str,
    cards: Iterable[tuple[str, str]] = (),
    difficulty: str = "medium",
    bloom_level: str = "understand",
    format: str = "qa",
    input_type: str = "text",
) -> Deck:
    """Create a deck from ``(question, answer)`` pairs, numbered 1..n in the given order."""
    deck = Deck(
        topic=topic,
        difficulty=difficulty,
        bloom_level=bloom_level,
        format=format,
        input_type=input_type,
        cards=[
            Card(order=i, question=question, answer=answer)
            for i, (question, answer) in enumerate(cards, 1)
        ],
    )
    deck = await save_deck(db, deck)
    logger.info("Created deck %d on %r with %d cards", deck.id, topic[:60], len(deck.cards))
    return deck


async def list_decks(db: AsyncSession) -> list[Deck]:
    """Return all decks, most recently updated first."""
    stmt = select(Deck).options(selectinload(Deck.cards)).order_by(Deck.updated_at.desc())
    return list((await db.execute(stmt)).scalars().all())


def group_by_topic(decks: Sequence[Deck]) -> list[tuple[str, list[Deck]]]:
    """Group decks under their topic label.

    Topics are sorted alphabetically; within a topic, decks are sorted by
    most recent update first. Decks with a blank topic go under "Untitled".
    """
    groups: dict[str, list[Deck]] = {}
    for deck in decks:
        groups.setdefault(deck.topic.strip() or "Untitled", []).append(deck)
    for group in groups.values():
        group.sort(key=lambda d: d.updated_at, reverse=True)
    return sorted(groups.items(), key=lambda item: item[0].casefold())


def most_recent(decks: Sequence[Deck]) -> Deck | None:
    return max(decks, key=lambda d: d.updated_at, default=None)


async def delete_deck(db: AsyncSession, deck_id: int) -> None:
    deck = await load_deck(db, deck_id)
    await db.delete(deck)
    await db.commit()
    logger.info("Deleted deck %d", deck_id)


async def add_card(
    db: AsyncSession,
    deck_id: int,
    question: str = "",
    answer: str = "",
) -> Card:
    """Append a card after the last one in the deck."""
    deck = await load_deck(db, deck_id)
    next_order = max((c.order for c in deck.cards), default=0) + 1
    card = Card(order=next_order, question=question, answer=answer)
    deck.cards.append(card)
    _touch(deck)
    await db.commit()
    return card


async def update_card(
    db: AsyncSession,
    deck_id: int,
    card_id: int,
    question: str | None = None,
    answer: str | None = None,
) -> Card:
    """Edit a card's text. Fields left as None are unchanged."""
    deck = await load_deck(db, deck_id)
    card = _find_card(deck, card_id)
    if question is not None:
        card.question = question
    if answer is not None:
        card.answer = answer
    _touch(deck)
    await db.commit()
    return card


async def delete_card(db: AsyncSession, deck_id: int, card_id: int) -> Deck:
    """Remove a card and renumber the rest 1..n."""
    deck = await load_deck(db, deck_id)
    card = _find_card(deck, card_id)
    deck.cards.remove(card)
    for i, remaining in enumerate(sorted_cards(deck), 1):
        remaining.order = i
    _touch(deck)
    await db.commit()
    return deck


async def move_card(
    db: AsyncSession,
    deck_id: int,
    card_id: int,
    direction: Literal["up", "down"],
) -> Deck:
    """Swap a card's position with its neighbour. No-op at either end."""
    deck = await load_deck(db, deck_id)
    cards = sorted_cards(deck)
    card = _find_card(deck, card_id)
    index = cards.index(card)
    swap_with = index - 1 if direction == "up" else index + 1
    if swap_with < 0 or swap_with >= len(cards):
        return deck

    other = cards[swap_with]
    card.order, other.order = other.order, card.order
    _touch(deck)
    await db.commit()
    return deck


async def replace_cards(
    db: AsyncSession,
    deck_id: int,
    cards: Iterable[tuple[str, str]],
) -> Deck:
    """Drop every card in the deck and insert ``cards`` numbered 1..n."""
    deck = await load_deck(db, deck_id)
    deck.cards = [
        Card(order=i, question=question, answer=answer)
        for i, (question, answer) in enumerate(cards, 1)
    ]
    _touch(deck)
    await db.commit()
    return await load_deck(db, deck_id)
