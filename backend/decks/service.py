"""Deck operations that call the generation service and then persist the result."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from backend.decks import store
from backend.decks.generation import CardGenerationRequest, generate_cards
from backend.llm_client import LLMClient
from backend.models.card import Card
from backend.models.deck import Deck

logger = logging.getLogger(__name__)


def _request_for(deck: Deck, question_count: int) -> CardGenerationRequest:
    return CardGenerationRequest(
        topic=deck.topic,
        difficulty=deck.difficulty,
        question_count=question_count,
        bloom_level=deck.bloom_level,
        format=deck.format,
        input_type=deck.input_type,
    )


async def create_generated_deck(
    db: AsyncSession,
    request: CardGenerationRequest,
    llm: LLMClient,
) -> Deck:
    """Generate cards for a new deck and store it."""
    generated = await asyncio.to_thread(generate_cards, request, llm)
    return await store.create_deck(
        db,
        topic=generated.topic,
        cards=generated.pairs(),
        difficulty=request.difficulty,
        bloom_level=request.bloom_level,
        format=request.format,
        input_type=request.input_type,
    )


async def regenerate_card(
    db: AsyncSession,
    deck_id: int,
    card_id: int,
    llm: LLMClient,
) -> Card:
    """Replace one card's question and answer with a freshly generated card."""
    deck = await store.load_deck(db, deck_id)
    # Fail before spending a request on a card that isn't there.
    if not any(card.id == card_id for card in deck.cards):
        raise store.CardNotFoundError(deck_id, card_id)

    generated = await asyncio.to_thread(generate_cards, _request_for(deck, 1), llm)
    replacement = generated.cards[0]
    logger.info("Regenerated card %d in deck %d", card_id, deck_id)
    return await store.update_card(
        db, deck_id, card_id, question=replacement.question, answer=replacement.answer
    )


async def regenerate_deck(db: AsyncSession, deck_id: int, llm: LLMClient) -> Deck:
    """Replace every card in the deck with a new set of the same size."""
    deck = await store.load_deck(db, deck_id)
    count = max(1, len(deck.cards))
    generated = await asyncio.to_thread(generate_cards, _request_for(deck, count), llm)
    logger.info("Regenerated deck %d with %d cards", deck_id, len(generated.cards))
    return await store.replace_cards(db, deck_id, generated.pairs())
