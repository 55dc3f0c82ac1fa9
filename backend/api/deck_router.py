"""API routes for deck management and card generation."""

import logging

import anthropic
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardCreateRequest,
    CardResponse,
    CardUpdateRequest,
    DeckListResponse,
    DeckResponse,
    DeckSummary,
    GenerateDeckRequest,
    GenerateDeckResponse,
    MoveCardRequest,
    TopicGroup,
)
from backend.database import get_session
from backend.decks import service, store
from backend.decks.generation import CardGenerationError, CardGenerationRequest, InvalidTopicError
from backend.llm_client import LLMClient, get_llm_client
from backend.models.card import Card
from backend.models.deck import Deck
from backend.quota import RequestQuota, generation_quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/decks", tags=["decks"])


def get_quota() -> RequestQuota:
    return generation_quota


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def card_response(card: Card) -> CardResponse:
    return CardResponse(id=card.id, order=card.order, question=card.question, answer=card.answer)


def deck_response(deck: Deck) -> DeckResponse:
    cards = store.sorted_cards(deck)
    return DeckResponse(
        id=deck.id,
        topic=deck.topic,
        difficulty=deck.difficulty,
        bloom_level=deck.bloom_level,
        format=deck.format,
        input_type=deck.input_type,
        card_count=len(cards),
        created_at=deck.created_at,
        updated_at=deck.updated_at,
        cards=[card_response(c) for c in cards],
    )


def _summary(deck: Deck) -> DeckSummary:
    return DeckSummary(
        id=deck.id,
        topic=deck.topic,
        difficulty=deck.difficulty,
        format=deck.format,
        card_count=len(deck.cards),
        updated_at=deck.updated_at,
    )


def _generation_failed(exc: Exception) -> HTTPException:
    logger.error("Card generation failed: %s", exc)
    return HTTPException(status_code=502, detail=f"Card generation failed: {exc}")


@router.get("", response_model=DeckListResponse)
async def decks_list(db: AsyncSession = Depends(get_session)) -> DeckListResponse:
    """List decks grouped by topic."""
    decks = await store.list_decks(db)
    recent = store.most_recent(decks)
    return DeckListResponse(
        groups=[
            TopicGroup(topic=topic, decks=[_summary(d) for d in group])
            for topic, group in store.group_by_topic(decks)
        ],
        most_recent_id=recent.id if recent else None,
    )


@router.post("/generate", response_model=GenerateDeckResponse, status_code=201)
async def decks_generate(
    body: GenerateDeckRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
    quota: RequestQuota = Depends(get_quota),
) -> GenerateDeckResponse:
    """Generate a deck from a topic and store it."""
    key = client_key(request)
    if not quota.check(key):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again later.")

    generation_request = CardGenerationRequest(
        topic=body.topic,
        difficulty=body.difficulty,
        question_count=body.question_count,
        bloom_level=body.bloom_level,
        format=body.format,
        input_type=body.input_type,
    )
    try:
        deck = await service.create_generated_deck(db, generation_request, llm)
    except InvalidTopicError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (CardGenerationError, anthropic.APIError) as exc:
        raise _generation_failed(exc) from exc

    return GenerateDeckResponse(deck=deck_response(deck), remaining_requests=quota.remaining(key))


@router.get("/{deck_id}", response_model=DeckResponse)
async def decks_get(deck_id: int, db: AsyncSession = Depends(get_session)) -> DeckResponse:
    try:
        deck = await store.load_deck(db, deck_id)
    except store.DeckNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return deck_response(deck)


@router.delete("/{deck_id}")
async def decks_delete(deck_id: int, db: AsyncSession = Depends(get_session)) -> dict:
    try:
        await store.delete_deck(db, deck_id)
    except store.DeckNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted", "deck_id": deck_id}


@router.post("/{deck_id}/cards", response_model=CardResponse, status_code=201)
async def cards_add(
    deck_id: int,
    body: CardCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    """Append a card (blank by default) to the end of the deck."""
    try:
        card = await store.add_card(db, deck_id, question=body.question, answer=body.answer)
    except store.DeckNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return card_response(card)


@router.patch("/{deck_id}/cards/{card_id}", response_model=CardResponse)
async def cards_update(
    deck_id: int,
    card_id: int,
    body: CardUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    try:
        card = await store.update_card(
            db, deck_id, card_id, question=body.question, answer=body.answer
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return card_response(card)


@router.delete("/{deck_id}/cards/{card_id}", response_model=DeckResponse)
async def cards_delete(
    deck_id: int,
    card_id: int,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    try:
        deck = await store.delete_card(db, deck_id, card_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return deck_response(deck)


@router.post("/{deck_id}/cards/{card_id}/move", response_model=DeckResponse)
async def cards_move(
    deck_id: int,
    card_id: int,
    body: MoveCardRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    try:
        deck = await store.move_card(db, deck_id, card_id, body.direction)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return deck_response(deck)


@router.post("/{deck_id}/cards/{card_id}/regenerate", response_model=CardResponse)
async def cards_regenerate(
    deck_id: int,
    card_id: int,
    request: Request,
    db: AsyncSession = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
    quota: RequestQuota = Depends(get_quota),
) -> CardResponse:
    """Replace one card with a freshly generated one on the deck's topic."""
    if not quota.check(client_key(request)):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again later.")
    try:
        card = await service.regenerate_card(db, deck_id, card_id, llm)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTopicError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (CardGenerationError, anthropic.APIError) as exc:
        raise _generation_failed(exc) from exc
    return card_response(card)


@router.post("/{deck_id}/regenerate", response_model=DeckResponse)
async def decks_regenerate(
    deck_id: int,
    request: Request,
    db: AsyncSession = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
    quota: RequestQuota = Depends(get_quota),
) -> DeckResponse:
    """Replace all cards in the deck with a new generated set of the same size."""
    if not quota.check(client_key(request)):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again later.")
    try:
        deck = await service.regenerate_deck(db, deck_id, llm)
    except store.DeckNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTopicError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (CardGenerationError, anthropic.APIError) as exc:
        raise _generation_failed(exc) from exc
    return deck_response(deck)
