"""API routes for study sessions.

Each session is a StudySession engine held in memory under a random id. The
engine's countdown runs on the server's event loop, so a client polling
``GET /api/study/{id}`` sees the remaining time drop and the answer appear
when time runs out.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    AdvanceRequest,
    AnswerFaceResponse,
    GotoRequest,
    StudyCardResponse,
    StudyConfigRequest,
    StudyStartRequest,
    StudyViewResponse,
)
from backend.config import settings
from backend.database import get_session
from backend.decks import store
from backend.study.clock import AsyncioScheduler, Scheduler
from backend.study.models import StudyDeck
from backend.study.session import Direction, OrderMode, SessionConfig, StudySession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/study", tags=["study"])


@dataclass
class ActiveStudy:
    deck_id: int
    engine: StudySession
    touched_at: float = field(default_factory=time.monotonic)


# In-memory session store; sessions are lost on restart.
_active_sessions: dict[str, ActiveStudy] = {}


def get_scheduler() -> Scheduler:
    return AsyncioScheduler()


def _config_from(body: StudyConfigRequest) -> SessionConfig:
    return SessionConfig(
        order_mode=OrderMode(body.order_mode),
        timed=body.timed,
        seconds_per_question=body.seconds_per_question,
    )


def _expire_idle_sessions() -> None:
    cutoff = time.monotonic() - settings.study_session_ttl_seconds
    for session_id, active in list(_active_sessions.items()):
        if active.touched_at < cutoff:
            active.engine.dispose()
            del _active_sessions[session_id]
            logger.info("Expired idle study session %s", session_id)


def _lookup(session_id: str) -> ActiveStudy:
    active = _active_sessions.get(session_id)
    if active is None:
        raise HTTPException(status_code=404, detail="Session not found")
    active.touched_at = time.monotonic()
    return active


async def _snapshot(db: AsyncSession, deck_id: int) -> StudyDeck:
    try:
        deck = await store.load_deck(db, deck_id)
    except store.DeckNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return StudyDeck.from_model(deck)


def view_response(session_id: str, active: ActiveStudy) -> StudyViewResponse:
    engine = active.engine
    view = engine.view()
    deck = engine.deck
    config = engine.config

    card = None
    if view.current_card is not None:
        card = StudyCardResponse(
            id=view.current_card.id,
            order=view.current_card.order,
            question=view.current_card.question,
        )
    answer = None
    if view.answer is not None:
        answer = AnswerFaceResponse(
            before=view.answer.before,
            answer=view.answer.answer,
            after=view.answer.after,
            text=view.answer.text,
        )

    return StudyViewResponse(
        session_id=session_id,
        deck_id=active.deck_id,
        topic=deck.topic if deck else "",
        format=deck.format if deck else "qa",
        order_mode=config.order_mode.value if config else OrderMode.ORDERED.value,
        phase=view.phase.value,
        current_index=view.current_index,
        position=view.position,
        total=view.total,
        progress_percent=view.progress_percent,
        card=card,
        revealed=view.revealed,
        answer=answer,
        timed=view.timed,
        remaining_seconds=view.remaining_seconds,
        seconds_per_question=view.seconds_per_question,
        time_fraction=view.time_fraction,
        can_previous=view.can_previous,
        can_next=view.can_next,
        can_reveal=view.can_reveal,
        can_finish=view.can_finish,
    )


@router.post("/start", response_model=StudyViewResponse, status_code=201)
async def study_start(
    body: StudyStartRequest,
    db: AsyncSession = Depends(get_session),
    scheduler: Scheduler = Depends(get_scheduler),
) -> StudyViewResponse:
    """Start a new study session on a deck."""
    _expire_idle_sessions()
    deck = await _snapshot(db, body.deck_id)

    engine = StudySession(scheduler)
    engine.start(_config_from(body), deck)

    session_id = str(uuid.uuid4())
    active = ActiveStudy(deck_id=body.deck_id, engine=engine)
    _active_sessions[session_id] = active
    return view_response(session_id, active)


@router.get("/{session_id}", response_model=StudyViewResponse)
async def study_view(session_id: str) -> StudyViewResponse:
    return view_response(session_id, _lookup(session_id))


@router.post("/{session_id}/start", response_model=StudyViewResponse)
async def study_restart_with(
    session_id: str,
    body: StudyConfigRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> StudyViewResponse:
    """Start the session again, re-reading the deck.

    A running or finished session is restarted first. Without a body the
    previous options are reused; random order is reshuffled either way.
    """
    active = _lookup(session_id)
    engine = active.engine
    if body is not None:
        config = _config_from(body)
    else:
        config = engine.config or SessionConfig()
    deck = await _snapshot(db, active.deck_id)
    engine.restart()
    engine.start(config, deck)
    return view_response(session_id, active)


@router.post("/{session_id}/reveal", response_model=StudyViewResponse)
async def study_reveal(session_id: str) -> StudyViewResponse:
    active = _lookup(session_id)
    active.engine.reveal()
    return view_response(session_id, active)


@router.post("/{session_id}/advance", response_model=StudyViewResponse)
async def study_advance(session_id: str, body: AdvanceRequest) -> StudyViewResponse:
    active = _lookup(session_id)
    active.engine.advance(Direction(body.direction))
    return view_response(session_id, active)


@router.post("/{session_id}/goto", response_model=StudyViewResponse)
async def study_goto(session_id: str, body: GotoRequest) -> StudyViewResponse:
    active = _lookup(session_id)
    active.engine.goto_index(body.index)
    return view_response(session_id, active)


@router.post("/{session_id}/finish", response_model=StudyViewResponse)
async def study_finish(session_id: str) -> StudyViewResponse:
    active = _lookup(session_id)
    active.engine.finish()
    return view_response(session_id, active)


@router.post("/{session_id}/restart", response_model=StudyViewResponse)
async def study_restart(session_id: str) -> StudyViewResponse:
    """Go back to the options step, keeping the chosen options."""
    active = _lookup(session_id)
    active.engine.restart()
    return view_response(session_id, active)


@router.delete("/{session_id}")
async def study_end(session_id: str) -> dict:
    """Dispose of a session and forget it."""
    active = _active_sessions.pop(session_id, None)
    if active is None:
        raise HTTPException(status_code=404, detail="Session not found")
    active.engine.dispose()
    return {"status": "ended", "session_id": session_id}
