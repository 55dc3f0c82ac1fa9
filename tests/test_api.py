"""Tests for the HTTP API: health, deck routes and study session routes."""

import json
from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.api import study_router
from backend.api.deck_router import get_quota
from backend.database import get_session
from backend.llm_client import LLMClient, get_llm_client
from backend.main import app
from backend.quota import RequestQuota
from backend.study.clock import ManualScheduler


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def llm() -> MagicMock:
    llm = MagicMock(spec=LLMClient)
    llm.create_message.return_value = json.dumps(
        {
            "topic": "Capitals",
            "flashcards": [
                {"question": "The capital of France is ___", "answer": "Paris", "order": 1},
                {"question": "The capital of Italy is ___", "answer": "Rome", "order": 2},
            ],
        }
    )
    return llm


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker,
    scheduler: ManualScheduler,
    llm: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    async def _session() -> AsyncGenerator:
        async with session_factory() as session:
            yield session

    quota = RequestQuota(limit=3, window_seconds=3600)
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[study_router.get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_quota] = lambda: quota

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
    study_router._active_sessions.clear()


async def _create_deck(client: AsyncClient, format: str = "cloze") -> dict:
    response = await client.post(
        "/api/decks/generate",
        json={"topic": "European capitals", "question_count": 2, "format": format},
    )
    assert response.status_code == 201
    return response.json()["deck"]


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# --- Decks ---


class TestDeckRoutes:
    @pytest.mark.asyncio
    async def test_generate_deck(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/decks/generate",
            json={"topic": "European capitals", "question_count": 2, "format": "cloze"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["remaining_requests"] == 2
        assert body["deck"]["topic"] == "Capitals"
        assert body["deck"]["card_count"] == 2
        assert [c["order"] for c in body["deck"]["cards"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_generate_rejects_blank_topic(self, client: AsyncClient) -> None:
        response = await client.post("/api/decks/generate", json={"topic": "  "})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_generate_rejects_unknown_format(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/decks/generate", json={"topic": "Capitals", "format": "essay"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_generate_quota(self, client: AsyncClient) -> None:
        for _ in range(3):
            await _create_deck(client)
        response = await client.post("/api/decks/generate", json={"topic": "More capitals"})
        assert response.status_code == 429

    @pytest.mark.asyncio
    async def test_generation_failure_is_502(self, client: AsyncClient, llm: MagicMock) -> None:
        llm.create_message.return_value = "no json here"
        response = await client.post("/api/decks/generate", json={"topic": "Capitals"})
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_list_groups_by_topic(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        response = await client.get("/api/decks")
        body = response.json()
        assert body["most_recent_id"] == deck["id"]
        assert body["groups"][0]["topic"] == "Capitals"
        assert body["groups"][0]["decks"][0]["card_count"] == 2

    @pytest.mark.asyncio
    async def test_get_missing_deck(self, client: AsyncClient) -> None:
        response = await client.get("/api/decks/999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_edit_cards(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        deck_id = deck["id"]
        first, second = deck["cards"]

        response = await client.post(
            f"/api/decks/{deck_id}/cards", json={"question": "Capital of Spain?", "answer": "Madrid"}
        )
        assert response.status_code == 201
        assert response.json()["order"] == 3

        response = await client.patch(
            f"/api/decks/{deck_id}/cards/{first['id']}", json={"answer": "PARIS"}
        )
        assert response.json()["answer"] == "PARIS"

        response = await client.post(
            f"/api/decks/{deck_id}/cards/{second['id']}/move", json={"direction": "up"}
        )
        assert [c["id"] for c in response.json()["cards"]][:2] == [second["id"], first["id"]]

        response = await client.delete(f"/api/decks/{deck_id}/cards/{first['id']}")
        assert [c["order"] for c in response.json()["cards"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_edit_missing_card(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        response = await client.patch(f"/api/decks/{deck['id']}/cards/999", json={"answer": "x"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_regenerate_deck(self, client: AsyncClient, llm: MagicMock) -> None:
        deck = await _create_deck(client)
        response = await client.post(f"/api/decks/{deck['id']}/regenerate")
        assert response.status_code == 200
        assert response.json()["card_count"] == 2
        assert llm.create_message.call_count == 2

    @pytest.mark.asyncio
    async def test_delete_deck(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        assert (await client.delete(f"/api/decks/{deck['id']}")).status_code == 200
        assert (await client.get(f"/api/decks/{deck['id']}")).status_code == 404


# --- Study sessions ---


class TestStudyRoutes:
    @pytest.mark.asyncio
    async def test_study_walkthrough(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        response = await client.post("/api/study/start", json={"deck_id": deck["id"]})
        assert response.status_code == 201
        view = response.json()
        session_id = view["session_id"]
        assert view["phase"] == "in_progress"
        assert view["card"]["question"] == "The capital of France is ___"
        assert view["answer"] is None
        assert view["progress_percent"] == 50

        view = (await client.post(f"/api/study/{session_id}/reveal")).json()
        assert view["answer"]["text"] == "The capital of France is Paris"
        assert view["answer"]["before"] == "The capital of France is "

        view = (
            await client.post(f"/api/study/{session_id}/advance", json={"direction": "next"})
        ).json()
        assert view["position"] == 2
        assert not view["revealed"]
        assert not view["can_finish"]

        await client.post(f"/api/study/{session_id}/reveal")
        view = (await client.post(f"/api/study/{session_id}/finish")).json()
        assert view["phase"] == "finished"

        view = (await client.post(f"/api/study/{session_id}/restart")).json()
        assert view["phase"] == "not_started"
        assert view["card"] is None

        view = (await client.post(f"/api/study/{session_id}/start")).json()
        assert view["phase"] == "in_progress"
        assert view["position"] == 1

    @pytest.mark.asyncio
    async def test_timed_session_auto_reveals(
        self, client: AsyncClient, scheduler: ManualScheduler
    ) -> None:
        deck = await _create_deck(client)
        view = (
            await client.post(
                "/api/study/start",
                json={"deck_id": deck["id"], "timed": True, "seconds_per_question": 5},
            )
        ).json()
        assert view["remaining_seconds"] == 5

        scheduler.advance(5)
        view = (await client.get(f"/api/study/{view['session_id']}")).json()
        assert view["revealed"]
        assert view["remaining_seconds"] == 0

    @pytest.mark.asyncio
    async def test_seconds_out_of_range_rejected(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        response = await client.post(
            "/api/study/start",
            json={"deck_id": deck["id"], "timed": True, "seconds_per_question": 2},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_goto_clamps(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        view = (await client.post("/api/study/start", json={"deck_id": deck["id"]})).json()
        view = (
            await client.post(f"/api/study/{view['session_id']}/goto", json={"index": 40})
        ).json()
        assert view["current_index"] == 1

    @pytest.mark.asyncio
    async def test_empty_deck_session(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        for card in deck["cards"]:
            await client.delete(f"/api/decks/{deck['id']}/cards/{card['id']}")
        view = (await client.post("/api/study/start", json={"deck_id": deck["id"]})).json()
        assert view["phase"] == "in_progress"
        assert view["total"] == 0
        assert view["progress_percent"] == 0
        assert view["card"] is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, client: AsyncClient) -> None:
        assert (await client.get("/api/study/nope")).status_code == 404
        assert (await client.post("/api/study/nope/reveal")).status_code == 404

    @pytest.mark.asyncio
    async def test_start_missing_deck(self, client: AsyncClient) -> None:
        response = await client.post("/api/study/start", json={"deck_id": 404})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_end_session_disposes_timer(
        self, client: AsyncClient, scheduler: ManualScheduler
    ) -> None:
        deck = await _create_deck(client)
        view = (
            await client.post("/api/study/start", json={"deck_id": deck["id"], "timed": True})
        ).json()
        assert scheduler.pending == 1
        response = await client.delete(f"/api/study/{view['session_id']}")
        assert response.status_code == 200
        assert scheduler.pending == 0
        assert (await client.get(f"/api/study/{view['session_id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_start_again_restarts_running_session(self, client: AsyncClient) -> None:
        deck = await _create_deck(client)
        view = (await client.post("/api/study/start", json={"deck_id": deck["id"]})).json()
        session_id = view["session_id"]
        await client.post(f"/api/study/{session_id}/advance", json={"direction": "next"})
        await client.post(f"/api/study/{session_id}/reveal")
        await client.post(f"/api/study/{session_id}/finish")

        view = (await client.post(f"/api/study/{session_id}/start")).json()
        assert view["phase"] == "in_progress"
        assert view["current_index"] == 0
        assert not view["revealed"]
