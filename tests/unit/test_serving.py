"""Unit tests for the serving layer."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ANIMAL_DOCUMENTS
from rag_chat.chat.session import SessionRegistry
from rag_chat.serving.app import create_app


@pytest.fixture()
def client(populated_services) -> TestClient:
    return TestClient(create_app(populated_services))


def test_health_endpoint() -> None:
    """GET /health should return 200 with status ok."""
    from rag_chat.serving.app import app

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ingest_endpoint(services) -> None:
    client = TestClient(create_app(services))
    response = client.post("/ingest", json={"sources": [*ANIMAL_DOCUMENTS, "docs/missing.md"]})
    assert response.status_code == 200
    body = response.json()
    assert body["collection"] == "test-memory"
    assert body["failed"] == ["docs/missing.md"]
    assert body["chunks_indexed"] == len(ANIMAL_DOCUMENTS)


def test_ingest_requires_sources(client: TestClient) -> None:
    assert client.post("/ingest", json={"sources": []}).status_code == 422


def test_search_endpoint(client: TestClient) -> None:
    response = client.post("/search", json={"query": "What is a reptile?"})
    assert response.status_code == 200
    hits = response.json()["hits"]
    assert [h["metadata"]["source"] for h in hits] == ["docs/scales.md", "docs/reptiles.md"]
    assert hits[0]["score"] >= hits[1]["score"] >= 0.4


def test_search_limit_override(client: TestClient) -> None:
    response = client.post("/search", json={"query": "What is a reptile?", "limit": 1})
    assert len(response.json()["hits"]) == 1


def test_chat_keeps_a_conversation_per_session(client: TestClient, populated_services) -> None:
    first = client.post("/chat", json={"message": "What is a reptile?"}).json()
    assert first["status"] == "ok"
    assert first["reply"] == "Reptiles are cold-blooded."
    assert first["sources"] == ["[docs/scales.md§0]", "[docs/reptiles.md§0]"]

    second = client.post("/chat", json={"message": "Thanks!", "session_id": first["session_id"]}).json()
    assert second["session_id"] == first["session_id"]
    assert second["status"] == "ok"

    # system + two committed exchanges, no context messages
    sent = populated_services.chat.histories[-1]
    assert [m.role.value for m in sent] == ["system", "user", "assistant", "user"]


def test_chat_rejects_empty_message(client: TestClient) -> None:
    assert client.post("/chat", json={"message": ""}).status_code == 422


def test_capabilities(client: TestClient) -> None:
    names = [c["name"] for c in client.get("/capabilities").json()]
    assert names == ["current_time", "search_knowledge"]

    response = client.post("/capabilities/search_knowledge", json={"query": "What is a reptile?"})
    assert response.status_code == 200
    assert response.json()["result"].startswith("Every reptile has scales.")

    assert client.post("/capabilities/current_time", json={}).json()["result"].endswith("GMT")
    assert client.post("/capabilities/nope", json={"query": "x"}).status_code == 404


def test_chat_sessions_are_bounded(populated_services) -> None:
    app = create_app(populated_services, SessionRegistry(max_sessions=3, ttl_seconds=60))
    client = TestClient(app)
    for _ in range(10):
        assert client.post("/chat", json={"message": "What is a reptile?"}).status_code == 200
    assert len(app.state.sessions) == 3


def test_ending_a_chat_session_releases_it(client: TestClient) -> None:
    session_id = client.post("/chat", json={"message": "What is a reptile?"}).json()["session_id"]
    assert session_id in client.app.state.sessions

    assert client.delete(f"/chat/{session_id}").status_code == 204
    assert session_id not in client.app.state.sessions
    assert client.delete(f"/chat/{session_id}").status_code == 404
