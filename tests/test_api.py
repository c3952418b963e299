"""HTTP endpoints with retrieval and completion faked out."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from config.settings import ArchiveConfig
from indexer.fusion import RetrievedChunk
from indexer.postgres_adapter import StoreUnavailableError
from indexer.retrieval import RetrievalEngine
from server.answering import AnswerComposer
from server.api import app, get_composer, get_engine

from conftest import FakeEmbedder, FakeStore


@pytest.fixture
def store():
    store = FakeStore()
    store.lexical_rows = [
        RetrievedChunk(content="Seek wealth, not money or status.", title="How to Get Rich",
                       url="https://nav.al/rich", chunk_id=1, chunk_index=0),
        RetrievedChunk(content="Wealth is assets that earn while you sleep.", title="How to Get Rich",
                       url="https://nav.al/rich", chunk_id=2, chunk_index=1),
    ]
    return store


@pytest.fixture
def completions():
    completions = MagicMock()
    completions.complete = AsyncMock(return_value="Build specific knowledge.")
    return completions


@pytest.fixture
def client(store, completions):
    engine = RetrievalEngine(store, FakeEmbedder())
    composer = AnswerComposer(engine, completions)
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_composer] = lambda: composer
    # No context manager: the lifespan (real clients) is not started
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_metrics_exposition(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "archive_retrieval_duration_seconds" in response.text


def test_chat_returns_answer_with_single_citation_per_post(client):
    response = client.post("/chat", json={"message": "How do I get rich?"})

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "Build specific knowledge."
    assert body["grounded"] is True
    assert body["citations"] == [{"title": "How to Get Rich", "url": "https://nav.al/rich"}]


def test_chat_rejects_blank_message(client, completions):
    response = client.post("/chat", json={"message": "   "})
    assert response.status_code == 400
    completions.complete.assert_not_awaited()


def test_chat_store_unavailable_is_503(client, store):
    store.search_fulltext = AsyncMock(side_effect=StoreUnavailableError(
        "Database connection refused", is_local=True, hint="Start Postgres locally"
    ))

    response = client.post("/chat", json={"message": "How do I get rich?"})

    assert response.status_code == 503
    assert response.json()["detail"] == "Start Postgres locally"


def test_search_returns_fused_hits(client):
    response = client.post("/search", json={"q": "wealth", "k": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["no_candidates"] is False
    assert len(body["results"]) == 1
    assert body["results"][0]["chunk_index"] == 0


def test_search_embedding_failure_is_502(client):
    failing = FakeEmbedder()
    failing.fail = True
    app.dependency_overrides[get_engine] = lambda: RetrievalEngine(FakeStore(), failing)

    response = client.post("/search", json={"q": "wealth"})

    assert response.status_code == 502


def test_endpoints_need_initialized_store():
    # Lifespan never ran, so nothing is on app.state
    client = TestClient(app)
    response = client.post("/search", json={"q": "wealth"})
    assert response.status_code == 503


@pytest.mark.parametrize("path,payload", [
    ("/search", {"q": "wealth", "k": -1}),
    ("/search", {"q": "wealth", "k": 0}),
    ("/chat", {"message": "How do I get rich?", "k": -1}),
])
def test_non_positive_k_rejected(client, path, payload):
    response = client.post(path, json=payload)
    assert response.status_code == 422


def test_starts_without_api_key(monkeypatch):
    config = ArchiveConfig()
    assert config.embedding.api_key == ""
    monkeypatch.setattr("server.api.ArchiveConfig.from_env", lambda: config)
    monkeypatch.setattr("server.api.setup_logging", lambda **kwargs: None)
    store_cls = MagicMock()
    monkeypatch.setattr("server.api.ArchiveStore", store_cls)

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert client.get("/metrics").status_code == 200
        response = client.post("/chat", json={"message": "How do I get rich?"})
        assert response.status_code == 503

    store_cls.assert_not_called()
