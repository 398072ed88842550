from __future__ import annotations

from fastapi.testclient import TestClient

import app.main as main_mod
from app.config import settings
from app.feedback import FeedbackStore
from app.rag.generator import EmptyCompletionError, MISSING_MODEL_CONFIG
from app.rag.index import IndexCache
from app.rag.types import SourceDocument
from app.schemas import ChatResponse, SourceItem


def _configure(monkeypatch):
    monkeypatch.setattr(settings, "AI_BASE_URL", "https://llm.example.com", raising=True)
    monkeypatch.setattr(settings, "AI_API_KEY", "test-key", raising=True)
    monkeypatch.setattr(settings, "AI_MODEL", "test-model", raising=True)
    monkeypatch.setattr(main_mod, "get_generator", lambda: object(), raising=True)


def test_chat_ok_with_mocked_pipeline(monkeypatch):
    _configure(monkeypatch)

    def fake_answer(req, **kwargs) -> ChatResponse:
        assert req.mode == "chat"
        return ChatResponse(
            text="mock answer\n\nSources: [S1]",
            sources=[SourceItem(id="S1", title="Uzbekistan Railways", url="https://railway.uz")],
            request_id="req-1",
        )

    monkeypatch.setattr(main_mod, "rag_answer", fake_answer, raising=True)

    client = TestClient(main_mod.app)
    resp = client.post("/api/chat", json={"mode": "chat", "messages": [{"role": "user", "content": "trains?"}]})
    assert resp.status_code == 200

    data = resp.json()
    assert data["text"] == "mock answer\n\nSources: [S1]"
    assert data["sources"] == [{"id": "S1", "title": "Uzbekistan Railways", "url": "https://railway.uz"}]
    assert data["cached"] is False
    assert "itinerary" not in data


def test_chat_500_when_model_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "AI_BASE_URL", None, raising=True)

    client = TestClient(main_mod.app)
    resp = client.post("/api/chat", json={"mode": "chat", "messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 500
    assert resp.json() == {"error": MISSING_MODEL_CONFIG}


def test_chat_400_without_messages(monkeypatch):
    _configure(monkeypatch)

    client = TestClient(main_mod.app)
    resp = client.post("/api/chat", json={"mode": "chat", "messages": []})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Chat messages are required."}


def test_chat_422_on_invalid_body():
    client = TestClient(main_mod.app)

    resp = client.post("/api/chat", json={"mode": "poem"})
    assert resp.status_code == 422
    assert resp.json() == {"error": "Invalid request."}


def test_chat_502_on_upstream_error(monkeypatch):
    _configure(monkeypatch)

    def boom(req, **kwargs):
        raise RuntimeError("LLM generation failed after retries: timeout")

    monkeypatch.setattr(main_mod, "rag_answer", boom, raising=True)

    client = TestClient(main_mod.app)
    resp = client.post("/api/chat", json={"mode": "itinerary", "city": "Khiva", "days": 2})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Upstream model error"}


def test_chat_502_on_empty_completion(monkeypatch):
    _configure(monkeypatch)

    def empty(req, **kwargs):
        raise EmptyCompletionError("Empty response from model.")

    monkeypatch.setattr(main_mod, "rag_answer", empty, raising=True)

    client = TestClient(main_mod.app)
    resp = client.post("/api/chat", json={"mode": "chat", "messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Empty response from model."}


def test_feedback_ok_and_invalid(monkeypatch):
    store = FeedbackStore()
    monkeypatch.setattr(main_mod, "feedback_store", store, raising=True)

    client = TestClient(main_mod.app)

    ok = client.post("/api/feedback", json={"messageId": "m-1", "rating": 1, "mode": "chat"})
    assert ok.status_code == 200
    assert ok.json() == {"ok": True, "storage": "memory"}
    assert store.records()[0]["message_id"] == "m-1"

    bad = client.post("/api/feedback", json={"messageId": "m-2", "rating": 5})
    assert bad.status_code == 400
    assert bad.json() == {"error": "Invalid feedback."}

    flag = client.post("/api/feedback", json={"messageId": "m-3", "rating": True})
    assert flag.status_code == 400
    assert flag.json() == {"error": "Invalid feedback."}
    assert len(store.records()) == 1


def test_index_refresh_reports_stats(monkeypatch):
    docs = [
        SourceDocument(id="uz-rail", title="Rail", url="https://railway.uz", content="Trains.\n\nTickets."),
        SourceDocument(id="kb-bukhara", title="Bukhara", url="", content="Old town walks."),
    ]
    monkeypatch.setattr(main_mod, "index_cache", IndexCache(lambda: list(docs)), raising=True)

    client = TestClient(main_mod.app)
    resp = client.post("/api/index/refresh")
    assert resp.status_code == 200

    data = resp.json()
    assert data["ok"] is True
    assert data["chunks"] == 3


def test_root_ok():
    client = TestClient(main_mod.app)
    assert client.get("/").json() == {"ok": True}
