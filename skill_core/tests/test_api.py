import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from skill_core.agents.agent import Agent
from skill_core.api.service import EMPTY_MESSAGE_REPLY, FAILURE_REPLY, NOT_READY_REPLY, create_app
from skill_core.domain.exceptions import ApiError
from skill_core.infrastructure.storage.json_store import JsonSessionStore


def _agent(provider, root):
    return Agent(id="web", name="Web Agent", provider_client=provider, store=JsonSessionStore(root=root))


def test_root_and_health_without_agent():
    client = TestClient(create_app())
    root = client.get("/").json()
    assert root["endpoints"] == {"health": "/health", "chat": "POST /chat"}
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["agent"] == "not loaded"
    assert health["timestamp"].endswith("Z")


def test_chat_requires_message(scripted):
    with tempfile.TemporaryDirectory() as d:
        client = TestClient(create_app(agent=_agent(scripted([[scripted.text("ok")]]), Path(d))))
        for body in ({}, {"message": "   "}, {"message": 3}):
            resp = client.post("/chat", json=body)
            assert resp.status_code == 400
            assert resp.json() == {"error": "Message is required", "response": EMPTY_MESSAGE_REPLY}
        resp = client.post("/chat", content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400


def test_chat_without_agent_is_500():
    resp = TestClient(create_app()).post("/chat", json={"message": "hi"})
    assert resp.status_code == 500
    assert resp.json()["response"] == NOT_READY_REPLY


def test_chat_success(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[scripted.text("Hello"), scripted.text("!")]])
        client = TestClient(create_app(agent=_agent(provider, Path(d))))
        assert client.get("/health").json()["agent"] == "loaded"
        resp = client.post("/chat", json={"message": "hi"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "Hello!"
        assert body["timestamp"].endswith("Z")
        # 同一个 web 会话里继续对话
        client.post("/chat", json={"message": "again"})
        assert [m.content for m in provider.requests[1].messages if m.role == "user"] == ["hi", "again"]


def test_chat_failure_returns_friendly_fallback(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[ApiError(message="upstream exploded", http_status=502)]])
        client = TestClient(create_app(agent=_agent(provider, Path(d))))
        resp = client.post("/chat", json={"message": "hi"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error", "response": FAILURE_REPLY}


def test_agent_factory_runs_on_startup(scripted):
    with tempfile.TemporaryDirectory() as d:
        app = create_app(agent_factory=lambda: _agent(scripted([[scripted.text("ok")]]), Path(d)))
        with TestClient(app) as client:
            assert client.get("/health").json()["agent"] == "loaded"
            assert client.post("/chat", json={"message": "hi"}).json()["response"] == "ok"
