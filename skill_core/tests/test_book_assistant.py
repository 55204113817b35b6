import asyncio
import tempfile
from pathlib import Path

import httpx
import pytest

from skill_core.agents.book_assistant import create_book_assistant
from skill_core.domain.exceptions import SkillExecutionError
from skill_core.infrastructure.storage.json_store import JsonSessionStore
from skill_core.vectorstores.embeddings import HashingEmbeddings


def _assistant(root, provider=None):
    return create_book_assistant(
        provider_client=provider,
        embedder=HashingEmbeddings(dim=128),
        store=JsonSessionStore(root=Path(root) / ".storage"),
        workspace_root=root,
    )


def test_skills_registered_with_refined_inputs():
    with tempfile.TemporaryDirectory() as d:
        agent = _assistant(d)
        described = agent.registry.describe_all()
        assert [s["name"] for s in described] == ["index_book", "lookup_book", "get_book_info"]
        book_name = described[2]["input_schema"]["book_name"]
        assert book_name["description"] == "This need to be a name of a book, extract it from the user query"
        assert book_name["required"] is True


def test_index_missing_book_returns_message():
    with tempfile.TemporaryDirectory() as d:
        agent = _assistant(d)
        result = asyncio.run(agent.call("index_book", {"book_path": "missing/book.txt"}))
        assert result.startswith("File resolved path to ")
        assert result.endswith("does not exist")


def test_index_and_lookup_book():
    with tempfile.TemporaryDirectory() as d:
        (Path(d) / "swan.txt").write_text(
            "The black swan is a rare waterbird.\n\nBlack swans live in Australia.",
            encoding="utf-8",
        )
        agent = _assistant(d)

        async def scenario():
            indexed = await agent.call("index_book", {"book_path": "swan.txt"})
            hits = await agent.call("lookup_book", {"user_query": "black swan Australia"})
            return indexed, hits

        indexed, hits = asyncio.run(scenario())
        assert indexed == "Book swan.txt indexed successfully"
        assert hits[0]["doc_id"] == "swan.txt"
        assert "Australia" in hits[0]["text"]


def test_get_book_info_returns_first_doc(monkeypatch):
    captured = {}

    class Resp:
        def raise_for_status(self):
            return None

        def json(self):
            return {"docs": [{"title": "The Black Swan", "author_name": ["Nassim Nicholas Taleb"]}, {"title": "other"}]}

    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def get(self, url, params=None):
            captured.update(url=url, params=params)
            return Resp()

    monkeypatch.setattr("httpx.AsyncClient", Client)
    with tempfile.TemporaryDirectory() as d:
        info = asyncio.run(_assistant(d).call("get_book_info", {"book_name": "The Black Swan"}))
    assert info["author_name"] == ["Nassim Nicholas Taleb"]
    assert captured["url"] == "https://openlibrary.org/search.json"
    assert captured["params"] == {"q": "The Black Swan"}


def test_get_book_info_network_failure(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def get(self, url, params=None):
            raise httpx.ConnectError("offline")

    monkeypatch.setattr("httpx.AsyncClient", Client)
    with tempfile.TemporaryDirectory() as d:
        with pytest.raises(SkillExecutionError):
            asyncio.run(_assistant(d).call("get_book_info", {"book_name": "x"}))


def test_prompt_drives_index_skill(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted(
            [
                [scripted.tool("index_book", {"book_path": "nope.txt"})],
                [scripted.text("I could not find that file.")],
            ]
        )
        agent = _assistant(d, provider)

        async def scenario():
            return await agent.chat(id="books").prompt("index nope.txt").collect()

        events = asyncio.run(scenario())
        assert [e.kind for e in events] == ["tool_call", "content", "end"]
        assert "does not exist" in provider.requests[1].messages[-1].content
