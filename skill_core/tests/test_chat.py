import asyncio
import tempfile
from pathlib import Path

import pytest

from skill_core.agents.agent import Agent
from skill_core.domain.exceptions import NetworkError, SkillNotFoundError, ValidationError
from skill_core.infrastructure.storage.json_store import JsonSessionStore


def _agent(provider, root, **kw):
    return Agent(
        id="test-agent",
        name="Tester",
        behavior="Answer briefly.",
        provider_client=provider,
        store=JsonSessionStore(root=root),
        **kw,
    )


def test_prompt_can_be_awaited(scripted):
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(scripted([[scripted.text("Hello"), scripted.text(" there")]]), Path(d))

        async def ask():
            return await agent.prompt("hi")

        assert asyncio.run(ask()) == "Hello there"


def test_system_prompt_uses_name_and_behavior(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[scripted.text("ok")]])
        agent = _agent(provider, Path(d))

        async def ask():
            return await agent.prompt("hi")

        asyncio.run(ask())
        system = provider.requests[0].messages[0]
        assert system.role == "system"
        assert "Tester" in system.content
        assert "Answer briefly." in system.content


def test_awaited_prompt_raises_terminal_error_and_session_stays_usable(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[NetworkError(message="down")], [scripted.text("back")]])
        agent = _agent(provider, Path(d))

        async def scenario():
            chat = agent.chat(id="s1")
            with pytest.raises(NetworkError):
                await chat.prompt("first")
            return await chat.prompt("second")

        assert asyncio.run(scenario()) == "back"


def test_persisted_chat_round_trip(scripted):
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)

        async def first_run():
            agent = _agent(scripted([[scripted.text("Nice to meet you")]]), root)
            with agent.chat(id="my-chat-session-001", persist=True) as chat:
                await chat.prompt("I am Ana")

        asyncio.run(first_run())

        restored = JsonSessionStore(root=root).load("my-chat-session-001")
        assert [(t.kind, t.content) for t in restored.history] == [
            ("user_message", "I am Ana"),
            ("assistant_delta", "Nice to meet you"),
            ("assistant_final", "Nice to meet you"),
        ]

        provider = scripted([[scripted.text("Hi Ana")]])

        async def second_run():
            agent = _agent(provider, root)
            chat = agent.chat(id="my-chat-session-001", persist=True)
            return await chat.prompt("Who am I?")

        assert asyncio.run(second_run()) == "Hi Ana"
        contents = [m.content for m in provider.requests[0].messages if m.role != "system"]
        assert contents == ["I am Ana", "Nice to meet you", "Who am I?"]


def test_ephemeral_chat_is_gone_after_close(scripted):
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(scripted([[scripted.text("ok")]]), Path(d))

        async def scenario():
            chat = agent.chat(id="tmp")
            await chat.prompt("hi")
            chat.close()

        asyncio.run(scenario())
        assert agent.store.list_sessions() == []
        assert len(agent.store.get("tmp")) == 0


def test_same_id_shares_live_session(scripted):
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(scripted([[scripted.text("ok")]]), Path(d))
        a = agent.chat(id="same")
        b = agent.chat(id="same")
        assert a.session is b.session


def test_cancel_during_tool_call_records_cancelled_result(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[scripted.tool("wait", {}, call_id="c-wait")], [scripted.text("never")]])
        agent = _agent(provider, Path(d), skill_timeout=10)
        started = []

        async def wait(args):
            started.append(True)
            await asyncio.sleep(10)

        agent.add_skill("wait", "blocks for a while", wait)

        async def scenario():
            chat = agent.chat(id="c")
            stream = chat.prompt("go")
            seen = []
            async for event in stream:
                seen.append(event.kind)
                if event.kind == "tool_call":
                    await asyncio.sleep(0.05)
                    stream.cancel()
            await stream.wait_closed()
            return chat, seen

        chat, seen = asyncio.run(scenario())
        assert seen == ["tool_call"]
        assert started == [True]
        kinds = [t.kind for t in chat.history]
        assert kinds == ["user_message", "tool_call", "tool_result"]
        assert chat.history[-1].error == "CANCELLED"
        assert chat.history[-1].call_id == "c-wait"
        assert len(provider.requests) == 1


def test_cancel_while_streaming_keeps_partial_deltas(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[scripted.text("Once upon"), 10, scripted.text(" a time")]])
        agent = _agent(provider, Path(d))

        async def scenario():
            chat = agent.chat(id="c", persist=True)
            stream = chat.prompt("tell a story")
            seen = []
            async for event in stream:
                seen.append(event)
                stream.cancel()
            await stream.wait_closed()
            return chat, seen

        chat, seen = asyncio.run(scenario())
        assert [e.kind for e in seen] == ["content"]
        assert [t.kind for t in chat.history] == ["user_message", "assistant_delta"]
        # 取消后保留的历史同样落盘
        restored = JsonSessionStore(root=Path(d)).load("c")
        assert [t.content for t in restored.history] == ["tell a story", "Once upon"]


def test_prompts_on_one_session_are_serialised(scripted):
    with tempfile.TemporaryDirectory() as d:
        provider = scripted([[scripted.text("a"), 0.02, scripted.text("b")]])
        agent = _agent(provider, Path(d))

        async def scenario():
            chat = agent.chat(id="c")
            replies = await asyncio.gather(chat.prompt("one"), chat.prompt("two"))
            return chat, replies

        chat, replies = asyncio.run(scenario())
        assert replies == ["ab", "ab"]
        kinds = [t.kind for t in chat.history]
        assert kinds == ["user_message", "assistant_delta", "assistant_delta", "assistant_final"] * 2


def test_flush_failure_surfaces_as_error_event(scripted):
    with tempfile.TemporaryDirectory() as d:
        blocker = Path(d) / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        agent = _agent(scripted([[scripted.text("ok")]]), blocker)

        async def scenario():
            chat = agent.chat(id="c", persist=True)
            return await chat.prompt("hi").collect()

        events = asyncio.run(scenario())
        assert [e.kind for e in events] == ["content", "error"]
        assert events[-1].error.code == "STORE_WRITE_ERROR"


def test_closed_chat_rejects_prompts(scripted):
    with tempfile.TemporaryDirectory() as d:
        chat = _agent(scripted([[scripted.text("ok")]]), Path(d)).chat(id="c")
        chat.close()
        with pytest.raises(ValidationError):
            chat.prompt("hi")


def test_call_skill_directly(scripted):
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(scripted([]), Path(d))
        agent.add_skill("add", "add numbers", lambda args: args["a"] + args["b"],
                        inputs={"a": {"type": "integer"}, "b": {"type": "integer"}})
        assert asyncio.run(agent.call("add", {"a": 2, "b": 3})) == 5
        with pytest.raises(SkillNotFoundError):
            asyncio.run(agent.call("sub", {}))


def test_vector_db_is_scoped_per_namespace_and_model(scripted):
    from skill_core.vectorstores.embeddings import HashingEmbeddings

    with tempfile.TemporaryDirectory() as d:
        agent = _agent(scripted([]), Path(d))
        small = HashingEmbeddings(dim=32)
        books = agent.vector_db("books", small)
        assert agent.vector_db("books", HashingEmbeddings(dim=32)) is books
        assert agent.vector_db("books", HashingEmbeddings(dim=64)) is not books
        assert agent.vector_db("notes", small) is not books
        assert books.collection == "test-agent:books:hashing-32"
