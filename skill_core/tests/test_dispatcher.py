import asyncio
from dataclasses import dataclass

import pytest

from skill_core.domain.exceptions import SkillExecutionError, SkillNotFoundError
from skill_core.skills.definitions import ToolCall
from skill_core.skills.dispatcher import SkillDispatcher, format_output
from skill_core.skills.registry import SkillRegistry, make_skill


def _dispatcher(*skills, timeout=1.0):
    reg = SkillRegistry()
    for s in skills:
        reg.register(s)
    return SkillDispatcher(reg, timeout=timeout)


def test_unknown_tool_is_a_result_not_an_exception():
    d = _dispatcher()
    res = asyncio.run(d.dispatch(ToolCall(id="c1", name="nope", arguments={})))
    assert res.call_id == "c1"
    assert res.error == "SKILL_NOT_FOUND"
    assert "nope" in res.output


def test_missing_required_argument_does_not_invoke_handler():
    calls = []
    skill = make_skill("echo", "echo", lambda args: calls.append(args), inputs={"text": {}})
    res = asyncio.run(_dispatcher(skill).dispatch(ToolCall(id="c1", name="echo", arguments={})))
    assert res.error == "INVALID_ARGUMENTS"
    assert "text" in res.output
    assert calls == []


def test_type_mismatch_rejected():
    skill = make_skill("count", "count", lambda args: args["n"], inputs={"n": {"type": "integer"}})
    d = _dispatcher(skill)
    res = asyncio.run(d.dispatch(ToolCall(id="c1", name="count", arguments={"n": True})))
    assert res.error == "INVALID_ARGUMENTS"
    ok = asyncio.run(d.dispatch(ToolCall(id="c2", name="count", arguments={"n": 3})))
    assert ok.ok
    assert ok.output == "3"


def test_unparseable_arguments_rejected():
    skill = make_skill("echo", "echo", lambda args: args["text"], inputs={"text": {}})
    res = asyncio.run(_dispatcher(skill).dispatch(ToolCall(id="c1", name="echo", arguments={"_raw": "{bad"})))
    assert res.error == "INVALID_ARGUMENTS"


def test_handler_exception_is_contained():
    def boom(args):
        raise RuntimeError("disk on fire")

    res = asyncio.run(_dispatcher(make_skill("boom", "boom", boom)).dispatch(ToolCall(id="c1", name="boom", arguments={})))
    assert res.error == "SKILL_EXECUTION_ERROR"
    assert "disk on fire" in res.output


def test_async_handler_timeout():
    async def slow(args):
        await asyncio.sleep(5)

    d = _dispatcher(make_skill("slow", "slow", slow), timeout=0.05)
    res = asyncio.run(d.dispatch(ToolCall(id="c1", name="slow", arguments={})))
    assert res.error == "SKILL_TIMEOUT"


def test_async_handler_output_is_json_encoded():
    async def info(args):
        return {"title": "The Black Swan", "year": 2007}

    res = asyncio.run(_dispatcher(make_skill("info", "info", info)).dispatch(ToolCall(id="c1", name="info", arguments={})))
    assert res.ok
    assert res.output == '{"title": "The Black Swan", "year": 2007}'


def test_format_output_normalisation():
    @dataclass
    class Hit:
        text: str

    assert format_output(None) == ""
    assert format_output("plain") == "plain"
    assert format_output([1, "二"]) == '[1, "二"]'
    assert format_output(Hit("x")) == '{"text": "x"}'
    assert format_output({"s": {1, 2}}).startswith('{"s": "')


def test_invoke_raises_instead_of_returning_result():
    d = _dispatcher(make_skill("boom", "boom", lambda args: 1 / 0))
    with pytest.raises(SkillNotFoundError):
        asyncio.run(d.invoke("missing", {}))
    with pytest.raises(SkillExecutionError):
        asyncio.run(d.invoke("boom", {}))


def test_unserialisable_output_is_contained():
    def loop(args):
        items = []
        items.append(items)
        return items

    res = asyncio.run(_dispatcher(make_skill("loop", "loop", loop)).dispatch(ToolCall(id="c1", name="loop", arguments={})))
    assert res.call_id == "c1"
    assert res.error == "SKILL_EXECUTION_ERROR"
    assert "serialised" in res.output
