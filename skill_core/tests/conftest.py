import asyncio
import json

import pytest

from skill_core.domain.models import ChatStreamChoice, ChatStreamChunk, ToolCallDelta


class ScriptedProvider:
    """按脚本逐轮返回流式片段的假 Provider。

    rounds 中每一项对应一次 chat_stream 调用：
    - 片段列表：依次产出；
    - 列表中的异常实例：产出到该位置时抛出；
    - 列表中的数字：在该位置 sleep 对应秒数。
    轮次用完后重复最后一轮。
    """

    name = "fake"

    def __init__(self, rounds):
        self.rounds = list(rounds)
        self.requests = []

    async def chat_stream(self, req):
        self.requests.append(req)
        index = min(len(self.requests) - 1, len(self.rounds) - 1)
        for item in self.rounds[index]:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, (int, float)):
                await asyncio.sleep(item)
                continue
            yield item

    @staticmethod
    def text(content):
        return ChatStreamChunk(provider="fake", model="chat", choices=[ChatStreamChoice(index=0, content=content)])

    @staticmethod
    def tool(name, arguments, call_id="call_1", index=0):
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        delta = ToolCallDelta(index=index, id=call_id, name=name, arguments=raw)
        return ChatStreamChunk(provider="fake", model="chat", choices=[ChatStreamChoice(index=0, tool_calls=[delta])])


@pytest.fixture
def scripted():
    return ScriptedProvider
