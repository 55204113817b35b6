"""对话驱动核心模块。

把一条用户消息 + 会话历史 + 当前技能目录变成模型请求，解析模型的流式输出，
识别其中的工具调用并交给 SkillDispatcher，把结果作为观察结果回填后再次请求模型，
直到模型给出最终回答。

状态流转：
    idle -> awaiting_model -> streaming
         -> (tool_requested -> awaiting_tool -> awaiting_model)*
         -> complete
"""

import asyncio
import json
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Literal, Optional
from uuid import uuid4

from skill_core.domain.conversation import ConversationTurn, Session
from skill_core.domain.events import ChatEvent
from skill_core.domain.exceptions import (
    BusinessError,
    MalformedResponseError,
    ModelTimeoutError,
    ToolLoopExceededError,
)
from skill_core.domain.models import ChatMessage, ChatRequest, ChatStreamChunk, ToolCallDelta
from skill_core.infrastructure.logging.logger import log_with_ctx
from skill_core.providers.base import ProviderClient
from skill_core.skills.definitions import ToolCall, ToolCallResult
from skill_core.skills.dispatcher import SkillDispatcher
from skill_core.skills.registry import SkillRegistry


DriverState = Literal["idle", "awaiting_model", "streaming", "tool_requested", "awaiting_tool", "complete"]

CANCELLED = "CANCELLED"


@dataclass
class DriverConfig:
    provider: str
    model: str
    max_tool_depth: int = 10  # 单次 prompt 内最多执行的工具轮数
    temperature: float = 0.7
    model_timeout: float = 60.0  # 等待下一段流式输出的超时（秒）
    max_context_turns: int = 200


class ToolCallAccumulator:
    """按 index 归并流式下发的工具调用片段。"""

    def __init__(self):
        self._parts: Dict[int, Dict[str, Any]] = {}

    def add(self, deltas: List[ToolCallDelta]) -> None:
        for d in deltas:
            part = self._parts.setdefault(d.index, {"id": None, "name": "", "arguments": []})
            if d.id:
                part["id"] = d.id
            if d.name and not part["name"]:
                part["name"] = d.name
            if d.arguments:
                part["arguments"].append(d.arguments)

    def build(self) -> List[ToolCall]:
        calls: List[ToolCall] = []
        for index in sorted(self._parts):
            part = self._parts[index]
            if not part["name"]:
                raise MalformedResponseError(message=f"Tool call #{index} has no function name")
            calls.append(
                ToolCall(
                    id=part["id"] or f"call_{uuid4().hex[:12]}",
                    name=part["name"],
                    arguments=self._parse_arguments("".join(part["arguments"])),
                )
            )
        return calls

    @staticmethod
    def _parse_arguments(raw: str) -> Dict[str, Any]:
        """arguments 是 JSON 字符串；解析失败时保留原文到 `_raw`，交给 Dispatcher 报错。"""

        if not raw.strip():
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
        return value if isinstance(value, dict) else {"_raw": raw}


def build_messages(system_prompt: str, turns: List[ConversationTurn]) -> List[ChatMessage]:
    """把会话历史还原为模型消息列表。

    同一轮的 assistant_delta 与 tool_call 合并为一条 assistant 消息；
    assistant_final 覆盖该轮已累计的增量文本。
    """

    messages: List[ChatMessage] = []
    if system_prompt:
        messages.append(ChatMessage(role="system", content=system_prompt))
    text: List[str] = []
    calls: List[ToolCall] = []

    def flush_assistant() -> None:
        if text or calls:
            messages.append(ChatMessage(role="assistant", content="".join(text), tool_calls=list(calls) or None))
        text.clear()
        calls.clear()

    for turn in turns:
        if turn.kind == "user_message":
            flush_assistant()
            messages.append(ChatMessage(role="user", content=turn.content))
        elif turn.kind == "assistant_delta":
            text.append(turn.content)
        elif turn.kind == "tool_call":
            calls.append(ToolCall(id=turn.call_id or "", name=turn.tool_name or "", arguments=dict(turn.arguments or {})))
        elif turn.kind == "tool_result":
            flush_assistant()
            messages.append(ChatMessage(role="tool", content=turn.content, tool_call_id=turn.call_id))
        elif turn.kind == "assistant_final":
            text[:] = [turn.content]
            flush_assistant()
    flush_assistant()
    return messages


def trim_turns(turns: List[ConversationTurn], limit: int) -> List[ConversationTurn]:
    """只保留最近 limit 个 turn，并从窗口内第一条用户消息开始，避免拆散工具调用与结果。"""

    if len(turns) <= limit:
        return list(turns)
    window = list(turns[-limit:])
    for i, turn in enumerate(window):
        if turn.kind == "user_message":
            return window[i:]
    # 窗口内没有用户消息：退回到最后一条用户消息
    for i in range(len(turns) - 1, -1, -1):
        if turns[i].kind == "user_message":
            return list(turns[i:])
    return window


class ConversationDriver:
    def __init__(
        self,
        provider_client: ProviderClient,
        registry: SkillRegistry,
        dispatcher: SkillDispatcher,
        config: DriverConfig,
        system_prompt: str = "",
    ):
        self._provider_client = provider_client
        self._registry = registry
        self._dispatcher = dispatcher
        self._config = config
        self._system_prompt = system_prompt
        self.state: DriverState = "idle"

    async def run(
        self,
        session: Session,
        user_input: str,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ChatEvent]:
        """执行一次 prompt，按发生顺序产出事件。

        正常结束时最后一个事件为 end，出错时为 error；被取消时不再产出事件，
        已追加的历史保留，未得到结果的工具调用会补一条 CANCELLED 结果。
        """

        start_time = time.time()
        ctx: Dict[str, Any] = dict(log_ctx or {})
        ctx.setdefault("trace_id", f"tr-{uuid4().hex}")
        ctx["session_id"] = session.id
        pending: Dict[str, ToolCall] = {}

        session.append(ConversationTurn.user(user_input))
        log_with_ctx(logging.INFO, "Stored user message", ctx, turns=len(session))

        try:
            round_num = 0
            while True:
                round_num += 1
                self.state = "awaiting_model"
                req = self._build_request(session)
                log_with_ctx(
                    logging.INFO,
                    "Calling provider (stream)",
                    ctx,
                    provider=self._config.provider,
                    model=self._config.model,
                    message_count=len(req.messages),
                    tool_count=len(req.tools or []),
                    round=round_num,
                )

                pieces: List[str] = []
                accumulator = ToolCallAccumulator()
                stream = self._stream(req)
                async with aclosing(stream):
                    async for chunk in stream:
                        if chunk.usage:
                            log_with_ctx(logging.INFO, "Token usage", ctx, total_tokens=chunk.usage.total_tokens)
                        if not chunk.choices:
                            continue
                        choice = chunk.choices[0]
                        accumulator.add(choice.tool_calls)
                        if choice.content:
                            self.state = "streaming"
                            pieces.append(choice.content)
                            session.append(ConversationTurn.delta(choice.content))
                            yield ChatEvent(kind="content", session_id=session.id, text=choice.content)

                calls = accumulator.build()
                if not calls:
                    content = "".join(pieces)
                    session.append(ConversationTurn.final(content))
                    self.state = "complete"
                    log_with_ctx(
                        logging.INFO,
                        "Completed prompt",
                        ctx,
                        elapsed_seconds=round(time.time() - start_time, 2),
                        tool_rounds=round_num - 1,
                    )
                    yield ChatEvent(kind="end", session_id=session.id, text=content)
                    return

                if round_num > self._config.max_tool_depth:
                    raise ToolLoopExceededError(
                        message=f"Exceeded the maximum of {self._config.max_tool_depth} tool rounds",
                        max_tool_depth=self._config.max_tool_depth,
                    )

                self.state = "tool_requested"
                log_with_ctx(logging.INFO, "Executing tool calls", ctx, call_count=len(calls), round=round_num)
                for call in calls:
                    session.append(ConversationTurn.from_tool_call(call))
                    pending[call.id] = call
                    yield ChatEvent(
                        kind="tool_call",
                        session_id=session.id,
                        tool={"name": call.name, "arguments": call.arguments},
                        call_id=call.id,
                    )

                self.state = "awaiting_tool"
                for call in calls:
                    result = await self._dispatcher.dispatch(call, ctx)
                    pending.pop(call.id, None)
                    session.append(ConversationTurn.from_tool_result(result, tool_name=call.name))

        except (asyncio.CancelledError, GeneratorExit):
            for call in pending.values():
                cancelled = ToolCallResult(call_id=call.id, output="Error: tool call was cancelled", error=CANCELLED)
                session.append(ConversationTurn.from_tool_result(cancelled, tool_name=call.name))
            self.state = "complete"
            log_with_ctx(logging.WARNING, "Prompt cancelled", ctx, abandoned_calls=len(pending))
            raise
        except BusinessError as e:
            self.state = "complete"
            log_with_ctx(logging.ERROR, "Prompt failed", ctx, error=e.code, reason=e.message)
            yield ChatEvent(kind="error", session_id=session.id, error=e)
        except Exception as e:
            self.state = "complete"
            err = BusinessError(code="INTERNAL_ERROR", message=str(e) or type(e).__name__, http_status=500)
            log_with_ctx(logging.ERROR, "Prompt failed unexpectedly", ctx, error=err.code, reason=err.message)
            yield ChatEvent(kind="error", session_id=session.id, error=err)

    def _build_request(self, session: Session) -> ChatRequest:
        turns = trim_turns(list(session.history), self._config.max_context_turns)
        # 每次请求都重新生成技能目录：技能可能在两轮之间新注册
        tools = self._registry.tool_defs()
        return ChatRequest(
            provider=self._config.provider,
            model=self._config.model,
            messages=build_messages(self._system_prompt, turns),
            temperature=self._config.temperature,
            tools=tools or None,
            tool_choice="auto",
        )

    async def _stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        iterator = self._provider_client.chat_stream(req).__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self._config.model_timeout)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise ModelTimeoutError(
                        message=f"No response from model within {self._config.model_timeout}s",
                        http_status=504,
                    )
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
