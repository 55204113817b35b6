"""OpenAI 兼容协议的 Provider 适配器。

OpenAI、Moonshot/Kimi 与 GLM/BigModel 都使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式: SSE，每行 "data: {json}"，以 "data: [DONE]" 结束

本模块负责：

1. 接收统一的 ChatRequest，转换为厂商请求 JSON（含工具 schema）。
2. 通过 httpx.AsyncClient 发起流式请求并处理网络/API 异常。
3. 将每条 SSE 数据解析为统一的 ChatStreamChunk（含工具调用片段）。
"""

import json
from typing import Any, AsyncIterator, Dict, List

import httpx

from skill_core.domain.exceptions import (
    ApiError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from skill_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
    ToolCallDelta,
)
from skill_core.providers.registry import ModelConfig, ProviderConfig
from skill_core.skills.definitions import ToolDef


class OpenAICompatClient:
    """OpenAI 兼容协议客户端。

    - name: Provider 名称（供日志/调试使用）。
    - chat_stream: 对外统一调用入口，按接收顺序产出 ChatStreamChunk。
    """

    def __init__(self, config: ProviderConfig, settings):
        self._config = config
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings
        self.name = config.name

    async def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        api_key = getattr(self._settings, self._config.key_setting, None)
        if not api_key:
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(
                code="MISSING_API_KEY",
                message=f"{self._config.key_setting.upper()} not set",
            )
        model_cfg = self._config.resolve_model(req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, self._config.url_setting, None) or self._config.base_url
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code == 429:
                        # 限流错误交给上层做重试/退避
                        raise RateLimitError(message=f"{self.name} rate limit", http_status=429)
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise ApiError(
                            message=body.decode("utf-8", errors="replace"),
                            http_status=resp.status_code,
                        )
                    async for line in resp.aiter_lines():
                        data_str = self._sse_data(line)
                        if data_str is None:
                            continue
                        if data_str == "[DONE]":
                            break
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            raise MalformedResponseError(message=f"Invalid stream payload: {data_str[:200]}")
                        if not isinstance(payload_chunk, dict):
                            raise MalformedResponseError(message=f"Unexpected stream payload: {data_str[:200]}")
                        if payload_chunk.get("error"):
                            raise ApiError(message=json.dumps(payload_chunk["error"], ensure_ascii=False))
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.TimeoutException as e:
            raise NetworkError(code="NETWORK_TIMEOUT", message=str(e) or "request timed out")
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接中断等
            raise NetworkError(message=str(e))

    @staticmethod
    def _sse_data(line: str):
        """取出 SSE 行中的 data 部分；注释行、事件名与空行返回 None。"""

        text = (line or "").strip()
        if not text or text.startswith(":") or text.startswith("event:") or text.startswith("id:"):
            return None
        if text.startswith("data:"):
            text = text[5:].strip()
        return text or None

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成厂商所需的请求 JSON。"""

        payload = {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
            "stream": True,
        }
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        return payload

    @staticmethod
    def _serialize_tool(tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 function tool 描述。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            properties[name] = param.to_schema()
            if param.required:
                required.append(name)
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        """解析流式响应中的单条增量。"""

        choices: List[ChatStreamChoice] = []
        for i, ch in enumerate(data.get("choices") or []):
            delta = ch.get("delta") or ch.get("message") or {}
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    content=delta.get("content") or "",
                    tool_calls=self._parse_tool_call_deltas(delta),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatStreamChunk(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _parse_tool_call_deltas(delta: Dict[str, Any]) -> List[ToolCallDelta]:
        calls: List[ToolCallDelta] = []
        for idx, call in enumerate(delta.get("tool_calls") or []):
            func = call.get("function") or {}
            arguments = func.get("arguments")
            if isinstance(arguments, dict):
                arguments = json.dumps(arguments, ensure_ascii=False)
            calls.append(
                ToolCallDelta(
                    index=call.get("index", idx),
                    id=call.get("id"),
                    name=func.get("name") or call.get("name"),
                    arguments=arguments or "",
                )
            )
        # 部分模型仍会返回旧版 function_call 字段
        function_call = delta.get("function_call")
        if function_call:
            calls.append(
                ToolCallDelta(
                    index=0,
                    id=function_call.get("id"),
                    name=function_call.get("name"),
                    arguments=function_call.get("arguments") or "",
                )
            )
        return calls

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role}
        if message.content or not message.tool_calls:
            payload["content"] = message.content
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        return payload
