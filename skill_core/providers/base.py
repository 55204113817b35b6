"""Provider 抽象接口。

对话驱动层不直接依赖具体厂商的 HTTP SDK，而是依赖此协议：

- 每个厂商（或兼容协议）实现一个 ProviderClient。
- 负责：将 ChatRequest 转成具体 API 请求，并把流式响应解析为 ChatStreamChunk。
"""

from typing import AsyncIterator, Protocol

from skill_core.domain.models import ChatRequest, ChatStreamChunk


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat_stream(req): 执行一次流式对话调用，按接收顺序逐个产出增量。
      网络或协议错误以 ModelBackendError 家族异常抛出。
    """

    name: str

    def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        ...
