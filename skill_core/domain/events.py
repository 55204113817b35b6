"""对外暴露的流式事件。

每次 prompt 产生：零个或多个 content、零个或多个 tool_call，
以及恰好一个终止事件 end 或 error（被调用方取消时不再产生任何事件）。
"""

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from skill_core.domain.exceptions import BusinessError


EventKind = Literal["content", "tool_call", "end", "error"]
TERMINAL_KINDS = frozenset({"end", "error"})


@dataclass(frozen=True)
class ChatEvent:
    """ChatSession 发出的单个事件。

    kind:
        - "content": 模型输出的文本增量，text 为片段。
        - "tool_call": 模型请求调用技能，tool = {"name", "arguments"}，call_id 关联结果。
        - "end": 本轮回答结束，text 为完整回答。
        - "error": 本轮因错误终止，error 为对应异常。
    """

    kind: EventKind
    session_id: str
    text: str = ""
    tool: Optional[Dict[str, Any]] = None
    call_id: Optional[str] = None
    error: Optional[BusinessError] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS
