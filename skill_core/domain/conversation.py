from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Literal, Protocol, Tuple, TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from skill_core.skills.definitions import ToolCall, ToolCallResult


TurnKind = Literal["user_message", "assistant_delta", "tool_call", "tool_result", "assistant_final"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ConversationTurn:
    """会话历史中的一个原子单元。

    - user_message / assistant_final: content 为完整文本。
    - assistant_delta: content 为模型流式输出的一个片段。
    - tool_call: call_id + tool_name + arguments。
    - tool_result: call_id + content（文本结果），失败时 error 为错误码。
    """

    kind: TurnKind
    content: str = ""
    call_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    id: str = field(default_factory=lambda: f"t-{uuid4().hex}")
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(kind="user_message", content=text)

    @classmethod
    def delta(cls, text: str) -> "ConversationTurn":
        return cls(kind="assistant_delta", content=text)

    @classmethod
    def final(cls, text: str) -> "ConversationTurn":
        return cls(kind="assistant_final", content=text)

    @classmethod
    def from_tool_call(cls, call: "ToolCall") -> "ConversationTurn":
        return cls(kind="tool_call", call_id=call.id, tool_name=call.name, arguments=dict(call.arguments))

    @classmethod
    def from_tool_result(cls, result: "ToolCallResult", tool_name: Optional[str] = None) -> "ConversationTurn":
        return cls(
            kind="tool_result",
            content=result.output,
            call_id=result.call_id,
            tool_name=tool_name,
            error=result.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "content": self.content,
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "error": self.error,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationTurn":
        return cls(
            kind=data["kind"],
            content=data.get("content") or "",
            call_id=data.get("call_id"),
            tool_name=data.get("tool_name"),
            arguments=data.get("arguments"),
            error=data.get("error"),
            id=data["id"],
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
        )


@dataclass(eq=False)
class Session:
    """一个会话：id + 只追加的历史。

    persist 为 True 时历史会被 SessionStore 落盘，进程重启后可按 id 恢复；
    否则只在持有它的 ChatSession 存活期间存在。
    """

    id: str
    persist: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    _turns: List[ConversationTurn] = field(default_factory=list, repr=False)

    @property
    def history(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)
        self.updated_at = _utcnow()

    def __len__(self) -> int:
        return len(self._turns)


class SessionStore(Protocol):
    def get(self, session_id: str, persist: bool = False) -> Session:
        ...

    def append(self, session_id: str, turn: ConversationTurn) -> None:
        ...

    def flush(self, session_id: str) -> None:
        ...

    def load(self, session_id: str) -> Session:
        ...

    def release(self, session_id: str) -> None:
        ...
