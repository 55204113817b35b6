"""技能数据结构定义。

这些 dataclass 描述了“技能 / 工具调用”的 schema，既用于：
- 将可用技能目录暴露给 LLM（ToolDef / SkillParam）。
- 在 Driver 与 Dispatcher 之间传递模型触发的调用（ToolCall / ToolCallResult）。
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union


SkillOutput = Any
SkillHandler = Callable[[Dict[str, Any]], Union[SkillOutput, Awaitable[SkillOutput]]]

# 参数类型名与 JSON Schema 保持一致
PARAM_TYPES = ("string", "integer", "number", "boolean", "array", "object")


@dataclass
class SkillParam:
    """单个技能参数的定义。"""

    name: str
    description: str = ""
    required: bool = True
    type: str = "string"

    def to_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass
class SkillDefinition:
    """注册到 SkillRegistry 的技能。

    handler 接收参数字典，可以是普通函数也可以是协程函数；
    返回值为字符串或任意可 JSON 序列化的结构。
    """

    name: str
    description: str
    handler: SkillHandler
    input_schema: Dict[str, SkillParam] = field(default_factory=dict)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                pname: {"description": p.description, "required": p.required, "type": p.type}
                for pname, p in self.input_schema.items()
            },
        }

    def to_tool_def(self) -> "ToolDef":
        return ToolDef(name=self.name, description=self.description, params=dict(self.input_schema))


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义（Provider 侧使用）。"""

    name: str
    description: str
    params: Dict[str, SkillParam]


@dataclass
class ToolCall:
    """模型发起的一次工具调用请求。"""

    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class ToolCallResult:
    """技能执行结果的封装（文本形式）。

    error 为空表示成功；否则为错误码（如 "SKILL_NOT_FOUND"），
    output 中保存给模型看的错误说明。
    """

    call_id: str
    output: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
