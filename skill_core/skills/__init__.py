"""技能系统：定义、注册表与分发器。"""

from .definitions import SkillDefinition, SkillParam, ToolCall, ToolCallResult, ToolDef
from .dispatcher import SkillDispatcher
from .registry import SkillHandle, SkillRegistry, make_skill

__all__ = [
    "SkillDefinition",
    "SkillParam",
    "ToolCall",
    "ToolCallResult",
    "ToolDef",
    "SkillDispatcher",
    "SkillHandle",
    "SkillRegistry",
    "make_skill",
]
