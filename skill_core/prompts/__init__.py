"""系统提示词构造工具。

Agent 的 system prompt 由名称与行为描述拼成；如需整段替换，
可以在 prompts/<locale>/<agent_id>.md 放置同名文件。
"""

from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent

DEFAULT_TEMPLATE = (
    "Your name is {name}.\n"
    "{behavior}\n"
    "When a tool can answer part of the question, call it instead of guessing, "
    "then answer the user with what the tool returned."
)


def load_system_prompt(agent_id: str, locale: str = "en") -> Optional[str]:
    """按 agent id 和语言加载提示词文件，不存在时返回 None。"""

    fname = PROMPTS_DIR / locale / f"{agent_id}.md"
    if not fname.is_file():
        return None
    return fname.read_text(encoding="utf-8")


def build_system_prompt(name: str, behavior: str = "", agent_id: Optional[str] = None) -> str:
    if agent_id:
        override = load_system_prompt(agent_id)
        if override is not None:
            return override
    return DEFAULT_TEMPLATE.format(name=name, behavior=behavior.strip()).replace("\n\n", "\n")
