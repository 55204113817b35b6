"""Skill Core 顶层包。

该包提供技能编排与流式对话引擎的核心实现，
包括配置加载、领域模型、Provider 适配、技能注册与分发、
对话驱动、会话持久化与向量检索等能力。
"""

from skill_core.agents.agent import Agent
from skill_core.agents.chat import ChatSession, PromptStream
from skill_core.domain.events import ChatEvent

__all__ = ["Agent", "ChatSession", "PromptStream", "ChatEvent"]
