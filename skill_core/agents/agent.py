"""Agent：技能、模型与会话的上下文对象。

    agent = Agent(id="book-assistant", name="Book Assistant", behavior="...")
    agent.add_skill("echo", "Echo text back", lambda args: args["text"],
                    inputs={"text": {"description": "text to echo"}})

    reply = await agent.prompt("hello")            # 一次性对话
    chat = agent.chat(id="s-1", persist=True)      # 多轮、可持久化
    result = await agent.call("echo", {"text": "hi"})  # 直接调用技能

agent.id 同时是会话存储与向量库的隔离键。
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote
from uuid import uuid4

from skill_core.config.settings import settings
from skill_core.domain.exceptions import ValidationError
from skill_core.infrastructure.logging.logger import logger
from skill_core.infrastructure.storage.json_store import JsonSessionStore
from skill_core.prompts import build_system_prompt
from skill_core.providers import create_provider
from skill_core.providers.base import ProviderClient
from skill_core.skills.definitions import SkillHandler
from skill_core.skills.dispatcher import SkillDispatcher
from skill_core.skills.registry import SkillHandle, SkillRegistry, make_skill
from skill_core.vectorstores.base import Embedder
from skill_core.vectorstores.embeddings import OpenAIEmbeddings
from skill_core.vectorstores.ram_vec import RamVectorStore
from .chat import ChatSession, PromptStream
from .driver import ConversationDriver, DriverConfig


class Agent:
    def __init__(
        self,
        id: str,
        name: str,
        behavior: str = "",
        model: Optional[str] = None,
        provider: Optional[str] = None,
        provider_client: Optional[ProviderClient] = None,
        store: Optional[JsonSessionStore] = None,
        skill_timeout: Optional[float] = None,
        max_tool_depth: Optional[int] = None,
        temperature: float = 0.7,
    ):
        if not id or not id.strip():
            raise ValidationError(message="Agent id must not be empty")
        self.id = id
        self.name = name
        self.behavior = behavior
        self.model = model or settings.default_model
        self.provider = (provider or getattr(provider_client, "name", None) or settings.default_provider).lower()
        self.temperature = temperature
        self.max_tool_depth = max_tool_depth or settings.max_tool_depth

        self.registry = SkillRegistry()
        self.dispatcher = SkillDispatcher(self.registry, timeout=skill_timeout)
        self.store = store or JsonSessionStore(root=Path(settings.storage_root) / quote(id, safe=""))
        self._provider_client = provider_client
        self._vector_dbs: Dict[Tuple[str, str], RamVectorStore] = {}

    @property
    def provider_client(self) -> ProviderClient:
        # 延迟创建：只注册技能或直接 call 时不需要 API key
        if self._provider_client is None:
            self._provider_client = create_provider(self.provider)
        return self._provider_client

    @property
    def system_prompt(self) -> str:
        return build_system_prompt(self.name, self.behavior, agent_id=self.id)

    def add_skill(
        self,
        name: str,
        description: str,
        process: SkillHandler,
        inputs: Optional[Mapping[str, Any]] = None,
    ) -> SkillHandle:
        self.registry.register(make_skill(name, description, process, inputs))
        return SkillHandle(self.registry, name)

    async def call(self, skill: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """绕过模型直接调用技能，返回 handler 的原始结果。"""

        return await self.dispatcher.invoke(skill, dict(args or {}))

    def chat(self, id: Optional[str] = None, persist: bool = False) -> ChatSession:
        session_id = id or f"{self.id}-{uuid4().hex[:12]}"
        session = self.store.get(session_id, persist=persist)
        logger.info(
            "Opened chat session",
            extra={"extra": {"agent_id": self.id, "session_id": session_id, "persist": persist, "turns": len(session)}},
        )
        return ChatSession(
            session=session,
            store=self.store,
            driver=self._new_driver(),
            log_ctx={"agent_id": self.id},
        )

    def prompt(self, text: str) -> PromptStream:
        """一次性对话：使用临时会话，结束后即释放。"""

        chat = self.chat()
        return _EphemeralPromptStream(chat, text)

    def vector_db(self, namespace: str, embedder: Optional[Embedder] = None) -> RamVectorStore:
        """获取该 agent 作用域下的内存向量库；同一 (namespace, 模型) 返回同一实例。"""

        embedder = embedder or OpenAIEmbeddings()
        key = (namespace, embedder.model)
        store = self._vector_dbs.get(key)
        if store is None:
            store = self._vector_dbs[key] = RamVectorStore(namespace, embedder, isolation_key=self.id)
        return store

    def _new_driver(self) -> ConversationDriver:
        config = DriverConfig(
            provider=self.provider,
            model=self.model,
            max_tool_depth=self.max_tool_depth,
            temperature=self.temperature,
            model_timeout=settings.model_timeout,
            max_context_turns=settings.max_context_turns,
        )
        return ConversationDriver(
            provider_client=self.provider_client,
            registry=self.registry,
            dispatcher=self.dispatcher,
            config=config,
            system_prompt=self.system_prompt,
        )


class _EphemeralPromptStream(PromptStream):
    """结束（或取消）后自动关闭临时会话的 PromptStream。"""

    async def _produce(self) -> None:
        try:
            await super()._produce()
        finally:
            self._chat.close()
