"""ChatSession：把会话、对话驱动与会话存储串起来的门面。

chat.prompt(text) 返回 PromptStream，它既可以 async for 逐个消费事件，
也可以直接 await 拿到最终回答文本：

    async for event in chat.prompt("hi"):
        ...
    reply = await chat.prompt("hi")
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, Dict, List, Optional, Tuple

from skill_core.domain.conversation import ConversationTurn, Session, SessionStore
from skill_core.domain.events import ChatEvent
from skill_core.domain.exceptions import BusinessError, SessionPersistenceError, ValidationError
from skill_core.infrastructure.logging.logger import log_with_ctx
from .driver import ConversationDriver


_DONE = object()


class PromptStream:
    """一次 prompt 的有序、可取消事件流。

    事件在后台任务中产生并按顺序放入队列；第一次迭代（或 await）时才启动。
    cancel() 之后不再交付任何事件，迭代直接结束。
    """

    def __init__(self, chat: "ChatSession", text: str):
        self._chat = chat
        self._text = text
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> "PromptStream":
        if self._task is None:
            self._queue = asyncio.Queue()
            self._task = asyncio.get_running_loop().create_task(self._produce())
            self._task.add_done_callback(self._on_done)
        return self

    def cancel(self) -> None:
        """停止事件交付并取消进行中的模型请求或技能调用，不等待其结束。"""

        if self._cancelled or self._finished:
            return
        self._cancelled = True
        if self._task is not None:
            self._task.cancel()
            self._queue.put_nowait(_DONE)

    async def wait_closed(self) -> None:
        """等待后台任务完全结束（包括取消后的历史收尾与落盘）。"""

        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def __aiter__(self) -> "PromptStream":
        self.start()
        return self

    async def __anext__(self) -> ChatEvent:
        if self._cancelled or self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _DONE or self._cancelled:
            self._finished = True
            raise StopAsyncIteration
        if item.is_terminal:
            self._finished = True
        return item

    async def collect(self) -> List[ChatEvent]:
        return [event async for event in self]

    async def text(self) -> str:
        """消费完整个事件流，返回最终回答；以 error 结束时抛出对应异常。"""

        terminal: Optional[ChatEvent] = None
        async for event in self:
            if event.is_terminal:
                terminal = event
        if terminal is None:
            raise BusinessError(code="CANCELLED", message="Prompt was cancelled before completion")
        if terminal.kind == "error":
            raise terminal.error
        return terminal.text

    def __await__(self):
        return self.text().__await__()

    async def _produce(self) -> None:
        terminal: Optional[ChatEvent] = None
        try:
            async with self._chat._lock:
                events = self._chat._driver.run(self._chat.session, self._text, self._chat._log_ctx)
                async with aclosing(events):
                    async for event in events:
                        if event.is_terminal:
                            # 终止事件在会话落盘之后再交付
                            terminal = event
                            continue
                        self._queue.put_nowait(event)
                try:
                    self._chat.flush()
                except SessionPersistenceError as e:
                    terminal = ChatEvent(kind="error", session_id=self._chat.id, error=e)
                if terminal is not None:
                    self._queue.put_nowait(terminal)
        except asyncio.CancelledError:
            self._chat.flush()
            raise
        except BusinessError as e:
            self._queue.put_nowait(ChatEvent(kind="error", session_id=self._chat.id, error=e))
        finally:
            self._queue.put_nowait(_DONE)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_with_ctx(logging.ERROR, "Prompt stream crashed", self._chat._log_ctx, reason=str(exc))


class ChatSession:
    def __init__(
        self,
        session: Session,
        store: SessionStore,
        driver: ConversationDriver,
        log_ctx: Optional[Dict[str, Any]] = None,
    ):
        self._session: Optional[Session] = session
        self._store = store
        self._driver = driver
        self._lock = asyncio.Lock()
        self._log_ctx: Dict[str, Any] = dict(log_ctx or {})
        self._log_ctx["session_id"] = session.id
        self.id = session.id
        self.persist = session.persist

    @property
    def session(self) -> Session:
        if self._session is None:
            raise ValidationError(code="SESSION_CLOSED", message=f"Chat session {self.id!r} is closed")
        return self._session

    @property
    def history(self) -> Tuple[ConversationTurn, ...]:
        return self.session.history

    @property
    def state(self) -> str:
        return self._driver.state

    @property
    def closed(self) -> bool:
        return self._session is None

    def prompt(self, text: str) -> PromptStream:
        if self.closed:
            raise ValidationError(code="SESSION_CLOSED", message=f"Chat session {self.id!r} is closed")
        return PromptStream(self, text)

    def flush(self) -> None:
        """持久会话写盘；失败抛 SessionPersistenceError。"""

        if self.persist and self._session is not None:
            self._store.flush(self.id)

    def close(self) -> None:
        """释放会话；非持久会话的历史随之丢失。"""

        if self._session is None:
            return
        try:
            self.flush()
        finally:
            self._store.release(self.id)
            self._session = None

    def __enter__(self) -> "ChatSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def describe_error(error: Optional[BusinessError]) -> str:
    if error is None:
        return "unknown error"
    return f"[{error.code}] {error.message}"
