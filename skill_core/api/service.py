"""对外 HTTP 服务模块。

在 Agent 外面包一层 FastAPI：
- GET  /        服务说明与接口列表
- GET  /health  探活，返回 agent 是否已加载
- POST /chat    {"message": "..."} -> {"response": "...", "timestamp": "..."}

    python -m skill_core.api.service
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skill_core.agents.agent import Agent
from skill_core.config.settings import settings
from skill_core.domain.exceptions import BusinessError
from skill_core.infrastructure.logging.logger import logger


EMPTY_MESSAGE_REPLY = "You didn't send me a message! What would you like to talk about?"
NOT_READY_REPLY = "I'm having trouble starting up right now. Please try again in a moment."
FAILURE_REPLY = "Sorry, something went wrong while I was thinking. Please try asking again in a moment."


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _open_web_chat(app: FastAPI, agent: Agent) -> None:
    app.state.agent = agent
    # Web 会话不落盘，避免多个进程互相覆盖
    app.state.chat = agent.chat(id=f"web-session-{int(datetime.now().timestamp() * 1000)}", persist=False)


def create_app(
    agent: Optional[Agent] = None,
    agent_factory: Optional[Callable[[], Agent]] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if application.state.agent is None and agent_factory is not None:
            try:
                _open_web_chat(application, agent_factory())
                logger.info("Agent loaded", extra={"extra": {"agent_id": application.state.agent.id}})
            except (BusinessError, OSError, ValueError) as e:
                # 加载失败时服务照常启动，/health 报告 not loaded，/chat 返回 500
                logger.error("Failed to load agent", extra={"extra": {"error": str(e)}})
        yield
        chat = application.state.chat
        if chat is not None:
            chat.close()

    app = FastAPI(title="skill_core chat service", version="0.1.0", lifespan=lifespan)
    app.state.agent = None
    app.state.chat = None
    if agent is not None:
        _open_web_chat(app, agent)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def index() -> Dict[str, Any]:
        return {
            "message": "skill_core chat service",
            "status": "running",
            "endpoints": {"health": "/health", "chat": "POST /chat"},
            "timestamp": _now(),
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "agent": "loaded" if app.state.agent is not None else "not loaded",
            "timestamp": _now(),
        }

    @app.post("/chat")
    async def chat(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message.strip():
            return JSONResponse(
                status_code=400,
                content={"error": "Message is required", "response": EMPTY_MESSAGE_REPLY},
            )

        session = app.state.chat
        if session is None:
            return JSONResponse(
                status_code=500,
                content={"error": "Agent not initialized", "response": NOT_READY_REPLY},
            )

        logger.info("Received chat message", extra={"extra": {"session_id": session.id, "chars": len(message)}})
        try:
            reply = await session.prompt(message)
        except BusinessError as e:
            logger.error(
                "Chat failed",
                extra={"extra": {"session_id": session.id, "error": e.code, "reason": e.message}},
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "response": FAILURE_REPLY},
            )
        return {"response": reply, "timestamp": _now()}

    return app


def main() -> None:
    from skill_core.agents.book_assistant import create_book_assistant

    app = create_app(agent_factory=create_book_assistant)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
