import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import quote, unquote
from uuid import uuid4
from weakref import WeakValueDictionary

from skill_core.config.settings import settings
from skill_core.domain.conversation import ConversationTurn, Session, SessionStore
from skill_core.domain.exceptions import SessionPersistenceError
from skill_core.infrastructure.logging.logger import logger


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(raw: Any) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


class JsonSessionStore(SessionStore):
    """按 session id 保存会话历史。

    进程内每个 id 至多对应一个存活的 Session 对象（弱引用表），
    调用方（ChatSession）持有它期间一直有效；持久会话在 flush 时
    整体写入 <root>/sessions/<id>.json。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._sessions_root = self._root / "sessions"
        self._live: "WeakValueDictionary[str, Session]" = WeakValueDictionary()

    def get(self, session_id: str, persist: bool = False) -> Session:
        session = self._live.get(session_id)
        if session is not None:
            if persist and not session.persist:
                session.persist = True
            return session
        if self._path(session_id).exists():
            # 磁盘上已有历史时总是先读回来，之后再升级为持久也不会覆盖旧历史
            session = self._read(session_id)
            session.persist = persist
        else:
            session = Session(id=session_id, persist=persist)
        self._live[session_id] = session
        return session

    def append(self, session_id: str, turn: ConversationTurn) -> None:
        self.get(session_id).append(turn)

    def flush(self, session_id: str) -> None:
        session = self._live.get(session_id)
        if session is None:
            raise SessionPersistenceError(
                code="SESSION_NOT_LIVE",
                message=f"Session {session_id!r} is not active in this store",
            )
        if not session.persist:
            return
        obj = {
            "id": session.id,
            "created_at": _iso(session.created_at),
            "updated_at": _iso(session.updated_at),
            "turns": [t.to_dict() for t in session.history],
        }
        path = self._path(session_id)
        tmp_path = path.with_name(f"{path.stem}.{uuid4().hex}.json.tmp")
        try:
            self._sessions_root.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise SessionPersistenceError(code="STORE_WRITE_ERROR", message=str(e), session_id=session_id)
        logger.info("Flushed session", extra={"extra": {"session_id": session_id, "turns": len(session)}})

    def load(self, session_id: str) -> Session:
        """从磁盘恢复会话；该 id 已有存活对象时直接返回它。"""
        session = self._live.get(session_id)
        if session is not None:
            return session
        session = self._read(session_id)
        self._live[session_id] = session
        return session

    def release(self, session_id: str) -> None:
        self._live.pop(session_id, None)

    def list_sessions(self) -> List[str]:
        if not self._sessions_root.exists():
            return []
        return sorted(unquote(p.stem) for p in self._sessions_root.glob("*.json"))

    def delete(self, session_id: str) -> None:
        self._live.pop(session_id, None)
        path = self._path(session_id)
        if not path.exists():
            raise SessionPersistenceError(code="SESSION_NOT_FOUND", message=session_id)
        try:
            path.unlink()
        except OSError as e:
            raise SessionPersistenceError(code="STORE_DELETE_ERROR", message=str(e))

    def _path(self, session_id: str) -> Path:
        return self._sessions_root / f"{quote(session_id, safe='')}.json"

    def _read(self, session_id: str) -> Session:
        path = self._path(session_id)
        if not path.exists():
            raise SessionPersistenceError(code="SESSION_NOT_FOUND", message=session_id)
        try:
            data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            session = Session(
                id=data["id"],
                persist=True,
                created_at=_parse_ts(data["created_at"]),
                updated_at=_parse_ts(data["updated_at"]),
                _turns=[ConversationTurn.from_dict(t) for t in data.get("turns") or []],
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SessionPersistenceError(code="STORE_READ_ERROR", message=str(e), session_id=session_id)
        return session
