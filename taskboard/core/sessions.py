"""
Server-side session storage.

The cookie carries only an opaque session id. The record it names lives in a
``SessionStore`` (in-process for development and tests, Redis in production)
and is exposed to handlers as ``request.state.session``.
"""

import json
import secrets
import threading
import time
from collections.abc import Iterator, MutableMapping
from typing import Any, Dict, Optional, Protocol, Tuple

from redis import Redis
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from taskboard.core.logging import get_logger

logger = get_logger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(Protocol):
    """Key-value store of session records keyed by session id."""

    def create(self, data: Dict[str, Any]) -> str: ...

    def load(self, session_id: str) -> Optional[Dict[str, Any]]: ...

    def save(self, session_id: str, data: Dict[str, Any]) -> None: ...

    def destroy(self, session_id: str) -> None: ...


class MemorySessionStore:
    """
    In-process session store.
    Records expire ``ttl_seconds`` after their last save.
    """

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._records: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def create(self, data: Dict[str, Any]) -> str:
        session_id = new_session_id()
        self.save(session_id, data)
        return session_id

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            expires_at, data = record
            if expires_at <= time.monotonic():
                del self._records[session_id]
                return None
            return dict(data)

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        now = time.monotonic()
        with self._lock:
            self._purge_expired(now)
            self._records[session_id] = (now + self.ttl_seconds, dict(data))

    def _purge_expired(self, now: float) -> None:
        """Drop records nobody came back for. Caller holds the lock."""
        expired = [sid for sid, (expires_at, _) in self._records.items() if expires_at <= now]
        for sid in expired:
            del self._records[sid]

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._records)


class RedisSessionStore:
    """Session store backed by Redis. Records are JSON under ``session:<id>``."""

    key_prefix = "session:"

    def __init__(self, redis_conn: Redis, ttl_seconds: int):
        self.redis = redis_conn
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def create(self, data: Dict[str, Any]) -> str:
        session_id = new_session_id()
        self.save(session_id, data)
        return session_id

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self.redis.get(self._key(session_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable session record")
            return None
        return data if isinstance(data, dict) else None

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        self.redis.setex(self._key(session_id), self.ttl_seconds, json.dumps(data))

    def destroy(self, session_id: str) -> None:
        self.redis.delete(self._key(session_id))


class ServerSession(MutableMapping):
    """Mutable view of one session record that tracks whether it changed."""

    def __init__(self, session_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        self.session_id = session_id
        self._data: Dict[str, Any] = dict(data or {})
        self.modified = False
        self.destroyed = False
        self.replaced_session_id: Optional[str] = None

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.modified = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def rotate(self) -> None:
        """Keep the data but move it to a new session id on the next save."""
        if self.session_id is not None:
            self.replaced_session_id = self.session_id
            self.session_id = None
        self.modified = True

    def destroy(self) -> None:
        """Drop the whole record, not just individual keys."""
        self._data.clear()
        self.destroyed = True

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)


class ServerSessionMiddleware(BaseHTTPMiddleware):
    """Binds ``request.state.session`` to the record named by the session cookie."""

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        cookie_name: str = "taskboard_session",
        max_age: int = 60 * 60 * 24,
        https_only: bool = False,
    ):
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.https_only = https_only

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        session_id = request.cookies.get(self.cookie_name)
        data = await run_in_threadpool(self.store.load, session_id) if session_id else None
        session = ServerSession(session_id, data) if data is not None else ServerSession()
        request.state.session = session

        response = await call_next(request)

        if session.destroyed:
            for stale_id in (session.session_id, session.replaced_session_id):
                if stale_id:
                    await run_in_threadpool(self.store.destroy, stale_id)
            response.delete_cookie(self.cookie_name, path="/")
        elif session.modified:
            if session.replaced_session_id:
                await run_in_threadpool(self.store.destroy, session.replaced_session_id)
            if session.session_id is None:
                session.session_id = await run_in_threadpool(self.store.create, session.to_dict())
            else:
                await run_in_threadpool(self.store.save, session.session_id, session.to_dict())
            response.set_cookie(
                self.cookie_name,
                session.session_id,
                max_age=self.max_age,
                path="/",
                httponly=True,
                secure=self.https_only,
                samesite="lax",
            )
        return response


def get_request_session(request: Request) -> ServerSession:
    """The current request's session; an empty one outside the middleware."""
    session = getattr(request.state, "session", None)
    if session is None:
        session = ServerSession()
        request.state.session = session
    return session
