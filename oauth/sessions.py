"""Server-side sessions keyed by an opaque cookie.

The browser only ever holds a random session id; session data (the logged in
user and any staged authorization request) stays in the SessionStore.
"""

import logging
import secrets
import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class Session(dict):
    """Per-client session data."""

    def __init__(self, session_id: str, data: dict = None, is_new: bool = False):
        super().__init__(data or {})
        self.session_id = session_id
        self.is_new = is_new
        self.destroyed = False

    def destroy(self) -> None:
        """Mark the session for removal once the response is sent."""
        self.destroyed = True
        self.clear()


class SessionStore:
    """In-memory session storage with a fixed time-to-live."""

    def __init__(self, ttl: int = 24 * 60 * 60):
        self.ttl = ttl
        self._sessions: dict[str, tuple[dict, float]] = {}

    async def load(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        data, expires_at = entry
        if time.time() >= expires_at:
            del self._sessions[session_id]
            return None
        return Session(session_id, dict(data))

    async def save(self, session: Session) -> None:
        now = time.time()
        self._evict_expired(now)
        self._sessions[session.session_id] = (dict(session), now + self.ttl)

    def _evict_expired(self, now: float) -> None:
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug(f"[SESSION] Evicted {len(expired)} expired sessions")

    async def destroy(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def new(self) -> Session:
        return Session(secrets.token_urlsafe(32), is_new=True)


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.session`` and persist it after the response."""

    def __init__(self, app, store: SessionStore, cookie_name: str, secure: bool = False):
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.secure = secure

    async def dispatch(self, request: Request, call_next):
        session = await self.store.load(request.cookies.get(self.cookie_name))
        if session is None:
            session = self.store.new()
        request.state.session = session

        response = await call_next(request)

        if session.destroyed:
            await self.store.destroy(session.session_id)
            response.delete_cookie(self.cookie_name, path="/")
            logger.debug("[SESSION] Session destroyed")
        elif session or not session.is_new:
            await self.store.save(session)
            if session.is_new:
                response.set_cookie(
                    self.cookie_name,
                    session.session_id,
                    max_age=self.store.ttl,
                    httponly=True,
                    samesite="lax",
                    secure=self.secure,
                    path="/",
                )
        return response


def get_session(request: Request) -> Session:
    return request.state.session
